"""Orchestrator — the single entry point for supervising agents.

The orchestrator owns:
1. A concurrent registry of agent id -> running process
2. The session ledger (registrations and command history)
3. The notification bus the UI subscribes to

Every spawn/send/kill/status/output call goes through here, routed by
agent id. Teardown is explicit: ``shutdown()`` (or leaving the ``async
with`` block, or SIGINT/SIGTERM once handlers are installed) kills every
agent and waits for it.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import signal
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from conductor.agent.models import AgentConfig, AgentStatus, AgentType
from conductor.agent.process import AgentProcess
from conductor.agent.registry import AgentRegistry
from conductor.config import ConductorConfig
from conductor.errors import (
    AgentIOError,
    ConductorError,
    ConflictError,
    NotFoundError,
    SpawnError,
)
from conductor.pty.buffer import OutputBuffer
from conductor.session.bus import NotificationBus
from conductor.session.state import SessionState

logger = logging.getLogger(__name__)

SYSTEM_AGENT_ID = "*"


@dataclass
class _AgentHandle:
    process: AgentProcess
    buffer: OutputBuffer
    pump: asyncio.Task[None] | None = None


class AgentOrchestrator:
    """Supervises N concurrent agent CLIs running in PTYs.

    Operations on different agents never share a lock: the registry is
    sharded and each process serializes only its own writes.
    """

    def __init__(
        self,
        config: ConductorConfig | None = None,
        *,
        session: SessionState | None = None,
        bus: NotificationBus | None = None,
    ) -> None:
        self.config = config or ConductorConfig()
        self.session = session or SessionState()
        self.bus = bus or NotificationBus(capacity=self.config.bus.capacity)
        self._agents: AgentRegistry[_AgentHandle] = AgentRegistry()
        self._teardowns: set[asyncio.Task[None]] = set()
        self._closing = False
        self._closed = asyncio.Event()
        self._shutdown_task: asyncio.Task[None] | None = None
        self._signals: list[signal.Signals] = []

    async def __aenter__(self) -> AgentOrchestrator:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Spawning
    # ------------------------------------------------------------------

    async def spawn_agent(self, config: AgentConfig) -> str:
        """Launch an agent and register it. Returns its id.

        An id whose previous agent has already exited is reused: the old
        entry is torn down first.

        Raises:
            ConflictError: ``config.agent_id`` belongs to a live agent.
            SpawnError: The CLI could not be launched; nothing is registered.
        """
        if self._closing:
            raise ConductorError("Orchestrator is shut down.", hint="Create a new one.")
        agent_id = config.agent_id or str(uuid.uuid4())
        existing = self._agents.get(agent_id)
        if existing is not None:
            if existing.process.running:
                raise ConflictError(
                    f"Agent {agent_id} is already running", agent_id=agent_id
                )
            logger.info("Replacing exited agent %s", agent_id)
            await self.kill_agent(agent_id)

        logger.info("Spawning %s agent with ID: %s", config.agent_type, agent_id)
        try:
            process = await AgentProcess.spawn(agent_id, config, self.config)
        except SpawnError as exc:
            exc.agent_id = agent_id
            self.bus.publish_error(agent_id, str(exc))
            raise

        handle = _AgentHandle(
            process=process,
            buffer=OutputBuffer(
                max_lines=self.config.output.max_lines,
                max_bytes=self.config.output.max_bytes,
            ),
        )
        # No await between the registry insert and the ledger entry, so no
        # other task can observe one without the other.
        if not self._agents.insert_if_absent(agent_id, handle):
            await process.close()
            raise ConflictError(f"Agent {agent_id} is already running", agent_id=agent_id)
        if self._closing:
            self._agents.pop(agent_id)
            await process.close()
            raise ConductorError("Orchestrator is shut down.", agent_id=agent_id)
        self.session.register_agent(agent_id, config.agent_type.value)
        handle.pump = asyncio.create_task(
            self._pump_output(agent_id, handle), name=f"output-pump-{agent_id}"
        )

        self.bus.publish_system_event(
            agent_id, "spawned", agent_type=config.agent_type.value, pid=process.pid
        )
        logger.info("Agent %s spawned successfully (pid=%d)", agent_id, process.pid)
        return agent_id

    async def spawn(
        self,
        agent_type: AgentType | str,
        agent_id: str | None = None,
        workspace_path: str | None = None,
        api_key: str = "",
    ) -> str:
        """Shell-facing spawn taking plain values.

        Raises:
            ValueError: ``agent_type`` is not a known agent type.
        """
        config = AgentConfig(
            agent_type=AgentType.parse(agent_type),
            agent_id=agent_id,
            workspace_path=workspace_path,
            api_key=api_key,
        )
        return await self.spawn_agent(config)

    async def _pump_output(self, agent_id: str, handle: _AgentHandle) -> None:
        """Drain the agent's output into its buffer and onto the bus."""
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await handle.process.get_output()
            if chunk is None:
                break
            handle.buffer.feed(chunk)
            text = decoder.decode(chunk)
            if text:
                self.bus.publish_output(agent_id, text)
        tail = decoder.decode(b"", final=True)
        if tail:
            self.bus.publish_output(agent_id, tail)
        status = handle.process.get_status()
        self.bus.publish_status(agent_id, {"stream": "closed", **status.to_dict()})
        logger.debug("Output pump for agent %s finished", agent_id)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _require(self, agent_id: str) -> _AgentHandle:
        handle = self._agents.get(agent_id)
        if handle is None:
            raise NotFoundError(f"Agent {agent_id} not found", agent_id=agent_id)
        return handle

    async def send_command(self, agent_id: str, command: str) -> None:
        """Send a line of input to one agent and record it in the ledger.

        Raises:
            NotFoundError: No such agent.
            AgentIOError: The write failed. The agent stays registered.
        """
        handle = self._require(agent_id)
        logger.debug("Sending command to agent %s: %s", agent_id, command)
        try:
            await handle.process.send_command(command)
        except AgentIOError as exc:
            exc.agent_id = agent_id
            self.bus.publish_error(agent_id, str(exc))
            raise
        self.session.log_command(agent_id, command)
        self.bus.publish_input(agent_id, command)

    async def send_raw(self, agent_id: str, data: bytes) -> None:
        """Write raw bytes (control sequences) to one agent."""
        handle = self._require(agent_id)
        try:
            await handle.process.send_raw(data)
        except AgentIOError as exc:
            exc.agent_id = agent_id
            raise

    async def resize(self, agent_id: str, rows: int, cols: int) -> None:
        """Change one agent's terminal geometry.

        Raises:
            ValueError: ``rows`` or ``cols`` is not positive. Checked before
                the PTY is touched, like any other invalid argument.
            NotFoundError: No such agent.
            AgentIOError: The resize ioctl failed.
        """
        handle = self._require(agent_id)
        try:
            await handle.process.resize(rows, cols)
        except AgentIOError as exc:
            exc.agent_id = agent_id
            raise

    async def broadcast_to_strategy(self, command: str) -> dict[str, str]:
        """Send the same command to every registered agent.

        Best effort: a failed agent is logged and reported on the bus and
        does not stop delivery to the others. Returns the failures as
        agent id -> error message.
        """
        agent_ids = self._agents.ids()
        results = await asyncio.gather(
            *(self.send_command(agent_id, command) for agent_id in agent_ids),
            return_exceptions=True,
        )
        failures: dict[str, str] = {}
        for agent_id, result in zip(agent_ids, results):
            if isinstance(result, ConductorError):
                logger.error("Failed to broadcast to agent %s: %s", agent_id, result)
                if not isinstance(result, AgentIOError):
                    self.bus.publish_error(agent_id, str(result))
                failures[agent_id] = str(result)
            elif isinstance(result, BaseException):
                raise result
        return failures

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def kill_agent(self, agent_id: str) -> None:
        """Remove an agent and shut it down. Unknown ids are a no-op.

        The entry leaves the registry before any signal is sent, so it is
        invisible to new lookups even while the kill is in progress.
        """
        handle = self._agents.pop(agent_id)
        if handle is None:
            logger.debug("Kill requested for unknown agent %s", agent_id)
            return
        self.session.unregister_agent(agent_id)

        task = asyncio.ensure_future(self._teardown(agent_id, handle))
        self._teardowns.add(task)
        task.add_done_callback(self._teardowns.discard)
        await asyncio.shield(task)

    async def _teardown(self, agent_id: str, handle: _AgentHandle) -> None:
        try:
            await handle.process.kill()
        finally:
            await handle.process.close()
            if handle.pump is not None:
                await handle.pump
        self.bus.publish_system_event(agent_id, "killed")
        logger.info("Agent %s cleaned up", agent_id)

    async def shutdown(self) -> None:
        """Kill every agent and close the bus. Safe to call more than once;
        concurrent callers all wait for the same teardown."""
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())
        await asyncio.shield(self._shutdown_task)

    async def _shutdown(self) -> None:
        self._closing = True
        agent_ids = self._agents.ids()
        logger.info("Shutting down Agent Orchestrator (%d agents)...", len(agent_ids))
        results = await asyncio.gather(
            *(self.kill_agent(agent_id) for agent_id in agent_ids),
            return_exceptions=True,
        )
        for agent_id, result in zip(agent_ids, results):
            if isinstance(result, BaseException):
                logger.error("Error shutting down agent %s: %s", agent_id, result)
        if self._teardowns:
            await asyncio.gather(*self._teardowns, return_exceptions=True)
        self.bus.publish_system_event(SYSTEM_AGENT_ID, "shutdown")
        self.bus.close()
        self.remove_signal_handlers()
        self._closed.set()
        logger.info("Agent Orchestrator stopped")

    async def wait_closed(self) -> None:
        """Wait until a shutdown has completed."""
        await self._closed.wait()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def install_signal_handlers(
        self, signals: Iterable[signal.Signals] = (signal.SIGINT, signal.SIGTERM)
    ) -> None:
        """Run ``shutdown()`` when the process receives one of ``signals``.

        Must be called from the running event loop.
        """
        loop = asyncio.get_running_loop()
        for sig in signals:
            loop.add_signal_handler(sig, self._on_signal, sig)
            self._signals.append(sig)

    def remove_signal_handlers(self) -> None:
        if not self._signals:
            return
        loop = asyncio.get_running_loop()
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals.clear()

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info("Received %s, cleaning up agents...", sig.name)
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.ensure_future(self._shutdown())

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_agent_status(self, agent_id: str) -> AgentStatus:
        return self._require(agent_id).process.get_status()

    def list_agents(self) -> list[AgentStatus]:
        """Status of every registered agent, in no particular order."""
        return [handle.process.get_status() for handle in self._agents.values()]

    def get_agent_output(
        self, agent_id: str, max_lines: int | None = None, *, raw: bool = False
    ) -> list[str]:
        """Most recent output lines of one agent.

        Lines are ANSI-stripped unless ``raw`` is set.
        """
        buffer = self._require(agent_id).buffer
        n = max_lines if max_lines is not None else self.config.output.default_lines
        return buffer.read_tail_raw(n) if raw else buffer.read_tail(n)

    def get_agent_output_raw(self, agent_id: str, max_bytes: int | None = None) -> bytes:
        """Most recent output bytes of one agent, exactly as produced."""
        return self._require(agent_id).buffer.read_bytes(max_bytes)

    def export_session(self) -> dict[str, Any]:
        return self.session.export()

    def __len__(self) -> int:
        return len(self._agents)
