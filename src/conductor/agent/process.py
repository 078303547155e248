"""Agent process — one supervised agent CLI running in its own PTY."""

from __future__ import annotations

import asyncio
import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from conductor.agent.models import AgentConfig, AgentStatus, AgentType
from conductor.errors import AgentIOError
from conductor.pty.channel import PtyChannel, spawn_channel

if TYPE_CHECKING:
    from conductor.config import ConductorConfig

logger = logging.getLogger(__name__)

INTERRUPT = b"\x03"  # ^C
END_OF_INPUT = b"\x04"  # ^D


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StreamState(enum.Enum):
    """Lifecycle of the background output reader."""

    RUNNING = "running"
    DRAINING = "draining"  # Reader stopped, queued chunks not yet consumed
    CLOSED = "closed"  # Fully drained; get_output() returns None from now on


class AgentProcess:
    """A running agent CLI plus its status and output channel.

    Owns exactly one :class:`PtyChannel`. A background reader pulls raw
    bytes off the PTY on a dedicated single-thread executor and feeds a
    bounded queue. When the queue is full the reader waits, which stops
    the PTY from being drained and in turn pushes back on the child.

    Writes, resizes and status mutations are serialized by a per-agent
    lock. Nothing here is shared with other agents.
    """

    def __init__(
        self,
        agent_id: str,
        agent_type: AgentType,
        channel: PtyChannel,
        *,
        workspace: str | None = None,
        output_capacity: int = 100,
        read_chunk_bytes: int = 4096,
        read_poll_seconds: float = 0.2,
        kill_grace_seconds: float = 0.5,
        terminate_timeout: float = 2.0,
    ) -> None:
        self.id = agent_id
        self.agent_type = agent_type
        self.workspace = workspace
        self._channel = channel
        self._read_chunk_bytes = read_chunk_bytes
        self._read_poll_seconds = read_poll_seconds
        self._kill_grace_seconds = kill_grace_seconds
        self._terminate_timeout = terminate_timeout

        now = _utcnow()
        self._start_time = now
        self._last_activity = now
        self._commands_sent = 0
        self._running = True
        self._exit_code: int | None = None
        self._lock = asyncio.Lock()

        self._chunks: asyncio.Queue[bytes] = asyncio.Queue(maxsize=output_capacity)
        self._eof = asyncio.Event()
        self._stream_state = StreamState.RUNNING
        self._stopping = False
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix=f"pty-reader-{agent_id}"
        )
        self._reader_task: asyncio.Task[None] | None = None
        self._kill_task: asyncio.Future[None] | None = None

    @classmethod
    async def spawn(
        cls, agent_id: str, config: AgentConfig, settings: ConductorConfig
    ) -> AgentProcess:
        """Launch the CLI for ``config.agent_type`` and start reading it.

        Raises:
            SpawnError: The PTY or the executable could not be set up.
        """
        terminal = settings.terminal
        channel = spawn_channel(
            settings.command_for(config.agent_type),
            cwd=config.workspace_path,
            env=terminal.env,
            rows=terminal.rows,
            cols=terminal.cols,
            term=terminal.term,
            colorterm=terminal.colorterm,
        )
        process = cls(
            agent_id,
            config.agent_type,
            channel,
            workspace=config.workspace_path,
            output_capacity=settings.process.output_channel_capacity,
            read_chunk_bytes=settings.process.read_chunk_bytes,
            read_poll_seconds=settings.process.read_poll_seconds,
            kill_grace_seconds=settings.process.kill_grace_seconds,
            terminate_timeout=settings.process.terminate_timeout_seconds,
        )
        process.start()
        return process

    def start(self) -> None:
        """Start the background reader. Must be called from the event loop."""
        if self._reader_task is None:
            self._reader_task = asyncio.create_task(
                self._read_loop(), name=f"pty-reader-{self.id}"
            )

    @property
    def pid(self) -> int:
        return self._channel.pid

    @property
    def stream_state(self) -> StreamState:
        return self._stream_state

    async def _read_loop(self) -> None:
        """Move PTY output into the chunk queue until the stream ends."""
        loop = asyncio.get_running_loop()
        try:
            while True:
                try:
                    data = await loop.run_in_executor(
                        self._executor,
                        self._channel.read,
                        self._read_chunk_bytes,
                        self._read_poll_seconds,
                    )
                except OSError as exc:
                    # Not proof that the child exited; status reconciles on poll.
                    logger.warning("PTY reader for agent %s failed: %s", self.id, exc)
                    break

                if data is None:
                    if self._stopping:
                        break
                    continue
                if not data:
                    logger.info("Agent %s output stream ended", self.id)
                    break

                self._last_activity = _utcnow()
                await self._chunks.put(data)
        finally:
            if self._stream_state is StreamState.RUNNING:
                self._stream_state = StreamState.DRAINING
            self._channel.release()
            self._executor.shutdown(wait=False)
            self._eof.set()

    async def get_output(self) -> bytes | None:
        """Wait for the next output chunk.

        Returns ``None`` once the reader has stopped and every queued chunk
        has been handed out; it keeps returning ``None`` after that.
        """
        while True:
            if not self._chunks.empty():
                return self._chunks.get_nowait()
            if self._eof.is_set():
                self._stream_state = StreamState.CLOSED
                return None

            getter = asyncio.ensure_future(self._chunks.get())
            closed = asyncio.ensure_future(self._eof.wait())
            try:
                done, _ = await asyncio.wait(
                    {getter, closed}, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                closed.cancel()
                if not getter.done():
                    getter.cancel()
            if getter in done and not getter.cancelled():
                return getter.result()

    async def send_command(self, text: str) -> None:
        """Write ``text`` plus a newline to the agent's input.

        Raises:
            AgentIOError: The write failed. The agent stays registered.
        """
        async with self._lock:
            self._channel.write(f"{text}\n".encode("utf-8"))
            self._commands_sent += 1
            self._last_activity = _utcnow()
        logger.debug("Sent command to agent %s: %s", self.id, text)

    async def send_raw(self, data: bytes) -> None:
        """Write bytes unmodified, e.g. control sequences."""
        async with self._lock:
            self._channel.write(data)
            self._last_activity = _utcnow()

    async def resize(self, rows: int, cols: int) -> None:
        async with self._lock:
            self._channel.resize(rows, cols)

    async def kill(self) -> None:
        """Interrupt, wait the grace interval, then send end-of-input.

        Marks the agent as not running once both control bytes have been
        issued, whether or not the child has exited. Both bytes are sent
        even if the awaiting caller is cancelled.
        """
        self._kill_task = asyncio.ensure_future(self._kill_sequence())
        await asyncio.shield(self._kill_task)

    async def _kill_sequence(self) -> None:
        logger.info("Killing agent %s", self.id)
        await self._send_control(INTERRUPT)
        await asyncio.sleep(self._kill_grace_seconds)
        await self._send_control(END_OF_INPUT)
        async with self._lock:
            self._running = False
            self._last_activity = _utcnow()

    async def _send_control(self, data: bytes) -> None:
        try:
            await self.send_raw(data)
        except AgentIOError as exc:
            logger.debug("Control byte %r to agent %s not delivered: %s", data, self.id, exc)

    async def close(self) -> None:
        """Force-terminate the child and wait for the reader to finish.

        Output already queued stays available to :meth:`get_output`.
        """
        self._stopping = True
        exit_code = await asyncio.to_thread(self._channel.terminate, self._terminate_timeout)
        self._running = False
        if exit_code is not None:
            self._exit_code = exit_code

        if self._reader_task is None:
            self._channel.release()
            self._executor.shutdown(wait=False)
            self._eof.set()
            return
        try:
            await asyncio.wait_for(
                asyncio.shield(self._reader_task), timeout=self._terminate_timeout
            )
        except asyncio.TimeoutError:
            # Reader is parked on a full queue nobody drains
            logger.warning("Reader for agent %s did not finish; cancelling", self.id)
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

    def _reconcile(self) -> None:
        if not self._running:
            return
        exit_code = self._channel.poll()
        if exit_code is not None:
            logger.info("Agent %s exited on its own (code=%s)", self.id, exit_code)
            self._running = False
            self._exit_code = exit_code

    @property
    def running(self) -> bool:
        self._reconcile()
        return self._running

    def get_status(self) -> AgentStatus:
        """Snapshot of the current status. Never blocks on I/O."""
        self._reconcile()
        return AgentStatus(
            id=self.id,
            agent_type=self.agent_type,
            running=self._running,
            start_time=self._start_time,
            last_activity=self._last_activity,
            commands_sent=self._commands_sent,
            workspace=self.workspace,
            exit_code=self._exit_code,
        )

    def __repr__(self) -> str:
        return (
            f"AgentProcess(id={self.id!r}, type={self.agent_type.value}, "
            f"running={self._running}, stream={self._stream_state.value})"
        )
