"""Session ledger — which agents ran and what they were told.

Pure bookkeeping: no I/O and no background work. Agent entries go away
when an agent is unregistered; the task history is kept for the whole
session as an audit trail.
"""

from __future__ import annotations

import json
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _gen_id() -> str:
    return str(uuid.uuid4())


@dataclass
class AgentSession:
    id: str
    agent_type: str
    started_at: datetime = field(default_factory=_utcnow)
    commands_sent: int = 0
    last_activity: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class TaskRecord:
    """One command sent to one agent."""

    agent_id: str
    command: str
    id: str = field(default_factory=_gen_id)
    timestamp: datetime = field(default_factory=_utcnow)
    v_level: int | None = None


class SessionState:
    """Append-mostly ledger of agent registrations and command history.

    Mutations take an exclusive lock; readers get copies. The invariant
    ``total_commands == len(task_history)`` holds at every observation.
    """

    def __init__(self, session_id: str | None = None) -> None:
        self.id = session_id or _gen_id()
        self.started_at = _utcnow()
        self._agents: dict[str, AgentSession] = {}
        self._history: list[TaskRecord] = []
        self._total_commands = 0
        self._lock = threading.RLock()

    def register_agent(self, agent_id: str, agent_type: str) -> AgentSession:
        """Start tracking an agent. Re-registering an id starts it afresh."""
        with self._lock:
            entry = AgentSession(id=agent_id, agent_type=agent_type)
            self._agents[agent_id] = entry
            return entry

    def unregister_agent(self, agent_id: str) -> None:
        """Stop tracking an agent; its task history stays."""
        with self._lock:
            self._agents.pop(agent_id, None)

    def log_command(
        self, agent_id: str, command: str, v_level: int | None = None
    ) -> TaskRecord:
        """Append a task record and bump the counters."""
        with self._lock:
            record = TaskRecord(agent_id=agent_id, command=command, v_level=v_level)
            agent = self._agents.get(agent_id)
            if agent is not None:
                agent.commands_sent += 1
                agent.last_activity = record.timestamp
            self._history.append(record)
            self._total_commands += 1
            return record

    @property
    def total_commands(self) -> int:
        with self._lock:
            return self._total_commands

    def get_agent(self, agent_id: str) -> AgentSession | None:
        """Copy of one agent's session entry."""
        with self._lock:
            entry = self._agents.get(agent_id)
            return None if entry is None else AgentSession(**asdict(entry))

    def agent_ids(self) -> list[str]:
        with self._lock:
            return list(self._agents)

    def task_history(self, agent_id: str | None = None) -> list[TaskRecord]:
        """Task records in the order they were logged, optionally for one agent."""
        with self._lock:
            if agent_id is None:
                return list(self._history)
            return [r for r in self._history if r.agent_id == agent_id]

    def export(self) -> dict[str, Any]:
        """Serialize the full ledger to JSON-compatible data."""
        with self._lock:
            return {
                "id": self.id,
                "started_at": self.started_at.isoformat(),
                "agents": {
                    agent_id: _jsonable(asdict(entry))
                    for agent_id, entry in self._agents.items()
                },
                "task_history": [_jsonable(asdict(r)) for r in self._history],
                "total_commands": self._total_commands,
            }

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.export(), indent=indent)


def _jsonable(data: dict[str, Any]) -> dict[str, Any]:
    return {
        key: value.isoformat() if isinstance(value, datetime) else value
        for key, value in data.items()
    }
