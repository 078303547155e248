"""Agent types, spawn configuration and status snapshots."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


class AgentType(str, enum.Enum):
    """The agent CLIs the supervisor knows how to launch."""

    CLAUDE = "claude"
    GEMINI = "gemini"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: AgentType | str) -> AgentType:
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        choices = ", ".join(m.value for m in cls)
        raise ValueError(f"Unknown agent type: {value!r} (expected one of: {choices})")


@dataclass(frozen=True)
class AgentConfig:
    """What to spawn. Immutable once handed to the orchestrator.

    ``api_key`` is accepted for callers that still send one; the agent CLIs
    manage their own authentication, so it is never used and never shown
    in ``repr``.
    """

    agent_type: AgentType
    agent_id: str | None = None
    workspace_path: str | None = None
    api_key: str = field(default="", repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "agent_type", AgentType.parse(self.agent_type))
        if self.agent_id is not None and not self.agent_id.strip():
            raise ValueError("agent_id must be a non-empty string when given")


@dataclass(frozen=True)
class AgentStatus:
    """Read-only snapshot of one agent's state."""

    id: str
    agent_type: AgentType
    running: bool
    start_time: datetime
    last_activity: datetime
    commands_sent: int
    workspace: str | None = None
    exit_code: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.agent_type.value,
            "running": self.running,
            "start_time": self.start_time.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "commands_sent": self.commands_sent,
            "workspace": self.workspace,
        }
        if self.exit_code is not None:
            data["exit_code"] = self.exit_code
        return data
