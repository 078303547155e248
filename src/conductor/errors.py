"""Error taxonomy for agent supervision.

Every per-agent failure is scoped to one agent id and surfaced to the
caller as one of these types; none of them tear down other agents.
"""

from __future__ import annotations

import enum


class ConductorError(Exception):
    """Base class for all supervisor errors."""

    def __init__(
        self, message: str, *, agent_id: str | None = None, hint: str = ""
    ) -> None:
        super().__init__(message)
        self.message = message
        self.agent_id = agent_id
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


class SpawnFailure(enum.Enum):
    LAUNCH_FAILED = "launch_failed"
    PTY_ALLOCATION_FAILED = "pty_allocation_failed"


class SpawnError(ConductorError):
    """A spawn attempt failed. No partial agent is left registered."""

    def __init__(
        self,
        message: str,
        *,
        reason: SpawnFailure = SpawnFailure.LAUNCH_FAILED,
        agent_id: str | None = None,
        hint: str = "",
    ) -> None:
        super().__init__(message, agent_id=agent_id, hint=hint)
        self.reason = reason


class NotFoundError(ConductorError):
    """The agent id is not currently registered."""


class ConflictError(ConductorError):
    """An explicit agent id collides with a live agent."""


class AgentIOError(ConductorError):
    """A write, resize or read failed at the OS boundary."""
