"""Conductor — supervise interactive agent CLIs running in pseudo-terminals."""

from conductor.agent.models import AgentConfig, AgentStatus, AgentType
from conductor.agent.orchestrator import AgentOrchestrator
from conductor.config import ConductorConfig
from conductor.errors import (
    AgentIOError,
    ConductorError,
    ConflictError,
    NotFoundError,
    SpawnError,
    SpawnFailure,
)

__version__ = "0.1.0"

__all__ = [
    "AgentConfig",
    "AgentIOError",
    "AgentOrchestrator",
    "AgentStatus",
    "AgentType",
    "ConductorConfig",
    "ConductorError",
    "ConflictError",
    "NotFoundError",
    "SpawnError",
    "SpawnFailure",
]
