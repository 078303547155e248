"""Agent system — models, process wrapper, registry.

The orchestrator lives in :mod:`conductor.agent.orchestrator`; it depends
on configuration, which itself imports the models from this package.
"""

from conductor.agent.models import AgentConfig, AgentStatus, AgentType
from conductor.agent.process import AgentProcess, StreamState
from conductor.agent.registry import AgentRegistry

__all__ = [
    "AgentConfig",
    "AgentProcess",
    "AgentRegistry",
    "AgentStatus",
    "AgentType",
    "StreamState",
]
