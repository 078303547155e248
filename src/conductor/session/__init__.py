"""Session bookkeeping and the notification bus."""

from conductor.session.bus import BusMessage, MessageType, NotificationBus, Subscription
from conductor.session.state import AgentSession, SessionState, TaskRecord

__all__ = [
    "AgentSession",
    "BusMessage",
    "MessageType",
    "NotificationBus",
    "SessionState",
    "Subscription",
    "TaskRecord",
]
