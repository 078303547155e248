"""Notification bus — decouples agent supervision from the UI.

The orchestrator publishes structured messages (output, input, status,
errors, lifecycle events). Any number of subscribers receive them in
publish order; a subscriber only sees what is published after it
subscribed.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 1000


class MessageType(enum.Enum):
    OUTPUT = "output"
    INPUT = "input"
    STATUS = "status"
    ERROR = "error"
    SYSTEM_EVENT = "system_event"


@dataclass(frozen=True)
class BusMessage:
    """A message on the bus."""

    agent_id: str
    message_type: MessageType
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "message_type": self.message_type.value,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class Subscription:
    """One subscriber's view of the bus.

    Holds at most ``capacity`` undelivered messages. When a publish finds
    it full, the oldest message is discarded and counted in ``missed``;
    the subscriber sees a gap instead of stalling the publisher.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self._messages: deque[BusMessage] = deque()
        self._capacity = capacity
        self._ready = asyncio.Event()
        self._closed = False
        self.missed = 0

    def _push(self, message: BusMessage) -> None:
        if len(self._messages) >= self._capacity:
            self._messages.popleft()
            self.missed += 1
        self._messages.append(message)
        self._ready.set()

    def _close(self) -> None:
        self._closed = True
        self._ready.set()

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        return len(self._messages)

    def get_nowait(self) -> BusMessage | None:
        """Next message, or None if nothing is waiting."""
        if not self._messages:
            return None
        message = self._messages.popleft()
        if not self._messages and not self._closed:
            self._ready.clear()
        return message

    async def recv(self) -> BusMessage | None:
        """Wait for the next message. Returns None once the bus is closed
        and everything already queued has been read."""
        while True:
            message = self.get_nowait()
            if message is not None:
                return message
            if self._closed:
                return None
            await self._ready.wait()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> BusMessage:
        message = await self.recv()
        if message is None:
            raise StopAsyncIteration
        return message


class NotificationBus:
    """Publish/subscribe fan-out with per-subscriber bounded rings.

    ``publish`` never blocks and never fails because of subscribers.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._subscribers: list[Subscription] = []
        self._closed = False

    def publish(self, message: BusMessage) -> None:
        """Deliver a message to every current subscriber.

        Silently drops messages after ``close()`` has been called.
        """
        if self._closed:
            return
        for sub in list(self._subscribers):
            sub._push(message)

    def publish_output(self, agent_id: str, text: str) -> None:
        self.publish(BusMessage(agent_id, MessageType.OUTPUT, {"text": text}))

    def publish_input(self, agent_id: str, command: str) -> None:
        self.publish(BusMessage(agent_id, MessageType.INPUT, {"command": command}))

    def publish_status(self, agent_id: str, status: dict[str, Any]) -> None:
        self.publish(BusMessage(agent_id, MessageType.STATUS, status))

    def publish_error(self, agent_id: str, error: str) -> None:
        self.publish(BusMessage(agent_id, MessageType.ERROR, {"error": error}))

    def publish_system_event(self, agent_id: str, event: str, **details: Any) -> None:
        self.publish(
            BusMessage(agent_id, MessageType.SYSTEM_EVENT, {"event": event, **details})
        )

    def subscribe(self) -> Subscription:
        """Subscribe to future messages."""
        sub = Subscription(self.capacity)
        if self._closed:
            sub._close()
        else:
            self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Unsubscribe from messages."""
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def close(self) -> None:
        """Signal all subscribers that the bus is closing."""
        if self._closed:
            return
        self._closed = True
        for sub in self._subscribers:
            sub._close()
        self._subscribers.clear()
        logger.debug("Notification bus closed")
