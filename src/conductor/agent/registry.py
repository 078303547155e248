"""Agent registry — concurrent map of agent id to running process."""

from __future__ import annotations

import logging
import threading
import zlib
from collections.abc import Iterator
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_SHARDS = 16


class AgentRegistry(Generic[V]):
    """Sharded lock map keyed by agent id.

    Each key hashes to one shard guarded by its own lock, so operations on
    different agents rarely contend. Insert and remove are atomic: a
    reader either sees the complete entry or nothing.
    """

    def __init__(self, shards: int = DEFAULT_SHARDS) -> None:
        if shards <= 0:
            raise ValueError("shards must be positive")
        self._shards: list[dict[str, V]] = [{} for _ in range(shards)]
        self._locks = [threading.Lock() for _ in range(shards)]

    def _index(self, agent_id: str) -> int:
        return zlib.crc32(agent_id.encode("utf-8")) % len(self._shards)

    def insert_if_absent(self, agent_id: str, value: V) -> bool:
        """Insert ``value`` unless the id is taken. Returns True if inserted."""
        i = self._index(agent_id)
        with self._locks[i]:
            shard = self._shards[i]
            if agent_id in shard:
                return False
            shard[agent_id] = value
            return True

    def get(self, agent_id: str) -> V | None:
        """Get an entry by id."""
        i = self._index(agent_id)
        with self._locks[i]:
            return self._shards[i].get(agent_id)

    def pop(self, agent_id: str) -> V | None:
        """Remove and return an entry, or None if absent."""
        i = self._index(agent_id)
        with self._locks[i]:
            return self._shards[i].pop(agent_id, None)

    def items(self) -> list[tuple[str, V]]:
        """Snapshot of all entries; each shard is copied under its lock."""
        result: list[tuple[str, V]] = []
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                result.extend(shard.items())
        return result

    def ids(self) -> list[str]:
        return [agent_id for agent_id, _ in self.items()]

    def values(self) -> list[V]:
        return [value for _, value in self.items()]

    def __contains__(self, agent_id: object) -> bool:
        if not isinstance(agent_id, str):
            return False
        return self.get(agent_id) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self.ids())

    def __len__(self) -> int:
        total = 0
        for lock, shard in zip(self._locks, self._shards):
            with lock:
                total += len(shard)
        return total
