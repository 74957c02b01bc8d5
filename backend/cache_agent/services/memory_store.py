"""In-memory partition store.

Used as the default backend, as the fallback for the Valkey store while
Valkey is unreachable, and as the test double.
"""

from __future__ import annotations

import asyncio

from cache_agent.services.partitions import CacheEntry, PartitionStore, monotonic_entry


class InMemoryPartitionStore(PartitionStore):
    """Partitions held in process memory.

    Reads take no lock; dictionary lookups complete within a single event
    loop step, so readers never observe a half-written entry.
    """

    def __init__(self) -> None:
        self._partitions: dict[str, dict[str, CacheEntry]] = {}
        self._lock = asyncio.Lock()

    async def _ensure(self, name: str) -> None:
        async with self._lock:
            self._partitions.setdefault(name, {})

    async def get(self, partition: str, key: str) -> CacheEntry | None:
        entries = self._partitions.get(partition)
        if entries is None:
            return None
        return entries.get(key)

    async def put(self, partition: str, key: str, entry: CacheEntry) -> None:
        async with self._lock:
            entries = self._partitions.setdefault(partition, {})
            entries[key] = monotonic_entry(entry, entries.get(key))

    async def delete(self, partition: str, key: str) -> None:
        async with self._lock:
            entries = self._partitions.get(partition)
            if entries is not None:
                entries.pop(key, None)

    async def purge(self, partition: str) -> bool:
        async with self._lock:
            return self._partitions.pop(partition, None) is not None

    async def list_partitions(self) -> set[str]:
        return set(self._partitions)

    async def count(self, partition: str) -> int:
        return len(self._partitions.get(partition, {}))


__all__ = ["InMemoryPartitionStore"]
