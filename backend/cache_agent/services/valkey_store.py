"""
Valkey-backed partition store with resilience patterns.

Each partition is one Valkey hash (field = entry key, value = JSON entry)
and the set of partition names is tracked in a Valkey set. Provides:
- Circuit breaker for graceful degradation when Valkey is unavailable
- In-memory fallback store that only holds writes made during an outage
- Eviction of entries that fail to deserialize
"""

from __future__ import annotations

import json
import logging
from functools import lru_cache
from typing import Any, Awaitable, Callable

import valkey.asyncio as valkey

from cache_agent.core.config import Settings, get_settings
from cache_agent.core.metrics import record_cache_event
from cache_agent.services.circuit_breaker import UNAVAILABLE, CircuitBreaker
from cache_agent.services.errors import PartitionCorrupt
from cache_agent.services.memory_store import InMemoryPartitionStore
from cache_agent.services.partitions import CacheEntry, PartitionStore, monotonic_entry

logger = logging.getLogger(__name__)


class ValkeyPartitionStore(PartitionStore):
    """
    Durable partition store.

    Valkey is authoritative whenever it answers. The in-memory fallback is
    written and read only while Valkey is unreachable, and is dropped as soon
    as Valkey answers again.
    """

    def __init__(
        self,
        client: valkey.Valkey,
        *,
        namespace: str = "cache-agent",
        circuit_breaker_timeout: float = 2.0,
    ) -> None:
        self._client = client
        self._namespace = namespace
        self._circuit_breaker = CircuitBreaker(circuit_breaker_timeout)
        self._fallback = InMemoryPartitionStore()
        self._degraded = False

    @property
    def _index_key(self) -> str:
        return f"{self._namespace}:partitions"

    def _hash_key(self, partition: str) -> str:
        return f"{self._namespace}:partition:{partition}"

    async def _call(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        """Run a Valkey operation, tracking outage and recovery."""
        result = await self._circuit_breaker.protect(operation)()
        if result is UNAVAILABLE:
            self._degraded = True
        elif self._degraded:
            self._degraded = False
            dropped = await self._fallback.purge_all()
            logger.info(
                "Valkey reachable again; dropped %d outage partition(s) from memory",
                dropped,
            )
        return result

    async def _ensure(self, name: str) -> None:
        async def _add() -> int:
            return await self._client.sadd(self._index_key, name)

        if await self._call(_add) is UNAVAILABLE:
            await self._fallback._ensure(name)

    async def get(self, partition: str, key: str) -> CacheEntry | None:
        async def _get() -> str | None:
            return await self._client.hget(self._hash_key(partition), key)

        raw = await self._call(_get)
        if raw is UNAVAILABLE:
            return await self._fallback.get(partition, key)
        if raw is None:
            return None

        try:
            entry = CacheEntry.from_payload(json.loads(raw))
        except (json.JSONDecodeError, PartitionCorrupt) as exc:
            logger.warning(
                "Evicting corrupt entry '%s' from partition '%s': %s",
                key,
                partition,
                exc,
            )
            record_cache_event(partition, "corrupt")
            await self.delete(partition, key)
            return None
        return entry

    async def put(self, partition: str, key: str, entry: CacheEntry) -> None:
        existing = await self.get(partition, key)
        entry = monotonic_entry(entry, existing)
        encoded = json.dumps(entry.to_payload())

        async def _set() -> bool:
            await self._client.sadd(self._index_key, partition)
            await self._client.hset(self._hash_key(partition), key, encoded)
            return True

        if await self._call(_set) is UNAVAILABLE:
            await self._fallback.put(partition, key, entry)

    async def delete(self, partition: str, key: str) -> None:
        async def _delete() -> int:
            return await self._client.hdel(self._hash_key(partition), key)

        await self._call(_delete)
        await self._fallback.delete(partition, key)

    async def purge(self, partition: str) -> bool:
        """Delete a partition; False unless Valkey confirmed the deletion."""

        async def _purge() -> bool:
            dropped = await self._client.delete(self._hash_key(partition))
            unlisted = await self._client.srem(self._index_key, partition)
            return bool(dropped or unlisted)

        removed = await self._call(_purge)
        await self._fallback.purge(partition)
        if removed is UNAVAILABLE:
            logger.warning(
                "Could not purge partition '%s': Valkey unavailable", partition
            )
            return False
        return removed

    async def list_partitions(self) -> set[str]:
        async def _members() -> set[str]:
            return set(await self._client.smembers(self._index_key))

        names = await self._call(_members)
        if names is UNAVAILABLE:
            return await self._fallback.list_partitions()
        return names

    async def count(self, partition: str) -> int:
        async def _count() -> int:
            return int(await self._client.hlen(self._hash_key(partition)))

        result = await self._call(_count)
        if result is UNAVAILABLE:
            return await self._fallback.count(partition)
        return result


# =============================================================================
# Factory Functions
# =============================================================================


@lru_cache
def get_valkey_client() -> valkey.Valkey:
    """Return a shared Valkey client instance."""
    settings = get_settings()
    return valkey.from_url(
        settings.valkey_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.valkey_socket_timeout_seconds,
        socket_connect_timeout=settings.valkey_socket_timeout_seconds,
    )


def build_partition_store(settings: Settings) -> PartitionStore:
    """Create the partition store selected by CACHE_STORAGE_BACKEND."""
    if settings.cache_storage_backend == "valkey":
        logger.info("Using Valkey partition store at %s", settings.valkey_url)
        return ValkeyPartitionStore(
            get_valkey_client(),
            namespace=settings.valkey_namespace,
            circuit_breaker_timeout=settings.cache_circuit_breaker_timeout_seconds,
        )
    logger.info("Using in-memory partition store")
    return InMemoryPartitionStore()


__all__ = ["ValkeyPartitionStore", "build_partition_store", "get_valkey_client"]
