"""Connectivity-restored handling: purge volatile partitions."""

from __future__ import annotations

import logging

from cache_agent.core.metrics import record_partitions_collected
from cache_agent.services.errors import CacheAgentError
from cache_agent.services.partitions import VOLATILE_KINDS, PartitionNames, PartitionStore

logger = logging.getLogger(__name__)

BACKGROUND_SYNC_TAG = "background-sync"


class SyncTrigger:
    """Invalidates volatile partitions when connectivity returns."""

    def __init__(self, store: PartitionStore, prefix: str) -> None:
        self.store = store
        # Version is irrelevant for kind lookups; any version's names parse alike.
        self._names = PartitionNames(prefix, "")

    def is_volatile(self, partition: str) -> bool:
        return self._names.kind_of(partition) in VOLATILE_KINDS

    async def handle_sync(self, tag: str) -> list[str]:
        """Purge volatile partitions for the background-sync tag.

        Other tags are ignored. Failures are logged, never raised.
        """
        if tag != BACKGROUND_SYNC_TAG:
            logger.debug("Ignoring sync tag %s", tag)
            return []

        logger.info("Background sync triggered")
        try:
            partitions = await self.store.list_partitions()
            purged = await self.store.purge_many(
                sorted(name for name in partitions if self.is_volatile(name))
            )
        except CacheAgentError as exc:
            logger.warning("Background sync failed: %s", exc)
            return []
        except Exception:
            logger.exception("Unexpected error during background sync")
            return []

        for name in purged:
            logger.info("Cleared volatile partition: %s", name)
        record_partitions_collected("sync", len(purged))
        return purged


__all__ = ["BACKGROUND_SYNC_TAG", "SyncTrigger"]
