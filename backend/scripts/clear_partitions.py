#!/usr/bin/env python3
"""
Purge cache partitions from the configured partition store.
Without arguments every partition is deleted; pass names to delete only those.
"""

import asyncio
import sys

from cache_agent.core.config import get_settings
from cache_agent.services.valkey_store import build_partition_store


async def clear_partitions(names: list[str] | None = None) -> list[str]:
    """Delete the named partitions, or all of them."""
    settings = get_settings()
    store = build_partition_store(settings)

    print(f"Clearing partitions from the {settings.cache_storage_backend} store...")
    existing = sorted(await store.list_partitions())
    targets = [name for name in existing if not names or name in names]

    removed = await store.purge_many(targets)
    for name in removed:
        print(f"✓ Deleted partition: {name}")
    for name in sorted(set(names or []) - set(existing)):
        print(f"- Not found: {name}")

    print(f"\nRemoved {len(removed)} of {len(existing)} partition(s).")
    return removed


if __name__ == "__main__":
    asyncio.run(clear_partitions(sys.argv[1:] or None))
