"""Detached, best-effort cache refreshes."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from cache_agent.core.metrics import record_revalidation
from cache_agent.services.errors import CacheAgentError

logger = logging.getLogger(__name__)

RefreshFunc = Callable[[], Awaitable[object]]


class BackgroundRevalidator:
    """
    Fire-and-forget refresh runner.

    - Each refresh runs as its own asyncio task, never awaited by the caller
    - At most one refresh per cache key is in flight
    - Concurrency is bounded by a semaphore
    - Failures are logged and counted, never propagated
    """

    def __init__(self, max_concurrency: int = 4) -> None:
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._tasks: set[asyncio.Task[None]] = set()
        self._in_flight: set[str] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def is_revalidating(self, key: str) -> bool:
        return key in self._in_flight

    def schedule(
        self, key: str, refresh: RefreshFunc, *, cache_name: str
    ) -> asyncio.Task[None] | None:
        """Start a detached refresh unless one is already running for key."""
        if key in self._in_flight:
            logger.debug("Already revalidating: %s", key)
            record_revalidation(cache_name, "deduplicated")
            return None

        self._in_flight.add(key)
        task = asyncio.create_task(self._run(key, refresh, cache_name))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, key: str, refresh: RefreshFunc, cache_name: str) -> None:
        try:
            async with self._semaphore:
                logger.debug("Background revalidation started: %s", key)
                await refresh()
            record_revalidation(cache_name, "success")
            logger.debug("Background revalidation complete: %s", key)
        except CacheAgentError as exc:
            record_revalidation(cache_name, "failed")
            logger.warning("Background revalidation failed: %s - %s", key, exc)
        except asyncio.CancelledError:
            record_revalidation(cache_name, "cancelled")
            raise
        except Exception:
            record_revalidation(cache_name, "unexpected_error")
            logger.exception("Unexpected error while revalidating %s", key)
        finally:
            self._in_flight.discard(key)

    async def drain(self) -> None:
        """Wait for every scheduled refresh to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding refreshes."""
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["BackgroundRevalidator"]
