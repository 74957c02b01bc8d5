"""Caching strategies executed per resource category.

Every strategy makes at most one synchronous origin call per request and
always yields a response: a cached entry, the origin's answer, or the typed
fallback. Background refreshes are detached through the revalidator.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

import httpx

from cache_agent.core.metrics import record_cache_event
from cache_agent.core.telemetry import strategy_span
from cache_agent.services.classifier import (
    DEFAULT_RULES,
    ClassifierRules,
    ResourceCategory,
    classify,
    is_interceptable,
    is_navigation_request,
)
from cache_agent.services.errors import (
    CacheAgentError,
    CacheMiss,
    NetworkUnavailable,
    OriginError,
)
from cache_agent.services.freshness import FreshnessTracker
from cache_agent.services.origin import OriginClient
from cache_agent.services.partitions import (
    CacheEntry,
    CachedResponse,
    Partition,
    PartitionNames,
    PartitionStore,
    cache_key,
    request_key,
)
from cache_agent.services.revalidator import BackgroundRevalidator

logger = logging.getLogger(__name__)

CACHE_STATUS_HEADER = "x-cache-status"

FALLBACK_STATUS = 503
FALLBACK_REASON = "Service Unavailable"

Strategy = Callable[[httpx.Request, ResourceCategory], Awaitable[CachedResponse]]


def tagged(response: CachedResponse, status: str) -> CachedResponse:
    return response.with_headers(**{CACHE_STATUS_HEADER: status})


def typed_fallback() -> CachedResponse:
    """Fixed response returned when nothing cached can stand in."""
    return CachedResponse(
        status=FALLBACK_STATUS,
        reason=FALLBACK_REASON,
        headers={CACHE_STATUS_HEADER: "fallback"},
    )


class StrategyEngine:
    """Runs the caching algorithm selected by the request's category."""

    def __init__(
        self,
        store: PartitionStore,
        names: PartitionNames,
        origin: OriginClient,
        freshness: FreshnessTracker,
        revalidator: BackgroundRevalidator,
        rules: ClassifierRules = DEFAULT_RULES,
    ) -> None:
        self.store = store
        self.names = names
        self.origin = origin
        self.freshness = freshness
        self.revalidator = revalidator
        self.rules = rules
        self._strategies: dict[ResourceCategory, tuple[str, Strategy]] = {
            ResourceCategory.STATIC_ASSET: ("cache_first", self.cache_first),
            ResourceCategory.NETWORK_FIRST_API: ("network_first", self.network_first),
            ResourceCategory.CACHEABLE_API: ("ttl_api", self.ttl_api),
            ResourceCategory.IMAGE: ("image", self.image),
            ResourceCategory.DEFAULT: (
                "stale_while_revalidate",
                self.stale_while_revalidate,
            ),
        }

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def handle(self, request: httpx.Request) -> CachedResponse:
        """Serve one intercepted request. Never raises."""
        if not is_interceptable(request):
            return await self.pass_through(request)

        category = classify(request, self.rules)
        name, strategy = self._strategies[category]
        try:
            with strategy_span(name, str(request.url)):
                return await strategy(request, category)
        except OriginError as exc:
            # No cached value: relay the origin's own answer.
            return tagged(exc.response, "miss")
        except CacheAgentError as exc:
            logger.warning("%s failed for %s: %s", name, request.url, exc)
            return await self.fallback(request)

    async def pass_through(self, request: httpx.Request) -> CachedResponse:
        """Forward a non-cacheable request untouched."""
        try:
            response = await self.origin.fetch(request, category="bypass")
        except NetworkUnavailable as exc:
            logger.warning("Pass-through failed for %s %s: %s", request.method, request.url, exc)
            return typed_fallback()
        return tagged(response, "bypass")

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def cache_first(
        self, request: httpx.Request, category: ResourceCategory
    ) -> CachedResponse:
        partition = await self._partition(category)
        key = request_key(request)

        cached = await partition.get(key)
        if cached is not None:
            status = self._hit_status(cached)
            record_cache_event(partition.name, status)
            self._schedule_refresh(partition, request, category)
            return tagged(cached.response, status)

        record_cache_event(partition.name, "miss")
        response = await self._fetch(request, category)
        return tagged(await self._store(partition, key, response, category), "miss")

    async def network_first(
        self, request: httpx.Request, category: ResourceCategory
    ) -> CachedResponse:
        partition = await self._partition(category)
        key = request_key(request)

        try:
            response = await self._fetch(request, category)
        except (NetworkUnavailable, OriginError) as exc:
            logger.warning("Network failed for %s, trying cache: %s", request.url, exc)
            cached = await partition.get(key)
            if cached is not None:
                record_cache_event(partition.name, "stale_return")
                return tagged(cached.response, "stale")
            raise

        record_cache_event(partition.name, "network")
        return tagged(await self._store(partition, key, response, category), "miss")

    async def stale_while_revalidate(
        self, request: httpx.Request, category: ResourceCategory
    ) -> CachedResponse:
        partition = await self._partition(category)
        key = request_key(request)

        # Cache wins whenever it holds a value at decision time.
        cached = await partition.get(key)
        if cached is not None:
            record_cache_event(partition.name, "hit")
            self._schedule_refresh(partition, request, category)
            return tagged(cached.response, "hit")

        record_cache_event(partition.name, "miss")
        response = await self._fetch(request, category)
        return tagged(await self._store(partition, key, response, category), "miss")

    async def ttl_api(
        self, request: httpx.Request, category: ResourceCategory
    ) -> CachedResponse:
        partition = await self._partition(category)
        key = request_key(request)
        ttl = self.freshness.policy.api_ttl

        cached = await partition.get(key)
        if cached is not None and self.freshness.is_fresh(cached, ttl):
            record_cache_event(partition.name, "hit")
            return tagged(cached.response, "hit")

        record_cache_event(partition.name, "expired" if cached else "miss")
        try:
            response = await self._fetch(request, category)
        except (NetworkUnavailable, OriginError) as exc:
            if cached is not None:
                logger.info("Returning stale cache for %s: %s", request.url, exc)
                record_cache_event(partition.name, "stale_return")
                return tagged(cached.response, "stale")
            raise

        stored = await self._store(partition, key, response, category)
        return tagged(stored, "refresh" if cached else "miss")

    async def image(
        self, request: httpx.Request, category: ResourceCategory
    ) -> CachedResponse:
        partition = await self._partition(category)
        key = request_key(request)

        cached = await partition.get(key)
        if cached is not None:
            status = self._hit_status(cached)
            record_cache_event(partition.name, status)
            return tagged(cached.response, status)

        record_cache_event(partition.name, "miss")
        response = await self._fetch(request, category)
        if not response.content_type.startswith("image/"):
            record_cache_event(partition.name, "not_stored")
            return tagged(response, "miss")
        return tagged(await self._store(partition, key, response, category), "miss")

    # ------------------------------------------------------------------
    # Fallback
    # ------------------------------------------------------------------

    async def fallback(self, request: httpx.Request) -> CachedResponse:
        """App shell for navigations when available, else a fixed 503."""
        if is_navigation_request(request):
            shell = await self.store.open(self.names.shell)
            shell_request = httpx.Request("GET", request.url.join("/"))
            try:
                entry = await shell.require(cache_key("GET", shell_request.url))
            except CacheMiss:
                logger.info("No cached app shell for %s", request.url)
            else:
                record_cache_event(shell.name, "fallback_shell")
                if not self.freshness.is_fresh(entry, self.freshness.policy.fallback_ttl):
                    self._schedule_refresh(
                        shell, shell_request, ResourceCategory.DEFAULT
                    )
                return tagged(entry.response, "fallback")

        record_cache_event("fallback", "typed")
        return typed_fallback()

    async def precache(self, partition_name: str, url: str) -> CachedResponse:
        """Fetch url and store it in the named partition.

        Raises NetworkUnavailable or OriginError when the resource could not
        be cached.
        """
        request = httpx.Request("GET", url)
        category = classify(request, self.rules)
        partition = await self.store.open(partition_name)
        response = await self._fetch(request, category)
        return await self._store(partition, request_key(request), response, category)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _partition(self, category: ResourceCategory) -> Partition:
        return await self.store.open(self.names.for_category(category))

    async def _fetch(
        self, request: httpx.Request, category: ResourceCategory
    ) -> CachedResponse:
        """Fetch from origin, raising OriginError for non-2xx answers."""
        response = await self.origin.fetch(request, category=category.value)
        if not response.ok:
            raise OriginError(response)
        return response

    async def _store(
        self,
        partition: Partition,
        key: str,
        response: CachedResponse,
        category: ResourceCategory,
    ) -> CachedResponse:
        entry = self.freshness.stamp(key, response, category)
        await partition.put(key, entry)
        record_cache_event(partition.name, "store")
        return entry.response

    def _hit_status(self, cached: CacheEntry) -> str:
        # Entries past their category TTL are still served, never evicted.
        return "hit" if self.freshness.is_fresh_for_category(cached) else "stale"

    def _schedule_refresh(
        self,
        partition: Partition,
        request: httpx.Request,
        category: ResourceCategory,
    ) -> None:
        key = request_key(request)

        async def refresh() -> None:
            response = await self._fetch(request, category)
            await self._store(partition, key, response, category)

        self.revalidator.schedule(
            f"{partition.name}|{key}", refresh, cache_name=partition.name
        )


__all__ = [
    "CACHE_STATUS_HEADER",
    "FALLBACK_STATUS",
    "StrategyEngine",
    "tagged",
    "typed_fallback",
]
