"""Freshness tracking: entry stamping, TTL policy and age checks."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol

from cache_agent.core.config import Settings, get_settings
from cache_agent.services.classifier import ResourceCategory
from cache_agent.services.partitions import CacheEntry, CachedResponse

CACHED_AT_HEADER = "x-cached-at"


class Clock(Protocol):
    def now(self) -> float:
        """Current time in epoch seconds."""
        ...


class SystemClock:
    """Wall clock used outside of tests."""

    def now(self) -> float:
        return time.time()


@dataclass
class TTLPolicy:
    """Canonical TTL table (seconds) per resource category."""

    static_ttl: int
    image_ttl: int
    api_ttl: int
    fallback_ttl: int

    def __post_init__(self) -> None:
        self._validate_ttls()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "TTLPolicy":
        settings = settings or get_settings()
        return cls(
            static_ttl=settings.cache_static_ttl_seconds,
            image_ttl=settings.cache_image_ttl_seconds,
            api_ttl=settings.cache_api_ttl_seconds,
            fallback_ttl=settings.cache_fallback_ttl_seconds,
        )

    def _validate_ttls(self) -> None:
        """Validate that all TTL values are non-negative."""
        for attr_name, value in self.__dict__.items():
            if "ttl" in attr_name and isinstance(value, (int, float)) and value < 0:
                raise ValueError(f"TTL value for {attr_name} cannot be negative: {value}")

    def ttl_for(self, category: ResourceCategory) -> int | None:
        """TTL for a category; None where entries never expire by age."""
        if category is ResourceCategory.STATIC_ASSET:
            return self.static_ttl
        if category is ResourceCategory.IMAGE:
            return self.image_ttl
        if category is ResourceCategory.CACHEABLE_API:
            return self.api_ttl
        return None


class FreshnessTracker:
    """Stamps responses with a capture time and evaluates entry age."""

    def __init__(self, policy: TTLPolicy, clock: Clock | None = None) -> None:
        self.policy = policy
        self.clock: Clock = clock or SystemClock()

    def now(self) -> float:
        return self.clock.now()

    def stamp(
        self,
        key: str,
        response: CachedResponse,
        category: ResourceCategory,
    ) -> CacheEntry:
        """Attach captured_at = now() to a response, ready to store."""
        captured_at = self.clock.now()
        stamped = response.with_headers(
            **{CACHED_AT_HEADER: str(int(captured_at * 1000))}
        )
        return CacheEntry(
            key=key,
            response=stamped,
            captured_at=captured_at,
            category=category,
        )

    def is_fresh(self, entry: CacheEntry, ttl: float) -> bool:
        return self.clock.now() - entry.captured_at < ttl

    def is_fresh_for_category(self, entry: CacheEntry) -> bool:
        ttl = self.policy.ttl_for(entry.category)
        if ttl is None:
            return True
        return self.is_fresh(entry, ttl)


__all__ = [
    "CACHED_AT_HEADER",
    "Clock",
    "FreshnessTracker",
    "SystemClock",
    "TTLPolicy",
]
