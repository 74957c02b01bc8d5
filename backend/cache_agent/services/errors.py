"""Cache agent exception definitions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from cache_agent.services.partitions import CachedResponse


class CacheAgentError(Exception):
    """Base class for failures the strategy engine knows how to absorb."""


class NetworkUnavailable(CacheAgentError):
    """Raised when an origin fetch throws or times out."""


class OriginError(CacheAgentError):
    """Raised when the origin answers with a non-2xx status."""

    def __init__(self, response: "CachedResponse") -> None:
        super().__init__(f"Origin responded with HTTP {response.status}")
        self.response = response


class CacheMiss(CacheAgentError):
    """Raised when no entry exists at a key."""


class PartitionCorrupt(CacheAgentError):
    """Raised when a stored entry cannot be deserialized."""


__all__ = [
    "CacheAgentError",
    "NetworkUnavailable",
    "OriginError",
    "CacheMiss",
    "PartitionCorrupt",
]
