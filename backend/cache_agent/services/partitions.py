"""Cache partition primitives.

Defines the stored response/entry value types, request key normalization,
the per-version partition naming scheme and the abstract partition store
that the in-memory and Valkey backends implement.
"""

from __future__ import annotations

import base64
import binascii
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from cache_agent.services.classifier import ResourceCategory
from cache_agent.services.errors import CacheMiss, PartitionCorrupt

_DEFAULT_PORTS = {"http": 80, "https": 443}
_FRAMING_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})


# =============================================================================
# Stored values
# =============================================================================


@dataclass(frozen=True)
class CachedResponse:
    """An HTTP response captured in a form that can be stored and replayed."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)
    reason: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def with_headers(self, **updates: str) -> "CachedResponse":
        """Return a copy with extra headers (underscores become dashes)."""
        headers = dict(self.headers)
        for name, value in updates.items():
            headers[name.replace("_", "-").lower()] = value
        return replace(self, headers=headers)

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> "CachedResponse":
        """Capture an already-read httpx response.

        httpx hands back the decoded body, so the framing headers describing
        the wire encoding are dropped.
        """
        return cls(
            status=response.status_code,
            body=response.content,
            headers={
                name.lower(): value
                for name, value in response.headers.items()
                if name.lower() not in _FRAMING_HEADERS
            },
            reason=response.reason_phrase,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "reason": self.reason,
            "headers": self.headers,
            "body": base64.b64encode(self.body).decode("ascii"),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CachedResponse":
        return cls(
            status=int(payload["status"]),
            body=base64.b64decode(payload["body"], validate=True),
            headers={str(k).lower(): str(v) for k, v in payload["headers"].items()},
            reason=str(payload.get("reason", "")),
        )


@dataclass(frozen=True)
class CacheEntry:
    """A stored response keyed by method + normalized URL."""

    key: str
    response: CachedResponse
    captured_at: float
    category: ResourceCategory = ResourceCategory.DEFAULT

    def age(self, now: float) -> float:
        return now - self.captured_at

    def to_payload(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "captured_at": self.captured_at,
            "category": self.category.value,
            "response": self.response.to_payload(),
        }

    @classmethod
    def from_payload(cls, payload: Any) -> "CacheEntry":
        """Rebuild an entry, raising PartitionCorrupt on any malformed field."""
        try:
            return cls(
                key=str(payload["key"]),
                response=CachedResponse.from_payload(payload["response"]),
                captured_at=float(payload["captured_at"]),
                category=ResourceCategory(payload["category"]),
            )
        except (KeyError, TypeError, ValueError, AttributeError, binascii.Error) as exc:
            raise PartitionCorrupt(f"Malformed cache entry: {exc}") from exc


# =============================================================================
# Keys
# =============================================================================


def normalize_url(url: str | httpx.URL) -> str:
    """Normalize a URL for use in a cache key.

    Scheme and host are lower-cased, default ports and fragments dropped and
    query parameters sorted so equivalent requests share one entry.
    """
    parts = urlsplit(str(url))
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    port = parts.port
    netloc = host
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        netloc = f"{host}:{port}"
    query = urlencode(sorted(parse_qsl(parts.query, keep_blank_values=True)))
    return urlunsplit((scheme, netloc, parts.path or "/", query, ""))


def cache_key(method: str, url: str | httpx.URL) -> str:
    """Composite entry key: method + normalized URL."""
    return f"{method.upper()} {normalize_url(url)}"


def request_key(request: httpx.Request) -> str:
    return cache_key(request.method, request.url)


# =============================================================================
# Partition naming
# =============================================================================

SHELL = "shell"
RUNTIME = "runtime"
API = "api"
STATIC = "static"
IMAGES = "images"

PARTITION_KINDS = (SHELL, RUNTIME, API, STATIC, IMAGES)

# Partitions holding data the origin changes often; purged on reconnect.
VOLATILE_KINDS = frozenset({API})

_CATEGORY_KINDS = {
    ResourceCategory.STATIC_ASSET: STATIC,
    ResourceCategory.IMAGE: IMAGES,
    ResourceCategory.NETWORK_FIRST_API: API,
    ResourceCategory.CACHEABLE_API: API,
    ResourceCategory.DEFAULT: RUNTIME,
}


@dataclass(frozen=True)
class PartitionNames:
    """Partition names for one cache version.

    The app shell partition is ``{prefix}-{version}``; every other kind is
    ``{prefix}-{kind}-{version}``.
    """

    prefix: str
    version: str

    def name(self, kind: str) -> str:
        if kind not in PARTITION_KINDS:
            raise ValueError(f"Unknown partition kind '{kind}'")
        if kind == SHELL:
            return f"{self.prefix}-{self.version}"
        return f"{self.prefix}-{kind}-{self.version}"

    @property
    def shell(self) -> str:
        return self.name(SHELL)

    def for_category(self, category: ResourceCategory) -> str:
        return self.name(_CATEGORY_KINDS[category])

    @property
    def allow_list(self) -> frozenset[str]:
        return frozenset(self.name(kind) for kind in PARTITION_KINDS)

    def kind_of(self, partition: str) -> str | None:
        """Return the kind encoded in a partition name of any version."""
        if not partition.startswith(f"{self.prefix}-"):
            return None
        remainder = partition[len(self.prefix) + 1 :]
        kind, sep, _ = remainder.partition("-")
        if sep and kind in PARTITION_KINDS and kind != SHELL:
            return kind
        return SHELL if "-" not in remainder else None


# =============================================================================
# Store interface
# =============================================================================


@dataclass(frozen=True)
class Partition:
    """Handle to a named partition inside a store."""

    name: str
    store: "PartitionStore"

    async def get(self, key: str) -> CacheEntry | None:
        return await self.store.get(self.name, key)

    async def require(self, key: str) -> CacheEntry:
        return await self.store.require(self.name, key)

    async def put(self, key: str, entry: CacheEntry) -> None:
        await self.store.put(self.name, key, entry)

    async def count(self) -> int:
        return await self.store.count(self.name)


class PartitionStore(ABC):
    """Named, isolated buckets of cache entries.

    Implementations must make ``put`` atomic per key (last write wins) and
    must never expose a partially written entry.
    """

    async def open(self, name: str) -> Partition:
        """Create the partition if needed and return a handle (idempotent)."""
        await self._ensure(name)
        return Partition(name=name, store=self)

    async def require(self, partition: str, key: str) -> CacheEntry:
        entry = await self.get(partition, key)
        if entry is None:
            raise CacheMiss(f"No entry for '{key}' in '{partition}'")
        return entry

    @abstractmethod
    async def _ensure(self, name: str) -> None: ...

    @abstractmethod
    async def get(self, partition: str, key: str) -> CacheEntry | None:
        """Return the entry at key, or None on a miss or corrupt entry."""

    @abstractmethod
    async def put(self, partition: str, key: str, entry: CacheEntry) -> None:
        """Store an entry, overwriting any previous one."""

    @abstractmethod
    async def delete(self, partition: str, key: str) -> None:
        """Evict a single entry."""

    @abstractmethod
    async def purge(self, partition: str) -> bool:
        """Delete a partition and all of its entries."""

    @abstractmethod
    async def list_partitions(self) -> set[str]: ...

    @abstractmethod
    async def count(self, partition: str) -> int: ...

    async def purge_all(self) -> int:
        """Delete every partition, returning how many were removed."""
        removed = 0
        for name in await self.list_partitions():
            if await self.purge(name):
                removed += 1
        return removed

    async def purge_many(self, names: Iterable[str]) -> list[str]:
        removed = []
        for name in names:
            if await self.purge(name):
                removed.append(name)
        return removed


def monotonic_entry(entry: CacheEntry, existing: CacheEntry | None) -> CacheEntry:
    """Keep captured_at non-decreasing across overwrites of one key."""
    if existing is not None and existing.captured_at > entry.captured_at:
        return replace(entry, captured_at=existing.captured_at)
    return entry


__all__ = [
    "API",
    "IMAGES",
    "PARTITION_KINDS",
    "RUNTIME",
    "SHELL",
    "STATIC",
    "VOLATILE_KINDS",
    "CacheEntry",
    "CachedResponse",
    "Partition",
    "PartitionNames",
    "PartitionStore",
    "cache_key",
    "monotonic_entry",
    "normalize_url",
    "request_key",
]
