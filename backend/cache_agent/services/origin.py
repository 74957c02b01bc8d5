"""Outbound origin fetches.

Every fetch carries an explicit timeout and is attempted exactly once;
transport failures and timeouts surface as ``NetworkUnavailable``.
"""

from __future__ import annotations

import logging
import time

import httpx

from cache_agent.core.metrics import observe_origin_request
from cache_agent.services.errors import NetworkUnavailable
from cache_agent.services.partitions import CachedResponse

logger = logging.getLogger(__name__)

# Headers that describe a single connection and must not be forwarded.
HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailers",
        "transfer-encoding",
        "upgrade",
        "host",
        "content-length",
    }
)


def forwardable_headers(headers: httpx.Headers | dict[str, str]) -> dict[str, str]:
    return {
        name: value
        for name, value in headers.items()
        if name.lower() not in HOP_BY_HOP_HEADERS
    }


class OriginClient:
    """Thin async wrapper over ``httpx.AsyncClient`` for origin fetches."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 12.0,
        transport: httpx.AsyncBaseTransport | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout_seconds,
            transport=transport,
            follow_redirects=True,
            headers={"User-Agent": "cache-agent/0.1"},
        )

    async def __aenter__(self) -> "OriginClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def fetch(
        self, request: httpx.Request, *, category: str = "default"
    ) -> CachedResponse:
        """Send a request to the origin with identical method, URL and headers.

        Returns the captured response for any HTTP status; raises
        ``NetworkUnavailable`` if the request threw or timed out.
        """
        outbound = self.client.build_request(
            request.method,
            request.url,
            headers=forwardable_headers(request.headers),
            content=request.content if request.method.upper() != "GET" else None,
        )
        start = time.perf_counter()
        try:
            response = await self.client.send(outbound)
            await response.aread()
        except httpx.TimeoutException as exc:
            observe_origin_request(category, "timeout", time.perf_counter() - start)
            logger.warning("Origin fetch timed out for %s", request.url)
            raise NetworkUnavailable(f"Timed out fetching {request.url}") from exc
        except httpx.HTTPError as exc:
            observe_origin_request(category, "error", time.perf_counter() - start)
            logger.warning("Origin fetch failed for %s: %s", request.url, exc)
            raise NetworkUnavailable(f"Failed fetching {request.url}: {exc}") from exc

        result = "success" if response.is_success else f"http_{response.status_code}"
        observe_origin_request(category, result, time.perf_counter() - start)
        return CachedResponse.from_httpx(response)


__all__ = ["HOP_BY_HOP_HEADERS", "OriginClient", "forwardable_headers"]
