"""Conversion between FastAPI requests/responses and the agent's types."""

from __future__ import annotations

import httpx
from fastapi import Request, Response

from cache_agent.services.origin import forwardable_headers
from cache_agent.services.partitions import CachedResponse


async def build_origin_request(request: Request, origin_base_url: str) -> httpx.Request:
    """Rebuild an inbound request against the origin base URL.

    Method, path, query string, headers and body are carried over; headers
    that only describe the inbound connection are dropped.
    """
    url = f"{origin_base_url.rstrip('/')}{request.url.path}"
    if request.url.query:
        url = f"{url}?{request.url.query}"
    body = await request.body()
    return httpx.Request(
        request.method,
        url,
        headers=forwardable_headers(request.headers),
        content=body or None,
    )


def to_fastapi_response(cached: CachedResponse) -> Response:
    """Replay a captured response to the caller."""
    return Response(
        content=cached.body,
        status_code=cached.status,
        headers=forwardable_headers(cached.headers),
    )
