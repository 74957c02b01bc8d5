"""Cached fetches of allow-listed third-party URLs."""

from __future__ import annotations

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from cache_agent.api.v1.shared.dependencies import get_agent
from cache_agent.api.v1.shared.responses import to_fastapi_response
from cache_agent.services.agent import AgentHost

router = APIRouter()

_FORWARDED = ("accept", "accept-language")


@router.get("/fetch")
async def fetch_upstream(
    request: Request,
    url: str = Query(..., description="Absolute http(s) URL on an allowed host."),
    agent: AgentHost = Depends(get_agent),
) -> Response:
    """Serve an absolute third-party URL through the caching strategies."""
    try:
        target = httpx.URL(url)
    except httpx.InvalidURL as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    if target.scheme not in ("http", "https") or not target.host:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Only absolute http(s) URLs can be fetched.",
        )
    if target.host not in agent.settings.upstream_allowed_hosts:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Host '{target.host}' is not allowed.",
        )

    headers = {name: request.headers[name] for name in _FORWARDED if name in request.headers}
    cached = await agent.fetch(httpx.Request("GET", target, headers=headers))
    return to_fastapi_response(cached)
