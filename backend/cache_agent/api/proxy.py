"""
Interception proxy.

Every path not claimed by the agent's own routes is rebuilt against the
origin and served through the active cache version.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from cache_agent.api.v1.shared.dependencies import get_agent
from cache_agent.api.v1.shared.responses import build_origin_request, to_fastapi_response
from cache_agent.services.agent import AgentHost

router = APIRouter()

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@router.api_route("/{path:path}", methods=PROXY_METHODS, include_in_schema=False)
async def intercept(request: Request, agent: AgentHost = Depends(get_agent)) -> Response:
    outbound = await build_origin_request(request, agent.settings.origin_base_url)
    cached = await agent.fetch(outbound)
    return to_fastapi_response(cached)
