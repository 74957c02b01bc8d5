"""Shared utilities for API v1 endpoints.

This package provides the dependency providers and response helpers used
across the control endpoints and the interception proxy.
"""

from cache_agent.api.v1.shared.dependencies import get_agent
from cache_agent.api.v1.shared.responses import (
    build_origin_request,
    to_fastapi_response,
)

__all__ = [
    "build_origin_request",
    "get_agent",
    "to_fastapi_response",
]
