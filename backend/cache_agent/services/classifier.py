"""Map intercepted requests to a resource category.

Classification is a pure function of the request's method, URL and Accept
header. Precedence: static asset > network-first API > cacheable API >
image > default.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

import httpx


class ResourceCategory(str, Enum):
    """Resource categories, each served by one caching strategy."""

    STATIC_ASSET = "static_asset"
    IMAGE = "image"
    NETWORK_FIRST_API = "network_first_api"
    CACHEABLE_API = "cacheable_api"
    DEFAULT = "default"


CACHE_FIRST_PATTERNS = (
    re.compile(r"\.(?:js|css|woff2?|ttf|eot)$"),
    re.compile(r"/logo\."),
    re.compile(r"/favicon\."),
    re.compile(r"/manifest\.json$"),
)

# Critical read/write endpoints that must prefer live data
NETWORK_FIRST_PATTERNS = (
    re.compile(r"/api/runs$"),
    re.compile(r"/api/notifications$"),
    re.compile(r"/api/auth/"),
)

CACHEABLE_API_PATTERNS = (
    # TomTom
    re.compile(r"^https://api\.tomtom\.com/routing"),
    re.compile(r"^https://api\.tomtom\.com/traffic"),
    # AviationStack
    re.compile(r"^https://api\.aviationstack\.com"),
    # Origin application
    re.compile(r"/api/runs"),
    re.compile(r"/api/preferences"),
    re.compile(r"/api/notifications"),
    re.compile(r"/api/flights"),
    re.compile(r"/api/organizations"),
    re.compile(r"/api/config"),
)

IMAGE_EXTENSION_PATTERN = re.compile(r"\.(png|jpg|jpeg|gif|webp|svg)$", re.IGNORECASE)

INTERCEPTED_METHODS = frozenset({"GET"})
INTERCEPTED_SCHEMES = frozenset({"http", "https"})


@dataclass(frozen=True)
class ClassifierRules:
    """Pattern lists consulted by :func:`classify`."""

    cache_first: tuple[re.Pattern[str], ...] = CACHE_FIRST_PATTERNS
    network_first: tuple[re.Pattern[str], ...] = NETWORK_FIRST_PATTERNS
    cacheable_api: tuple[re.Pattern[str], ...] = CACHEABLE_API_PATTERNS
    api_path_prefix: str = "/api/"
    image_extensions: re.Pattern[str] = field(default=IMAGE_EXTENSION_PATTERN)


DEFAULT_RULES = ClassifierRules()


def is_interceptable(request: httpx.Request) -> bool:
    """Only GET requests over http(s) are served through the cache."""
    return (
        request.method.upper() in INTERCEPTED_METHODS
        and request.url.scheme in INTERCEPTED_SCHEMES
    )


def is_navigation_request(request: httpx.Request) -> bool:
    """True for top-level document loads."""
    if request.headers.get("sec-fetch-mode", "").lower() == "navigate":
        return True
    accept = request.headers.get("accept", "")
    return request.method.upper() == "GET" and accept.startswith("text/html")


def classify(
    request: httpx.Request, rules: ClassifierRules = DEFAULT_RULES
) -> ResourceCategory:
    """Return the resource category for a request.

    Total and side-effect free: every request maps to exactly one category.
    """
    path = request.url.path
    href = str(request.url)

    if any(pattern.search(path) for pattern in rules.cache_first):
        return ResourceCategory.STATIC_ASSET

    if any(pattern.search(path) for pattern in rules.network_first):
        return ResourceCategory.NETWORK_FIRST_API

    if path.startswith(rules.api_path_prefix) or any(
        pattern.search(href) for pattern in rules.cacheable_api
    ):
        return ResourceCategory.CACHEABLE_API

    accept = request.headers.get("accept", "")
    if "image/" in accept or rules.image_extensions.search(path):
        return ResourceCategory.IMAGE

    return ResourceCategory.DEFAULT


__all__ = [
    "ClassifierRules",
    "DEFAULT_RULES",
    "ResourceCategory",
    "classify",
    "is_interceptable",
    "is_navigation_request",
]
