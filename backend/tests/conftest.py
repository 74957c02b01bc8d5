from __future__ import annotations

import sys
from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from cache_agent.core.config import Settings  # noqa: E402
from cache_agent.main import create_app  # noqa: E402
from cache_agent.services.agent import AgentHost  # noqa: E402
from cache_agent.services.freshness import FreshnessTracker, TTLPolicy  # noqa: E402
from cache_agent.services.memory_store import InMemoryPartitionStore  # noqa: E402
from cache_agent.services.origin import OriginClient  # noqa: E402
from cache_agent.services.partitions import PartitionNames  # noqa: E402
from cache_agent.services.revalidator import BackgroundRevalidator  # noqa: E402
from cache_agent.services.strategies import StrategyEngine  # noqa: E402

from tests.doubles import ORIGIN, FakeValkey, ManualClock, OriginStub  # noqa: E402

# Import service availability helpers for use in tests
from tests.service_availability import (  # noqa: E402, F401
    is_valkey_available,
    requires_valkey,
    skip_if_no_valkey,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "requires_valkey: skip test if Valkey is not available"
    )
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


@pytest.fixture()
def fake_valkey() -> FakeValkey:
    return FakeValkey()


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def origin() -> OriginStub:
    return OriginStub()


@pytest.fixture()
def origin_client(origin: OriginStub) -> OriginClient:
    return OriginClient(timeout_seconds=1.0, transport=origin.transport)


@pytest.fixture()
def store() -> InMemoryPartitionStore:
    return InMemoryPartitionStore()


@pytest.fixture()
def names() -> PartitionNames:
    return PartitionNames("teton-tracker", "v2")


@pytest.fixture()
def ttl_policy() -> TTLPolicy:
    return TTLPolicy(static_ttl=604800, image_ttl=86400, api_ttl=1800, fallback_ttl=3600)


@pytest.fixture()
def freshness(ttl_policy: TTLPolicy, clock: ManualClock) -> FreshnessTracker:
    return FreshnessTracker(ttl_policy, clock)


@pytest.fixture()
def engine(
    store: InMemoryPartitionStore,
    names: PartitionNames,
    origin_client: OriginClient,
    freshness: FreshnessTracker,
) -> StrategyEngine:
    return StrategyEngine(store, names, origin_client, freshness, BackgroundRevalidator())


@pytest.fixture()
def agent_settings() -> Settings:
    return Settings(
        ORIGIN_BASE_URL=ORIGIN,
        PRECACHE_URLS="/,/logo.svg",
        PRECACHE_STATIC_URLS="/styles/globals.css",
        CACHE_STORAGE_BACKEND="memory",
        UPSTREAM_ALLOWED_HOSTS="api.tomtom.com",
    )


@pytest.fixture()
def agent(
    agent_settings: Settings,
    store: InMemoryPartitionStore,
    origin_client: OriginClient,
    clock: ManualClock,
) -> AgentHost:
    return AgentHost(agent_settings, store=store, origin=origin_client, clock=clock)


@pytest.fixture()
def api_client(agent: AgentHost, origin: OriginStub) -> Iterator[TestClient]:
    """Test client around an agent whose origin is the scripted stub."""
    origin.add("/", "<html>shell</html>", content_type="text/html")
    origin.add("/logo.svg", "<svg/>", content_type="image/svg+xml")
    origin.add("/styles/globals.css", "body{}", content_type="text/css")

    app = create_app(agent)
    with TestClient(app) as client:
        yield client
