"""Tests for the client message channel."""

from __future__ import annotations

import pytest

from cache_agent.models.agent import ClientMessage, ClientMessageType
from cache_agent.services.clients import ClientRegistry
from cache_agent.services.lifecycle import LifecycleController
from cache_agent.services.messaging import MessageChannel, UnsupportedMessage
from cache_agent.services.partitions import CacheEntry, CachedResponse
from cache_agent.services.revalidator import BackgroundRevalidator
from cache_agent.services.strategies import StrategyEngine
from tests.doubles import ORIGIN


@pytest.fixture
def clients():
    return ClientRegistry()


@pytest.fixture
def lifecycle(store, clients, origin_client, freshness):
    def engine_factory(names):
        return StrategyEngine(store, names, origin_client, freshness, BackgroundRevalidator())

    return LifecycleController(
        store,
        clients,
        engine_factory,
        prefix="teton-tracker",
        origin_base_url=ORIGIN,
        precache_urls=[],
        precache_static_urls=[],
        skip_waiting_on_install=False,
    )


@pytest.fixture
def channel(store, lifecycle, clients):
    return MessageChannel(store, lifecycle, clients)


@pytest.mark.asyncio
async def test_skip_waiting_activates_waiting_version(channel, lifecycle):
    await lifecycle.install("v1")
    await lifecycle.install("v2")
    assert lifecycle.version == "v1"

    ack = await channel.receive({"type": "SKIP_WAITING"})

    assert ack.type is ClientMessageType.SKIP_WAITING
    assert ack.acknowledged
    assert ack.detail == {"activated": "v2", "version": "v2"}
    assert lifecycle.version == "v2"


@pytest.mark.asyncio
async def test_skip_waiting_without_waiting_version_is_noop(channel, lifecycle):
    await lifecycle.install("v1")

    first = await channel.receive({"type": "SKIP_WAITING"})
    second = await channel.receive({"type": "SKIP_WAITING"})

    assert first.detail == second.detail == {"activated": None, "version": "v1"}


@pytest.mark.asyncio
async def test_clear_cache_removes_every_partition(channel, store):
    entry = CacheEntry("k", CachedResponse(status=200), captured_at=1.0)
    await store.put("teton-tracker-api-v2", "k", entry)
    await store.put("someone-else", "k", entry)

    ack = await channel.receive({"type": "CLEAR_CACHE"})

    assert ack.detail == {"partitions_removed": 2}
    assert await store.list_partitions() == set()

    again = await channel.receive(ClientMessage(type=ClientMessageType.CLEAR_CACHE))
    assert again.detail == {"partitions_removed": 0}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        {"type": "NAVIGATE", "url": "/"},
        {"type": "RELOAD"},
        {"no": "type"},
        ["CLEAR_CACHE"],
        "CLEAR_CACHE",
        None,
    ],
)
async def test_unsupported_messages_are_rejected(channel, raw):
    with pytest.raises(UnsupportedMessage):
        await channel.receive(raw)


def test_send_broadcasts_to_every_client(channel, clients):
    first = clients.connect("/runs")
    second = clients.open_window("/flights")

    delivered = channel.send(
        ClientMessage(type=ClientMessageType.NAVIGATE, payload={"url": "/"})
    )

    assert delivered == 2
    assert first.outbox.get_nowait() == {"type": "NAVIGATE", "url": "/"}
    assert second.outbox.get_nowait() == {"type": "NAVIGATE", "url": "/"}
