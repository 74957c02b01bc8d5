"""Tests for the caching strategies."""

from __future__ import annotations

import httpx
import pytest

from cache_agent.services.partitions import request_key
from cache_agent.services.strategies import CACHE_STATUS_HEADER
from tests.doubles import ORIGIN

FLIGHTS = f"{ORIGIN}/api/flights?airport=JAC"


def _get(url: str, **headers: str) -> httpx.Request:
    return httpx.Request("GET", url, headers=headers)


def _sequence(*bodies: bytes, content_type: str = "application/json"):
    remaining = list(bodies)

    def respond(request: httpx.Request) -> httpx.Response:
        body = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return httpx.Response(200, content=body, headers={"content-type": content_type})

    return respond


def _unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("connection refused", request=request)


def _status(response) -> str | None:
    return response.header(CACHE_STATUS_HEADER)


class TestTTLGatedApi:
    @pytest.mark.asyncio
    async def test_flights_scenario(self, engine, origin, clock):
        origin.add_handler(FLIGHTS, _sequence(b'{"v":"A"}', b'{"v":"B"}'))

        first = await engine.handle(_get(FLIGHTS))
        assert first.body == b'{"v":"A"}'
        assert _status(first) == "miss"
        assert origin.calls_to(FLIGHTS) == 1

        clock.advance(5 * 60)
        second = await engine.handle(_get(FLIGHTS))
        assert second.body == b'{"v":"A"}'
        assert _status(second) == "hit"
        assert origin.calls_to(FLIGHTS) == 1

        clock.advance(26 * 60)
        third = await engine.handle(_get(FLIGHTS))
        assert third.body == b'{"v":"B"}'
        assert _status(third) == "refresh"
        assert origin.calls_to(FLIGHTS) == 2
        assert third.header("x-cached-at") == str(int(clock.now() * 1000))

    @pytest.mark.asyncio
    async def test_stale_entry_served_when_origin_unreachable(self, engine, origin, clock):
        origin.add(FLIGHTS, b"cached", content_type="application/json")
        await engine.handle(_get(FLIGHTS))

        clock.advance(31 * 60)
        origin.offline = True
        response = await engine.handle(_get(FLIGHTS))

        assert response.body == b"cached"
        assert _status(response) == "stale"

    @pytest.mark.asyncio
    async def test_stale_entry_served_when_origin_errors(self, engine, origin, clock):
        origin.add(FLIGHTS, b"cached", content_type="application/json")
        await engine.handle(_get(FLIGHTS))

        clock.advance(31 * 60)
        origin.add(FLIGHTS, b"boom", status=500)
        response = await engine.handle(_get(FLIGHTS))

        assert response.status == 200
        assert response.body == b"cached"

    @pytest.mark.asyncio
    async def test_no_cache_and_offline_returns_typed_fallback(self, engine, origin):
        origin.offline = True
        response = await engine.handle(_get(FLIGHTS))

        assert response.status == 503
        assert response.body == b""
        assert _status(response) == "fallback"

    @pytest.mark.asyncio
    async def test_origin_error_without_cache_is_relayed_and_not_stored(
        self, engine, origin, store, names
    ):
        origin.add(FLIGHTS, b"missing", status=404)
        response = await engine.handle(_get(FLIGHTS))

        assert response.status == 404
        assert response.body == b"missing"
        assert await store.count(names.name("api")) == 0


class TestCacheFirst:
    URL = f"{ORIGIN}/assets/app.js"

    @pytest.mark.asyncio
    async def test_miss_then_hit_with_background_refresh(self, engine, origin, store, names):
        origin.add_handler(self.URL, _sequence(b"v1", b"v2", content_type="text/javascript"))

        first = await engine.handle(_get(self.URL))
        assert _status(first) == "miss"

        second = await engine.handle(_get(self.URL))
        assert _status(second) == "hit"
        assert second.body == b"v1"
        assert origin.calls_to(self.URL) == 1

        await engine.revalidator.drain()
        assert origin.calls_to(self.URL) == 2
        entry = await store.get(names.name("static"), request_key(_get(self.URL)))
        assert entry.response.body == b"v2"

    @pytest.mark.asyncio
    async def test_concurrent_hits_share_one_refresh(self, engine, origin):
        origin.add(self.URL, b"js", content_type="text/javascript")
        await engine.handle(_get(self.URL))

        await engine.handle(_get(self.URL))
        await engine.handle(_get(self.URL))
        await engine.revalidator.drain()

        assert origin.calls_to(self.URL) == 2

    @pytest.mark.asyncio
    async def test_hit_survives_failed_refresh(self, engine, origin):
        origin.add(self.URL, b"js", content_type="text/javascript")
        await engine.handle(_get(self.URL))

        origin.offline = True
        response = await engine.handle(_get(self.URL))
        await engine.revalidator.drain()

        assert response.body == b"js"
        assert _status(response) == "hit"

    @pytest.mark.asyncio
    async def test_hit_past_static_ttl_is_served_as_stale(self, engine, origin, clock):
        origin.add(self.URL, b"js", content_type="text/javascript")
        await engine.handle(_get(self.URL))

        clock.advance(7 * 24 * 3600)
        response = await engine.handle(_get(self.URL))

        assert response.body == b"js"
        assert _status(response) == "stale"
        assert engine.revalidator.pending == 1
        await engine.revalidator.drain()

    @pytest.mark.asyncio
    async def test_non_success_is_not_stored(self, engine, origin, store, names):
        origin.add(self.URL, b"gone", status=404)
        response = await engine.handle(_get(self.URL))

        assert response.status == 404
        assert await store.count(names.name("static")) == 0

    @pytest.mark.asyncio
    async def test_offline_without_cache_falls_back(self, engine, origin):
        origin.offline = True
        response = await engine.handle(_get(self.URL))

        assert response.status == 503


class TestNetworkFirst:
    URL = f"{ORIGIN}/api/runs"

    @pytest.mark.asyncio
    async def test_network_preferred_and_stored(self, engine, origin):
        origin.add_handler(self.URL, _sequence(b"[1]", b"[1,2]"))

        assert (await engine.handle(_get(self.URL))).body == b"[1]"
        second = await engine.handle(_get(self.URL))
        assert second.body == b"[1,2]"
        assert origin.calls_to(self.URL) == 2

    @pytest.mark.asyncio
    async def test_cached_value_when_network_fails(self, engine, origin):
        origin.add(self.URL, b"[1]")
        await engine.handle(_get(self.URL))

        origin.offline = True
        response = await engine.handle(_get(self.URL))

        assert response.body == b"[1]"
        assert _status(response) == "stale"

    @pytest.mark.asyncio
    async def test_cached_value_when_origin_errors(self, engine, origin):
        origin.add(self.URL, b"[1]")
        await engine.handle(_get(self.URL))

        origin.add(self.URL, b"oops", status=502)
        response = await engine.handle(_get(self.URL))

        assert response.status == 200
        assert response.body == b"[1]"

    @pytest.mark.asyncio
    async def test_both_failing_yields_fallback(self, engine, origin):
        origin.offline = True
        response = await engine.handle(_get(self.URL))

        assert response.status == 503
        assert _status(response) == "fallback"


class TestStaleWhileRevalidate:
    URL = f"{ORIGIN}/runs"

    @pytest.mark.asyncio
    async def test_cache_served_then_refreshed(self, engine, origin):
        origin.add_handler(self.URL, _sequence(b"old", b"new", content_type="text/html"))

        assert _status(await engine.handle(_get(self.URL))) == "miss"

        cached = await engine.handle(_get(self.URL))
        assert cached.body == b"old"
        assert _status(cached) == "hit"

        await engine.revalidator.drain()
        refreshed = await engine.handle(_get(self.URL))
        assert refreshed.body == b"new"
        await engine.revalidator.drain()

    @pytest.mark.asyncio
    async def test_offline_hit_does_not_raise(self, engine, origin):
        origin.add(self.URL, b"page", content_type="text/html")
        await engine.handle(_get(self.URL))

        origin.offline = True
        response = await engine.handle(_get(self.URL))
        await engine.revalidator.drain()

        assert response.body == b"page"


class TestFallback:
    @pytest.mark.asyncio
    async def test_navigation_gets_cached_app_shell(self, engine, origin, names):
        origin.add("/", b"<html>shell</html>", content_type="text/html")
        await engine.precache(names.shell, f"{ORIGIN}/")
        origin.add_handler("/flights", _unreachable)

        response = await engine.handle(_get(f"{ORIGIN}/flights", accept="text/html"))

        assert response.status == 200
        assert response.body == b"<html>shell</html>"
        assert _status(response) == "fallback"

    @pytest.mark.asyncio
    async def test_non_navigation_gets_503_even_with_shell(self, engine, origin, names):
        origin.add("/", b"<html>shell</html>", content_type="text/html")
        await engine.precache(names.shell, f"{ORIGIN}/")
        origin.add_handler("/runs", _unreachable)

        response = await engine.handle(_get(f"{ORIGIN}/runs", accept="application/json"))

        assert response.status == 503

    @pytest.mark.asyncio
    async def test_old_shell_is_refreshed_in_background(self, engine, origin, names, clock):
        origin.add("/", b"<html>shell</html>", content_type="text/html")
        await engine.precache(names.shell, f"{ORIGIN}/")
        origin.add_handler("/runs", _unreachable)

        clock.advance(10)
        await engine.handle(_get(f"{ORIGIN}/runs", **{"sec-fetch-mode": "navigate"}))
        await engine.revalidator.drain()
        assert origin.calls_to("/") == 1

        clock.advance(3600)
        await engine.handle(_get(f"{ORIGIN}/runs", **{"sec-fetch-mode": "navigate"}))
        await engine.revalidator.drain()
        assert origin.calls_to("/") == 2


class TestImage:
    URL = f"{ORIGIN}/photos/pickup.png"

    @pytest.mark.asyncio
    async def test_image_cached_without_background_refresh(self, engine, origin):
        origin.add(self.URL, b"\x89PNG", content_type="image/png")

        await engine.handle(_get(self.URL))
        second = await engine.handle(_get(self.URL))

        assert second.body == b"\x89PNG"
        assert _status(second) == "hit"
        assert engine.revalidator.pending == 0
        assert origin.calls_to(self.URL) == 1

    @pytest.mark.asyncio
    async def test_image_past_ttl_is_kept_and_served_as_stale(self, engine, origin, clock):
        origin.add(self.URL, b"\x89PNG", content_type="image/png")
        await engine.handle(_get(self.URL))

        clock.advance(24 * 3600 - 1)
        assert _status(await engine.handle(_get(self.URL))) == "hit"

        clock.advance(1)
        response = await engine.handle(_get(self.URL))

        assert response.body == b"\x89PNG"
        assert _status(response) == "stale"
        assert engine.revalidator.pending == 0
        assert origin.calls_to(self.URL) == 1

    @pytest.mark.asyncio
    async def test_non_image_content_type_not_stored(self, engine, origin, store, names):
        origin.add(self.URL, b"<html>login</html>", content_type="text/html")

        response = await engine.handle(_get(self.URL))

        assert response.status == 200
        assert await store.count(names.name("images")) == 0


class TestPassThrough:
    @pytest.mark.asyncio
    async def test_post_is_forwarded_and_never_cached(self, engine, origin, store):
        origin.add_handler(
            "/api/runs",
            lambda request: httpx.Response(201, json={"echo": request.content.decode()}),
        )
        response = await engine.handle(
            httpx.Request("POST", f"{ORIGIN}/api/runs", content=b"payload")
        )

        assert response.status == 201
        assert _status(response) == "bypass"
        assert await store.list_partitions() == set()

    @pytest.mark.asyncio
    async def test_post_offline_returns_fallback(self, engine, origin):
        origin.offline = True
        response = await engine.handle(httpx.Request("POST", f"{ORIGIN}/api/runs"))

        assert response.status == 503
