from __future__ import annotations

import pytest

from cache_agent.jobs.precache import run_precache
from cache_agent.services.agent import AgentHost


@pytest.mark.asyncio
async def test_run_precache_installs_configured_version(agent_settings, store, origin, origin_client):
    origin.add("/", "<html>shell</html>", content_type="text/html")
    origin.add("/styles/globals.css", "body{}", content_type="text/css")
    host = AgentHost(agent_settings, store=store, origin=origin_client)

    summary = await run_precache(settings=agent_settings, host=host)

    assert summary.version == "v2"
    assert summary.cached == ["/", "/styles/globals.css"]
    assert summary.failed == ["/logo.svg"]
    assert await store.count("teton-tracker-v2") == 1
    assert origin_client.client.is_closed
