"""
Precache job for priming a cache version ahead of traffic.

Runs the install step for the configured version against the origin so a
durable (Valkey) partition store is warm before the first client connects.
"""

from __future__ import annotations

import asyncio
import json
import logging

from cache_agent.core.config import Settings, get_settings
from cache_agent.services.agent import AgentHost
from cache_agent.services.events import EventKind
from cache_agent.services.lifecycle import InstallSummary

logger = logging.getLogger(__name__)


async def run_precache(
    *, settings: Settings | None = None, host: AgentHost | None = None
) -> InstallSummary:
    """Install the configured version once and return the precache summary."""
    settings = settings or get_settings()
    host = host or AgentHost(settings)
    try:
        return await host.dispatch(EventKind.INSTALL, version=settings.cache_version)
    finally:
        await host.close()


def _configure_logging() -> None:
    if logging.getLogger().handlers:
        return
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def _main() -> None:
    _configure_logging()
    summary = asyncio.run(run_precache())
    logger.info("Precache completed: %s", json.dumps(summary.to_dict()))


if __name__ == "__main__":
    _main()
