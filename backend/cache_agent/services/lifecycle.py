"""
Version lifecycle: install, waiting, activation and cutover.

A version moves one way through INSTALLING -> WAITING -> ACTIVE -> REDUNDANT.
Activation garbage-collects partitions outside the new version's allow-list
and claims every foreground client before the controller pointer moves.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable
from urllib.parse import urljoin

import httpx

from cache_agent.core.metrics import record_partitions_collected
from cache_agent.services.clients import ClientRegistry
from cache_agent.services.errors import CacheAgentError
from cache_agent.services.partitions import (
    PARTITION_KINDS,
    STATIC,
    CachedResponse,
    PartitionNames,
    PartitionStore,
)
from cache_agent.services.strategies import StrategyEngine, typed_fallback

logger = logging.getLogger(__name__)

EngineFactory = Callable[[PartitionNames], StrategyEngine]


class LifecycleState(str, Enum):
    INSTALLING = "installing"
    WAITING = "waiting"
    ACTIVE = "active"
    REDUNDANT = "redundant"


@dataclass(slots=True)
class InstallSummary:
    """Aggregate precache statistics for one install."""

    version: str
    cached: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "cached": self.cached,
            "failed": self.failed,
        }


@dataclass(slots=True)
class ActivationSummary:
    version: str
    previous: str | None = None
    deleted_partitions: list[str] = field(default_factory=list)
    clients_claimed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "previous": self.previous,
            "deleted_partitions": self.deleted_partitions,
            "clients_claimed": self.clients_claimed,
        }


class AgentVersion:
    """One installed cache version and the engine serving it."""

    def __init__(self, names: PartitionNames, engine: StrategyEngine) -> None:
        self.names = names
        self.engine = engine
        self.state = LifecycleState.INSTALLING

    @property
    def version(self) -> str:
        return self.names.version

    def __repr__(self) -> str:
        return f"AgentVersion({self.version!r}, {self.state.value})"


class LifecycleController:
    """Owns the controller pointer and drives version transitions."""

    def __init__(
        self,
        store: PartitionStore,
        clients: ClientRegistry,
        engine_factory: EngineFactory,
        *,
        prefix: str,
        origin_base_url: str,
        precache_urls: Iterable[str] = (),
        precache_static_urls: Iterable[str] = (),
        skip_waiting_on_install: bool = True,
    ) -> None:
        self.store = store
        self.clients = clients
        self.engine_factory = engine_factory
        self.prefix = prefix
        self.origin_base_url = origin_base_url.rstrip("/") + "/"
        self.precache_urls = list(precache_urls)
        self.precache_static_urls = list(precache_static_urls)
        self.skip_waiting_on_install = skip_waiting_on_install

        self.active: AgentVersion | None = None
        self.waiting: AgentVersion | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> LifecycleState | None:
        if self.waiting is not None:
            return self.waiting.state
        return self.active.state if self.active else None

    @property
    def version(self) -> str | None:
        return self.active.version if self.active else None

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    async def install(self, version: str) -> InstallSummary:
        """Install a version: open its partitions and precache resources.

        Individual precache failures are logged and skipped. The version
        ends in WAITING, or ACTIVE when skip-waiting on install is enabled
        or no version currently controls clients.
        """
        names = PartitionNames(self.prefix, version)
        agent = AgentVersion(names, self.engine_factory(names))
        logger.info("Installing cache version %s", version)

        for kind in PARTITION_KINDS:
            await self.store.open(names.name(kind))

        summary = InstallSummary(version=version)
        jobs = [(names.shell, url) for url in self.precache_urls]
        jobs += [(names.name(STATIC), url) for url in self.precache_static_urls]
        results = await asyncio.gather(
            *(self._precache(agent.engine, partition, url) for partition, url in jobs)
        )
        for (_, url), ok in zip(jobs, results):
            (summary.cached if ok else summary.failed).append(url)

        agent.state = LifecycleState.WAITING
        previous_waiting, self.waiting = self.waiting, agent
        if previous_waiting is not None:
            previous_waiting.state = LifecycleState.REDUNDANT

        logger.info(
            "Installed %s: %d cached, %d failed",
            version,
            len(summary.cached),
            len(summary.failed),
        )

        if self.skip_waiting_on_install or self.active is None:
            await self.activate()
        return summary

    async def _precache(self, engine: StrategyEngine, partition: str, path: str) -> bool:
        url = urljoin(self.origin_base_url, path)
        try:
            await engine.precache(partition, url)
        except CacheAgentError as exc:
            logger.warning("Failed to precache %s: %s", url, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    async def skip_waiting(self) -> ActivationSummary | None:
        """Force the waiting version to activate now. No-op when none waits."""
        if self.waiting is None:
            logger.debug("skip_waiting with no waiting version")
            return None
        return await self.activate()

    async def activate(self) -> ActivationSummary | None:
        async with self._lock:
            agent = self.waiting
            if agent is None:
                return None

            allow_list = agent.names.allow_list
            existing = await self.store.list_partitions()
            stale = sorted(existing - allow_list)
            deleted = await self.store.purge_many(stale)
            for name in deleted:
                logger.info("Deleting old cache partition: %s", name)
            for name in sorted(set(stale) - set(deleted)):
                logger.warning("Old cache partition %s was not deleted", name)
            record_partitions_collected("version_cutover", len(deleted))

            claimed = self.clients.claim(agent.version)

            previous = self.active
            self.active = agent
            self.waiting = None
            agent.state = LifecycleState.ACTIVE
            if previous is not None:
                previous.state = LifecycleState.REDUNDANT

            logger.info(
                "Activated cache version %s (previous=%s)",
                agent.version,
                previous.version if previous else None,
            )
            return ActivationSummary(
                version=agent.version,
                previous=previous.version if previous else None,
                deleted_partitions=deleted,
                clients_claimed=claimed,
            )

    # ------------------------------------------------------------------
    # Request routing
    # ------------------------------------------------------------------

    async def handle(self, request: httpx.Request) -> CachedResponse:
        """Route a request to the active version's engine.

        The engine is captured once, so a cutover mid-request does not
        move the request to the new version.
        """
        agent = self.active
        if agent is None:
            logger.warning("No active cache version; serving fallback for %s", request.url)
            return typed_fallback()
        return await agent.engine.handle(request)


__all__ = [
    "ActivationSummary",
    "AgentVersion",
    "InstallSummary",
    "LifecycleController",
    "LifecycleState",
]
