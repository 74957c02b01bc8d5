"""
Agent host: wires the partition store, engine, lifecycle and messaging
components together and registers them with the event router.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from cache_agent.core.config import Settings, get_settings
from cache_agent.services.clients import ClientRegistry
from cache_agent.services.events import AgentEvent, EventKind, EventRouter
from cache_agent.services.freshness import Clock, FreshnessTracker, TTLPolicy
from cache_agent.services.lifecycle import LifecycleController
from cache_agent.services.messaging import MessageChannel
from cache_agent.services.notifications import NotificationDispatcher
from cache_agent.services.origin import OriginClient
from cache_agent.services.partitions import PartitionNames, PartitionStore
from cache_agent.services.revalidator import BackgroundRevalidator
from cache_agent.services.strategies import StrategyEngine
from cache_agent.services.sync import SyncTrigger
from cache_agent.services.valkey_store import build_partition_store

logger = logging.getLogger(__name__)


class AgentHost:
    """Composition root for one running agent."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: PartitionStore | None = None,
        origin: OriginClient | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or build_partition_store(self.settings)
        self.origin = origin or OriginClient(
            timeout_seconds=self.settings.origin_timeout_seconds
        )
        self.freshness = FreshnessTracker(TTLPolicy.from_settings(self.settings), clock)
        self.revalidator = BackgroundRevalidator(
            max_concurrency=self.settings.revalidation_max_concurrency
        )
        self.clients = ClientRegistry()
        self.lifecycle = LifecycleController(
            self.store,
            self.clients,
            self.build_engine,
            prefix=self.settings.cache_name_prefix,
            origin_base_url=self.settings.origin_base_url,
            precache_urls=self.settings.precache_urls,
            precache_static_urls=self.settings.precache_static_urls,
            skip_waiting_on_install=self.settings.lifecycle_skip_waiting_on_install,
        )
        self.notifications = NotificationDispatcher(
            self.clients,
            default_icon=self.settings.notification_default_icon,
            default_badge=self.settings.notification_default_badge,
        )
        self.sync = SyncTrigger(self.store, self.settings.cache_name_prefix)
        self.messages = MessageChannel(self.store, self.lifecycle, self.clients)
        self.router = EventRouter()
        self._register_handlers()

        self.started_at = time.monotonic()
        self._router_task: asyncio.Task[None] | None = None

    def build_engine(self, names: PartitionNames) -> StrategyEngine:
        return StrategyEngine(
            self.store,
            names,
            self.origin,
            self.freshness,
            self.revalidator,
        )

    @property
    def uptime_seconds(self) -> float:
        return time.monotonic() - self.started_at

    # ------------------------------------------------------------------
    # Routing table
    # ------------------------------------------------------------------

    def _register_handlers(self) -> None:
        self.router.register(EventKind.INSTALL, self._on_install)
        self.router.register(EventKind.ACTIVATE, self._on_activate)
        self.router.register(EventKind.FETCH, self._on_fetch)
        self.router.register(EventKind.MESSAGE, self._on_message)
        self.router.register(EventKind.PUSH, self._on_push)
        self.router.register(EventKind.NOTIFICATION_CLICK, self._on_notification_click)
        self.router.register(EventKind.SYNC, self._on_sync)

    async def _on_install(self, event: AgentEvent):
        return await self.lifecycle.install(
            event.payload.get("version") or self.settings.cache_version
        )

    async def _on_activate(self, event: AgentEvent):
        return await self.lifecycle.activate()

    async def _on_fetch(self, event: AgentEvent):
        return await self.lifecycle.handle(event.payload["request"])

    async def _on_message(self, event: AgentEvent):
        return await self.messages.receive(event.payload["message"])

    async def _on_push(self, event: AgentEvent):
        return self.notifications.handle_push(event.payload.get("data"))

    async def _on_notification_click(self, event: AgentEvent):
        return self.notifications.handle_click(
            event.payload["tag"], event.payload.get("action", "")
        )

    async def _on_sync(self, event: AgentEvent):
        return await self.sync.handle_sync(event.payload["tag"])

    async def dispatch(self, kind: EventKind, **payload: Any) -> Any:
        return await self.router.dispatch(AgentEvent(kind=kind, payload=payload))

    async def fetch(self, request: httpx.Request):
        return await self.dispatch(EventKind.FETCH, request=request)

    # ------------------------------------------------------------------
    # Lifecycle of the host itself
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Install the configured version and start the event loop."""
        if self._router_task is None:
            self._router_task = asyncio.create_task(self.router.run())
        summary = await self.dispatch(
            EventKind.INSTALL, version=self.settings.cache_version
        )
        logger.info("Agent started: %s", summary.to_dict())

    async def close(self) -> None:
        if self._router_task is not None:
            self._router_task.cancel()
            try:
                await self._router_task
            except asyncio.CancelledError:
                pass
            self._router_task = None
        await self.router.close()
        await self.revalidator.close()
        await self.origin.aclose()
        logger.info("Agent stopped")


__all__ = ["AgentHost"]
