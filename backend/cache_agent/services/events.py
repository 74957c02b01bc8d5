"""
Explicit event routing.

Every lifecycle, request and messaging event the agent reacts to goes
through a single routing table keyed by ``EventKind``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    INSTALL = "install"
    ACTIVATE = "activate"
    FETCH = "fetch"
    MESSAGE = "message"
    PUSH = "push"
    NOTIFICATION_CLICK = "notification_click"
    SYNC = "sync"


@dataclass
class AgentEvent:
    kind: EventKind
    payload: dict[str, Any] = field(default_factory=dict)


EventHandler = Callable[[AgentEvent], Awaitable[Any]]


class UnroutedEvent(LookupError):
    """Raised when no handler is registered for an event kind."""


class EventRouter:
    """Routing table from event kind to async handler."""

    def __init__(self) -> None:
        self._handlers: dict[EventKind, EventHandler] = {}
        self._queue: asyncio.Queue[AgentEvent] = asyncio.Queue()
        self._tasks: set[asyncio.Task[Any]] = set()

    def register(self, kind: EventKind, handler: EventHandler) -> None:
        if kind in self._handlers:
            raise ValueError(f"Handler already registered for {kind.value}")
        self._handlers[kind] = handler

    @property
    def kinds(self) -> frozenset[EventKind]:
        return frozenset(self._handlers)

    async def dispatch(self, event: AgentEvent) -> Any:
        """Run the handler for event and return its result."""
        handler = self._handlers.get(event.kind)
        if handler is None:
            raise UnroutedEvent(f"No handler for {event.kind.value}")
        logger.debug("Dispatching %s event", event.kind.value)
        return await handler(event)

    def post(self, event: AgentEvent) -> None:
        """Queue event for the dispatch loop."""
        self._queue.put_nowait(event)

    async def run(self) -> None:
        """Dispatch queued events, each as its own task, until cancelled."""
        while True:
            event = await self._queue.get()
            task = asyncio.create_task(self._dispatch_logged(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            self._queue.task_done()

    async def _dispatch_logged(self, event: AgentEvent) -> None:
        try:
            await self.dispatch(event)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Handler for %s event failed", event.kind.value)

    async def join(self) -> None:
        """Wait until every queued event has been dispatched and finished."""
        await self._queue.join()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["AgentEvent", "EventHandler", "EventKind", "EventRouter", "UnroutedEvent"]
