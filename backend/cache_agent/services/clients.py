"""
Foreground client registry.

Tracks the foreground windows connected over the client WebSocket. Each
client owns an outbox queue; messages posted to a window that is not yet
connected are buffered until a foreground attaches to it.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from cache_agent.models.agent import ClientMessage

logger = logging.getLogger(__name__)


@dataclass
class ForegroundClient:
    """A foreground window, connected or pending."""

    client_id: str
    url: str
    controller: str | None = None
    focused: bool = False
    connected: bool = False
    outbox: asyncio.Queue[dict[str, Any]] = field(default_factory=asyncio.Queue)


class ClientRegistry:
    """In-process registry of foreground clients."""

    def __init__(self) -> None:
        self._clients: dict[str, ForegroundClient] = {}
        self.controller: str | None = None

    def __len__(self) -> int:
        return len(self._clients)

    @property
    def connected_count(self) -> int:
        return sum(1 for client in self._clients.values() if client.connected)

    def get(self, client_id: str) -> ForegroundClient | None:
        return self._clients.get(client_id)

    def connect(self, url: str, client_id: str | None = None) -> ForegroundClient:
        """Attach a foreground, adopting a pending window when one matches."""
        if client_id and client_id in self._clients:
            client = self._clients[client_id]
        else:
            client = next(
                (
                    pending
                    for pending in self._clients.values()
                    if not pending.connected and pending.url == url
                ),
                None,
            )
        if client is None:
            client = ForegroundClient(
                client_id=client_id or str(uuid.uuid4()),
                url=url,
                controller=self.controller,
            )
            self._clients[client.client_id] = client

        client.connected = True
        client.url = url
        logger.info(
            "Foreground client connected: %s (%s), total=%d",
            client.client_id,
            url,
            len(self._clients),
        )
        return client

    def disconnect(self, client_id: str) -> None:
        client = self._clients.pop(client_id, None)
        if client is not None:
            logger.info("Foreground client disconnected: %s", client_id)

    def match_all(self, *, include_uncontrolled: bool = True) -> list[ForegroundClient]:
        clients = list(self._clients.values())
        if include_uncontrolled:
            return clients
        return [client for client in clients if client.controller is not None]

    def open_window(self, url: str) -> ForegroundClient:
        """Create a pending window for url; its outbox buffers until connected."""
        client = ForegroundClient(
            client_id=str(uuid.uuid4()),
            url=url,
            controller=self.controller,
        )
        self._clients[client.client_id] = client
        logger.info("Opened pending window %s for %s", client.client_id, url)
        return client

    def get_or_open(self, url: str) -> ForegroundClient:
        """First client whose URL contains url, else a newly opened window."""
        for client in self._clients.values():
            if url in client.url:
                return client
        return self.open_window(url)

    def claim(self, version: str) -> int:
        """Make version the controller of every known client."""
        self.controller = version
        for client in self._clients.values():
            client.controller = version
        logger.info("Version %s claimed %d client(s)", version, len(self._clients))
        return len(self._clients)

    def post_message(self, client: ForegroundClient, message: ClientMessage) -> None:
        client.outbox.put_nowait(message.to_wire())
        logger.debug("Queued %s for client %s", message.type.value, client.client_id)

    def broadcast(self, message: ClientMessage) -> int:
        clients = self.match_all()
        for client in clients:
            self.post_message(client, message)
        return len(clients)

    def focus(self, client: ForegroundClient) -> None:
        for other in self._clients.values():
            other.focused = other is client
        client.focused = True


__all__ = ["ClientRegistry", "ForegroundClient"]
