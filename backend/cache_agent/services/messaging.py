"""Control messages exchanged with foreground clients."""

from __future__ import annotations

import logging
from typing import Any

from cache_agent.core.metrics import record_partitions_collected
from cache_agent.models.agent import ClientMessage, ClientMessageType, MessageAck
from cache_agent.services.clients import ClientRegistry
from cache_agent.services.lifecycle import LifecycleController
from cache_agent.services.partitions import PartitionStore

logger = logging.getLogger(__name__)


class UnsupportedMessage(ValueError):
    """Raised for inbound messages the agent does not handle."""


class MessageChannel:
    """Handles SKIP_WAITING and CLEAR_CACHE; delivers outbound messages."""

    def __init__(
        self,
        store: PartitionStore,
        lifecycle: LifecycleController,
        clients: ClientRegistry,
    ) -> None:
        self.store = store
        self.lifecycle = lifecycle
        self.clients = clients

    async def receive(self, raw: Any) -> MessageAck:
        """Handle one inbound message and acknowledge it.

        Both supported messages are idempotent. Raises ``UnsupportedMessage``
        for anything else.
        """
        if isinstance(raw, ClientMessage):
            message = raw
        else:
            try:
                message = ClientMessage.from_wire(raw)
            except ValueError as exc:
                raise UnsupportedMessage(f"Malformed client message: {exc}") from exc

        if message.type is ClientMessageType.SKIP_WAITING:
            activation = await self.lifecycle.skip_waiting()
            logger.info("SKIP_WAITING handled (activated=%s)", activation is not None)
            return MessageAck(
                type=message.type,
                detail={
                    "activated": activation.version if activation else None,
                    "version": self.lifecycle.version,
                },
            )

        if message.type is ClientMessageType.CLEAR_CACHE:
            removed = await self.store.purge_all()
            record_partitions_collected("clear_cache", removed)
            logger.info("All caches cleared (%d partitions)", removed)
            return MessageAck(type=message.type, detail={"partitions_removed": removed})

        raise UnsupportedMessage(f"Unsupported inbound message {message.type.value}")

    def send(self, message: ClientMessage) -> int:
        """Deliver an outbound message to every foreground client."""
        return self.clients.broadcast(message)


__all__ = ["MessageChannel", "UnsupportedMessage"]
