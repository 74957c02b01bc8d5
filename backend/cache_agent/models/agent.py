"""
Agent wire models.

Pydantic models for push payloads, displayed notifications, foreground client
messages and the control API responses.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class PushPayload(BaseModel):
    """Inbound push message as delivered by the push service."""

    type: str = Field(..., min_length=1, description="Notification type.")
    title: str = Field(..., description="Notification title.")
    body: str = Field("", description="Notification body text.")
    id: str = Field(..., min_length=1, description="Notification identifier.")
    data: dict[str, Any] = Field(
        default_factory=dict, description="Arbitrary metadata for the click handler."
    )
    icon: str | None = Field(None, description="Icon URL override.")
    badge: str | None = Field(None, description="Badge URL override.")
    timestamp: int | None = Field(
        None, description="Origin-side creation time in epoch milliseconds."
    )


class NotificationAction(BaseModel):
    action: str
    title: str
    icon: str | None = None


class NotificationEvent(BaseModel):
    """A notification ready to be displayed."""

    type: str
    title: str
    body: str = ""
    tag: str
    icon: str
    badge: str
    data: dict[str, Any] = Field(default_factory=dict)
    actions: list[NotificationAction] = Field(default_factory=list)
    vibrate: list[int] = Field(default_factory=list)
    require_interaction: bool = Field(False, alias="requireInteraction")
    silent: bool = False

    model_config = {"populate_by_name": True}


class ClientMessageType(str, Enum):
    SKIP_WAITING = "SKIP_WAITING"
    CLEAR_CACHE = "CLEAR_CACHE"
    NOTIFICATION_ACTION = "NOTIFICATION_ACTION"
    NAVIGATE = "NAVIGATE"
    CHECK_TRAFFIC = "CHECK_TRAFFIC"
    NAVIGATE_TO_PICKUP = "NAVIGATE_TO_PICKUP"
    FIND_ALTERNATIVE_ROUTE = "FIND_ALTERNATIVE_ROUTE"


class ClientMessage(BaseModel):
    """Message exchanged with foreground clients.

    On the wire the payload is flattened next to ``type``.
    """

    type: ClientMessageType
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {"type": self.type.value, **self.payload}

    @classmethod
    def from_wire(cls, message: Any) -> "ClientMessage":
        if not isinstance(message, dict):
            raise ValueError(
                f"Client message must be a JSON object, not {type(message).__name__}"
            )
        payload = {key: value for key, value in message.items() if key != "type"}
        return cls.model_validate({"type": message.get("type"), "payload": payload})


class MessageAck(BaseModel):
    type: ClientMessageType
    acknowledged: bool = True
    detail: dict[str, Any] = Field(default_factory=dict)


class PushAccepted(BaseModel):
    accepted: bool
    tag: str | None = None


class NotificationClick(BaseModel):
    action: str = Field("", description="Action id; empty for a body click.")


class NotificationClickResult(BaseModel):
    client_id: str
    connected: bool


class SyncRequest(BaseModel):
    tag: str = Field("background-sync", description="Sync registration tag.")


class SyncResult(BaseModel):
    tag: str
    handled: bool
    purged: list[str] = Field(default_factory=list)


class PartitionInfo(BaseModel):
    name: str
    kind: str | None = None
    entries: int = Field(..., ge=0)
    current: bool = Field(..., description="Whether the partition is in the active allow-list.")


class PartitionListResponse(BaseModel):
    version: str | None
    partitions: list[PartitionInfo]


class InstallRequest(BaseModel):
    version: str = Field(..., min_length=1, pattern=r"^[A-Za-z0-9._]+$")


class InstallResponse(BaseModel):
    version: str
    state: str
    cached: list[str]
    failed: list[str]


class HealthResponse(BaseModel):
    status: str
    environment: str
    version: str | None
    lifecycle_state: str | None
    storage_backend: str
    uptime_seconds: float
    revalidations_pending: int
    connected_clients: int


__all__ = [
    "ClientMessage",
    "ClientMessageType",
    "HealthResponse",
    "InstallRequest",
    "InstallResponse",
    "MessageAck",
    "NotificationAction",
    "NotificationClick",
    "NotificationClickResult",
    "NotificationEvent",
    "PartitionInfo",
    "PartitionListResponse",
    "PushAccepted",
    "PushPayload",
    "SyncRequest",
    "SyncResult",
]
