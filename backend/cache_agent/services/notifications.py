"""
Push notification display and click handling.

Push payloads are turned into displayable notifications from a per-type
table. Clicks are forwarded to a foreground client as client messages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from cache_agent.core.metrics import record_notification_event
from cache_agent.models.agent import (
    ClientMessage,
    ClientMessageType,
    NotificationAction,
    NotificationEvent,
    PushPayload,
)
from cache_agent.services.clients import ClientRegistry, ForegroundClient

logger = logging.getLogger(__name__)

DEFAULT_ICON = "/logo.svg"
DEFAULT_BADGE = "/favicon.ico"

FLIGHT_STATUS_CHANGE = "flight-status-change"
FLIGHT_DEPARTURE_REMINDER = "flight-departure-reminder"
FLIGHT_ARRIVAL_REMINDER = "flight-arrival-reminder"
TRAFFIC_ALERT = "traffic-alert"
RUN_REMINDER = "run-reminder"

FLIGHT_TYPES = frozenset(
    {FLIGHT_STATUS_CHANGE, FLIGHT_DEPARTURE_REMINDER, FLIGHT_ARRIVAL_REMINDER}
)


@dataclass(frozen=True)
class NotificationProfile:
    """Display behaviour for one notification type."""

    vibrate: tuple[int, ...]
    require_interaction: bool
    actions: tuple[tuple[str, str], ...]


_DISMISS = ("dismiss", "Dismiss")

_REMINDER_PROFILE = NotificationProfile(
    vibrate=(100, 50, 100),
    require_interaction=False,
    actions=(("view", "View Flight"), ("traffic", "Check Traffic"), _DISMISS),
)

NOTIFICATION_PROFILES: dict[str, NotificationProfile] = {
    FLIGHT_STATUS_CHANGE: NotificationProfile(
        vibrate=(200, 100, 200, 100, 200),
        require_interaction=True,
        actions=(("view", "View Details"), _DISMISS),
    ),
    TRAFFIC_ALERT: NotificationProfile(
        vibrate=(300, 150, 300),
        require_interaction=True,
        actions=(("view", "View Route"), ("alternative", "Find Alternative"), _DISMISS),
    ),
    RUN_REMINDER: NotificationProfile(
        vibrate=(200, 100, 200),
        require_interaction=True,
        actions=(("view", "View Details"), ("navigate", "Navigate"), _DISMISS),
    ),
    FLIGHT_DEPARTURE_REMINDER: _REMINDER_PROFILE,
    FLIGHT_ARRIVAL_REMINDER: _REMINDER_PROFILE,
}

DEFAULT_PROFILE = NotificationProfile(
    vibrate=(200, 100, 200),
    require_interaction=False,
    actions=(("view", "View"), _DISMISS),
)


def profile_for(notification_type: str) -> NotificationProfile:
    return NOTIFICATION_PROFILES.get(notification_type, DEFAULT_PROFILE)


def metric_type(notification_type: str) -> str:
    """Bounded metric label: known types as-is, anything else as "other"."""
    return notification_type if notification_type in NOTIFICATION_PROFILES else "other"


def view_target(notification_type: str) -> str:
    """Route a 'view' click navigates to."""
    if notification_type in FLIGHT_TYPES:
        return "/flights"
    if notification_type in (TRAFFIC_ALERT, RUN_REMINDER):
        return "/runs"
    return "/"


class NotificationTray:
    """Notifications currently on display, keyed by tag."""

    def __init__(self) -> None:
        self._shown: dict[str, NotificationEvent] = {}

    def __len__(self) -> int:
        return len(self._shown)

    def show(self, notification: NotificationEvent) -> None:
        # Same tag replaces the earlier notification.
        self._shown[notification.tag] = notification

    def get(self, tag: str) -> NotificationEvent | None:
        return self._shown.get(tag)

    def close(self, tag: str) -> NotificationEvent | None:
        return self._shown.pop(tag, None)

    def list(self) -> list[NotificationEvent]:
        return list(self._shown.values())


class NotificationDispatcher:
    """Builds notifications from push payloads and routes click actions."""

    def __init__(
        self,
        clients: ClientRegistry,
        tray: NotificationTray | None = None,
        *,
        default_icon: str = DEFAULT_ICON,
        default_badge: str = DEFAULT_BADGE,
    ) -> None:
        self.clients = clients
        self.tray = tray or NotificationTray()
        self.default_icon = default_icon
        self.default_badge = default_badge

    def build(self, payload: PushPayload) -> NotificationEvent:
        profile = profile_for(payload.type)
        data = {
            **payload.data,
            "type": payload.type,
            "timestamp": payload.timestamp,
            "notificationId": payload.id,
        }
        return NotificationEvent(
            type=payload.type,
            title=payload.title,
            body=payload.body,
            tag=payload.id,
            icon=payload.icon or self.default_icon,
            badge=payload.badge or self.default_badge,
            data=data,
            actions=[
                NotificationAction(action=action, title=title, icon=self.default_icon)
                for action, title in profile.actions
            ],
            vibrate=list(profile.vibrate),
            require_interaction=profile.require_interaction,
            silent=False,
        )

    def handle_push(self, raw: Any) -> NotificationEvent | None:
        """Display a notification for a push payload; drop it if malformed."""
        try:
            payload = PushPayload.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Dropping malformed push payload: %s", exc.errors())
            record_notification_event("unknown", "dropped")
            return None

        notification = self.build(payload)
        self.tray.show(notification)
        record_notification_event(metric_type(payload.type), "shown")
        logger.info("Showing %s notification %s", payload.type, notification.tag)
        return notification

    def handle_click(self, tag: str, action: str = "") -> ForegroundClient | None:
        """Close the notification and forward the action to a foreground client."""
        notification = self.tray.close(tag)
        if notification is None:
            logger.warning("Click for unknown notification %s", tag)
            return None

        notification_type = notification.type
        data = notification.data
        record_notification_event(metric_type(notification_type), "clicked")

        client = self.clients.get_or_open("/")
        self.clients.post_message(
            client,
            ClientMessage(
                type=ClientMessageType.NOTIFICATION_ACTION,
                payload={
                    "action": action,
                    "notificationType": notification_type,
                    "data": data,
                },
            ),
        )
        self.clients.focus(client)

        follow_up = self._follow_up(action, notification_type, data)
        if follow_up is not None:
            self.clients.post_message(client, follow_up)
        return client

    def _follow_up(
        self, action: str, notification_type: str, data: dict[str, Any]
    ) -> ClientMessage | None:
        if action == "view":
            return ClientMessage(
                type=ClientMessageType.NAVIGATE,
                payload={"url": view_target(notification_type), "data": data},
            )
        if action == "traffic":
            return ClientMessage(
                type=ClientMessageType.CHECK_TRAFFIC,
                payload={
                    "flightNumber": data.get("flightNumber"),
                    "airport": data.get("airport"),
                },
            )
        if action == "navigate":
            return ClientMessage(
                type=ClientMessageType.NAVIGATE_TO_PICKUP,
                payload={"runId": data.get("runId"), "location": data.get("location")},
            )
        if action == "alternative":
            return ClientMessage(
                type=ClientMessageType.FIND_ALTERNATIVE_ROUTE,
                payload={"route": data.get("route")},
            )
        if action != "dismiss":
            logger.info("Unknown notification action: %r", action)
        return None


__all__ = [
    "DEFAULT_BADGE",
    "DEFAULT_ICON",
    "NOTIFICATION_PROFILES",
    "NotificationDispatcher",
    "NotificationProfile",
    "NotificationTray",
    "metric_type",
    "profile_for",
    "view_target",
]
