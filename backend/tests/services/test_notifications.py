"""Tests for push notification display and click routing."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from cache_agent.services.clients import ClientRegistry
from cache_agent.services.notifications import NotificationDispatcher, profile_for, view_target


def _payload(notification_type: str = "flight-status-change", **overrides):
    payload = {
        "type": notification_type,
        "title": "UA123 delayed",
        "body": "New departure 14:05",
        "id": "n-1",
        "timestamp": 1700000000000,
        "data": {"flightNumber": "UA123", "airport": "JAC", "runId": "r-9", "location": "JAC", "route": "US-191"},
    }
    payload.update(overrides)
    return payload


def _drain(client) -> list[dict]:
    messages = []
    while not client.outbox.empty():
        messages.append(client.outbox.get_nowait())
    return messages


@pytest.fixture
def clients():
    return ClientRegistry()


@pytest.fixture
def dispatcher(clients):
    return NotificationDispatcher(clients)


class TestDisplay:
    def test_flight_status_change_options(self, dispatcher):
        notification = dispatcher.handle_push(_payload())

        assert notification.vibrate == [200, 100, 200, 100, 200]
        assert notification.require_interaction is True
        assert [a.action for a in notification.actions] == ["view", "dismiss"]
        assert notification.actions[0].title == "View Details"
        assert notification.tag == "n-1"
        assert notification.icon == "/logo.svg"
        assert notification.badge == "/favicon.ico"
        assert notification.silent is False

    def test_data_is_merged_with_metadata(self, dispatcher):
        notification = dispatcher.handle_push(_payload())

        assert notification.data["flightNumber"] == "UA123"
        assert notification.data["type"] == "flight-status-change"
        assert notification.data["timestamp"] == 1700000000000
        assert notification.data["notificationId"] == "n-1"

    @pytest.mark.parametrize(
        ("notification_type", "vibrate", "interaction", "actions"),
        [
            ("traffic-alert", (300, 150, 300), True, ["view", "alternative", "dismiss"]),
            ("run-reminder", (200, 100, 200), True, ["view", "navigate", "dismiss"]),
            ("flight-departure-reminder", (100, 50, 100), False, ["view", "traffic", "dismiss"]),
            ("flight-arrival-reminder", (100, 50, 100), False, ["view", "traffic", "dismiss"]),
            ("something-new", (200, 100, 200), False, ["view", "dismiss"]),
        ],
    )
    def test_profile_table(self, notification_type, vibrate, interaction, actions):
        profile = profile_for(notification_type)

        assert profile.vibrate == vibrate
        assert profile.require_interaction is interaction
        assert [action for action, _ in profile.actions] == actions

    def test_icon_and_badge_overrides(self, dispatcher):
        notification = dispatcher.handle_push(_payload(icon="/custom.png", badge="/b.png"))

        assert notification.icon == "/custom.png"
        assert notification.badge == "/b.png"

    def test_serialises_require_interaction_camel_case(self, dispatcher):
        notification = dispatcher.handle_push(_payload())
        assert notification.model_dump(by_alias=True)["requireInteraction"] is True

    @pytest.mark.parametrize("raw", [None, "text", {"title": "no type"}, {"type": "x", "title": "t"}])
    def test_malformed_payload_dropped(self, dispatcher, raw, caplog):
        assert dispatcher.handle_push(raw) is None
        assert len(dispatcher.tray) == 0
        assert "Dropping malformed push payload" in caplog.text

    def test_unknown_type_is_counted_as_other(self, dispatcher):
        def shown(label):
            return REGISTRY.get_sample_value(
                "cache_agent_notification_events_total",
                {"notification_type": label, "event": "shown"},
            ) or 0.0

        before = shown("other")
        dispatcher.handle_push(_payload("promo-8f3a", id="n-x"))
        dispatcher.handle_click("n-x")

        assert shown("other") == before + 1
        assert shown("promo-8f3a") == 0.0
        assert (
            REGISTRY.get_sample_value(
                "cache_agent_notification_events_total",
                {"notification_type": "promo-8f3a", "event": "clicked"},
            )
            is None
        )

    def test_same_tag_replaces_notification(self, dispatcher):
        dispatcher.handle_push(_payload(title="first"))
        dispatcher.handle_push(_payload(title="second"))

        assert len(dispatcher.tray) == 1
        assert dispatcher.tray.get("n-1").title == "second"


class TestClicks:
    def test_view_click_opens_window_and_navigates(self, dispatcher, clients):
        dispatcher.handle_push(_payload())

        client = dispatcher.handle_click("n-1", "view")

        assert dispatcher.tray.get("n-1") is None
        assert client.url == "/"
        assert client.focused
        first, second = _drain(client)
        assert first["type"] == "NOTIFICATION_ACTION"
        assert first["action"] == "view"
        assert first["notificationType"] == "flight-status-change"
        assert first["data"]["flightNumber"] == "UA123"
        assert second["type"] == "NAVIGATE"
        assert second["url"] == "/flights"

    def test_existing_window_is_reused(self, dispatcher, clients):
        existing = clients.connect("http://origin.test/settings")
        dispatcher.handle_push(_payload("run-reminder"))

        client = dispatcher.handle_click("n-1", "view")

        assert client is existing
        assert _drain(client)[1]["url"] == "/runs"

    @pytest.mark.parametrize(
        ("notification_type", "target"),
        [
            ("flight-departure-reminder", "/flights"),
            ("flight-arrival-reminder", "/flights"),
            ("traffic-alert", "/runs"),
            ("run-reminder", "/runs"),
            ("general", "/"),
        ],
    )
    def test_view_targets(self, notification_type, target):
        assert view_target(notification_type) == target

    @pytest.mark.parametrize(
        ("action", "expected"),
        [
            ("traffic", {"type": "CHECK_TRAFFIC", "flightNumber": "UA123", "airport": "JAC"}),
            ("navigate", {"type": "NAVIGATE_TO_PICKUP", "runId": "r-9", "location": "JAC"}),
            ("alternative", {"type": "FIND_ALTERNATIVE_ROUTE", "route": "US-191"}),
        ],
    )
    def test_action_messages(self, dispatcher, action, expected):
        dispatcher.handle_push(_payload())

        client = dispatcher.handle_click("n-1", action)

        assert _drain(client)[1] == expected

    def test_dismiss_sends_only_the_action_notice(self, dispatcher):
        dispatcher.handle_push(_payload())

        client = dispatcher.handle_click("n-1", "dismiss")

        messages = _drain(client)
        assert [m["type"] for m in messages] == ["NOTIFICATION_ACTION"]

    def test_unknown_action_is_logged(self, dispatcher, caplog):
        dispatcher.handle_push(_payload())

        with caplog.at_level("INFO"):
            client = dispatcher.handle_click("n-1", "teleport")

        assert len(_drain(client)) == 1
        assert "Unknown notification action" in caplog.text

    def test_click_on_unknown_tag(self, dispatcher):
        assert dispatcher.handle_click("missing", "view") is None
