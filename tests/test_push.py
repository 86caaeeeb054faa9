from __future__ import annotations

import time

import pytest

from iepcache.config import OfflineCacheConfig
from iepcache.push import (
    CLOSE_ACTION,
    EXPLORE_ACTION,
    NotificationCenter,
    build_notification,
    click_target,
    handle_notification_click,
)


@pytest.mark.parametrize("payload", [None, "", b"", "not json", b"\xff\xfe", "[1, 2]", {}])
def test_missing_or_malformed_payload_uses_defaults(payload) -> None:
    config = OfflineCacheConfig()

    notification = build_notification(payload, config=config)

    assert notification.title == "My IEP Hero"
    assert notification.body == "You have new updates in your IEP dashboard"
    assert notification.icon == "/pwa-192x192.png"
    assert notification.badge == "/pwa-64x64.png"
    assert notification.vibrate == [100, 50, 100]


def test_payload_overrides_title_and_body() -> None:
    config = OfflineCacheConfig()

    notification = build_notification(
        '{"title": "Meeting moved", "body": "IEP review is now Friday"}', config=config
    )

    assert notification.title == "Meeting moved"
    assert notification.body == "IEP review is now Friday"


def test_blank_fields_fall_back_per_field() -> None:
    notification = build_notification(
        {"title": "  ", "body": "Goal updated"}, config=OfflineCacheConfig()
    )

    assert notification.title == "My IEP Hero"
    assert notification.body == "Goal updated"


def test_notification_carries_actions_and_arrival_data() -> None:
    before = int(time.time() * 1000)
    notification = build_notification(None, config=OfflineCacheConfig())

    assert [(a.action, a.title) for a in notification.actions] == [
        (EXPLORE_ACTION, "View Dashboard"),
        (CLOSE_ACTION, "Close notification"),
    ]
    assert all(a.icon == "/pwa-64x64.png" for a in notification.actions)
    assert notification.data["primary_key"] == 1
    assert notification.data["date_of_arrival"] >= before


def test_click_targets() -> None:
    config = OfflineCacheConfig(dashboard_path="/dashboard")

    assert click_target(EXPLORE_ACTION, config=config) == "/dashboard"
    assert click_target(CLOSE_ACTION, config=config) is None
    assert click_target(None, config=config) == "/"
    assert click_target("snooze", config=config) == "/"


def test_click_closes_notification_and_opens_window() -> None:
    config = OfflineCacheConfig()
    center = NotificationCenter()
    notification = build_notification(None, config=config)

    target = handle_notification_click(notification, EXPLORE_ACTION, config=config, center=center)

    assert target == "/dashboard"
    assert notification.closed
    assert center.opened == ["/dashboard"]


def test_close_action_opens_nothing() -> None:
    config = OfflineCacheConfig()
    center = NotificationCenter()
    notification = build_notification(None, config=config)

    target = handle_notification_click(notification, CLOSE_ACTION, config=config, center=center)

    assert target is None
    assert notification.closed
    assert center.opened == []


def test_worker_push_and_click_events(worker) -> None:
    notification = worker.dispatch("push", b'{"title": "Hi"}')
    target = worker.dispatch("notificationclick", notification, None)

    assert worker.notifications.shown == [notification]
    assert target == "/"
    assert worker.notifications.opened == ["/"]
