from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from .config import OfflineCacheConfig

logger = logging.getLogger(__name__)

EXPLORE_ACTION = "explore"
CLOSE_ACTION = "close"


@dataclass(frozen=True)
class NotificationAction:
    action: str
    title: str
    icon: str


@dataclass
class Notification:
    title: str
    body: str
    icon: str
    badge: str
    vibrate: list[int] = field(default_factory=lambda: [100, 50, 100])
    data: dict[str, Any] = field(default_factory=dict)
    actions: list[NotificationAction] = field(default_factory=list)
    closed: bool = False

    def close(self) -> None:
        self.closed = True


def _decode_payload(payload: bytes | str | dict[str, Any] | None) -> dict[str, Any]:
    if payload is None:
        return {}
    if isinstance(payload, dict):
        return payload
    if isinstance(payload, bytes):
        try:
            payload = payload.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("push payload is not utf-8, using defaults")
            return {}
    if not payload.strip():
        return {}
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        logger.warning("push payload is not json, using defaults")
        return {}
    return data if isinstance(data, dict) else {}


def _text(value: object, default: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return default


def build_notification(
    payload: bytes | str | dict[str, Any] | None,
    *,
    config: OfflineCacheConfig,
) -> Notification:
    data = _decode_payload(payload)
    icon = config.notification_icon
    badge = config.notification_badge
    return Notification(
        title=_text(data.get("title"), config.app_name),
        body=_text(data.get("body"), config.notification_body),
        icon=icon,
        badge=badge,
        data={"date_of_arrival": int(time.time() * 1000), "primary_key": 1},
        actions=[
            NotificationAction(EXPLORE_ACTION, "View Dashboard", badge),
            NotificationAction(CLOSE_ACTION, "Close notification", badge),
        ],
    )


def click_target(action: str | None, *, config: OfflineCacheConfig) -> str | None:
    """Path to open for a notification click, or None when nothing opens."""
    if action == EXPLORE_ACTION:
        return config.dashboard_path
    if action == CLOSE_ACTION:
        return None
    return "/"


class NotificationCenter:
    """In-process stand-in for the platform notification and window APIs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.shown: list[Notification] = []
        self.opened: list[str] = []

    def show(self, notification: Notification) -> None:
        with self._lock:
            self.shown.append(notification)
        logger.info("notification: %s - %s", notification.title, notification.body)

    def open_window(self, path: str) -> None:
        with self._lock:
            self.opened.append(path)
        logger.info("opening %s", path)


def handle_push(
    payload: bytes | str | dict[str, Any] | None,
    *,
    config: OfflineCacheConfig,
    center: NotificationCenter,
) -> Notification:
    notification = build_notification(payload, config=config)
    center.show(notification)
    return notification


def handle_notification_click(
    notification: Notification,
    action: str | None,
    *,
    config: OfflineCacheConfig,
    center: NotificationCenter,
) -> str | None:
    notification.close()
    target = click_target(action, config=config)
    if target is not None:
        center.open_window(target)
    return target
