"""Notification port used for low-stock alerts, plus the bundled adapters."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Protocol

import structlog

from .domain import Notification
from .errors import NotFoundError
from .repository import InventoryStore, RecordNotFoundError

logger = structlog.get_logger(__name__)


class NotificationPort(Protocol):
    """Fire-and-forget sink for user-facing notifications."""

    def create_notification(self, notification: Notification) -> None: ...


def dispatch_safely(port: NotificationPort, notification: Notification) -> bool:
    """Deliver a notification; a failing channel is logged, never raised."""

    try:
        port.create_notification(notification)
    except Exception:
        logger.warning(
            "Notification dispatch failed",
            notification_type=notification.type.value,
            entity_id=notification.entity_id,
            exc_info=True,
        )
        return False
    return True


class LoggingNotifier:
    """Writes notifications to the log only."""

    def create_notification(self, notification: Notification) -> None:
        logger.info(
            "Notification",
            notification_type=notification.type.value,
            title=notification.title,
            message=notification.message,
            roles=notification.roles,
        )


class NotificationInbox:
    """Stores notifications so each role can read its feed."""

    def __init__(
        self,
        store: InventoryStore,
        *,
        listeners: Optional[List[Callable[[Notification], None]]] = None,
    ) -> None:
        self._store = store
        self._listeners = list(listeners or [])

    def subscribe(self, listener: Callable[[Notification], None]) -> None:
        self._listeners.append(listener)

    def create_notification(self, notification: Notification) -> None:
        self._store.notifications.add(notification.id, notification)
        for listener in self._listeners:
            listener(notification)

    def list_for_role(
        self, role: str, *, user_id: Optional[str] = None, limit: int = 30
    ) -> Dict[str, object]:
        safe_limit = min(max(int(limit or 30), 1), 200)
        items = [
            notification
            for notification in reversed(self._store.notifications.list())
            if role in notification.roles
        ]
        items.sort(key=lambda notification: notification.created_at, reverse=True)
        items = items[:safe_limit]
        unread = sum(1 for notification in items if user_id not in notification.read_by)
        return {"items": items, "unread_count": unread}

    def mark_read(self, notification_id: str, user_id: str) -> Notification:
        try:
            notification = self._store.notifications.get(notification_id)
        except RecordNotFoundError as exc:
            raise NotFoundError(
                f"Notification {notification_id!r} not found", entity="notification"
            ) from exc
        if user_id not in notification.read_by:
            notification.read_by.append(user_id)
            self._store.notifications.upsert(notification.id, notification)
        return notification

    def mark_all_read(self, role: str, user_id: str) -> int:
        marked = 0
        with self._store.atomic():
            for notification in self._store.notifications.list():
                if role in notification.roles and user_id not in notification.read_by:
                    notification.read_by.append(user_id)
                    self._store.notifications.upsert(notification.id, notification)
                    marked += 1
        return marked


__all__ = [
    "NotificationPort",
    "dispatch_safely",
    "LoggingNotifier",
    "NotificationInbox",
]
