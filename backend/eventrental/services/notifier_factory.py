"""
Notification dispatcher factory.
Configures which delivery backend the coordinator notifies through.
"""

from typing import Optional

from eventrental.core.config import get_settings
from eventrental.db.session import AsyncSessionLocal
from eventrental.services.interfaces.notifier import NotificationDispatcher
from eventrental.services.notification_service import (
    InAppNotificationDispatcher,
    LogNotificationDispatcher,
    RedisNotificationDispatcher,
)

settings = get_settings()


def build_notifier(backend: Optional[str] = None) -> NotificationDispatcher:
    """
    Build the dispatcher for `backend` (defaults to NOTIFICATION_BACKEND).

    - in_app: notification rows in the application database
    - redis: pub/sub channel for an external delivery worker
    - log: local development
    """
    backend = backend or settings.NOTIFICATION_BACKEND

    if backend == "redis":
        return RedisNotificationDispatcher()
    if backend == "log":
        return LogNotificationDispatcher()
    if backend == "in_app":
        return InAppNotificationDispatcher(AsyncSessionLocal)
    raise ValueError(f"Unknown notification backend {backend!r}")


# Singleton instance
_notifier: Optional[NotificationDispatcher] = None


def get_notifier() -> NotificationDispatcher:
    """Get notification dispatcher singleton."""
    global _notifier
    if _notifier is None:
        _notifier = build_notifier()
    return _notifier
