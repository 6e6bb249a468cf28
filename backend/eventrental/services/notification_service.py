"""
Notification dispatchers.

Messages are built here from the notification kind and the payload the
coordinator attaches (event title, ticket number, ...). Delivery is always
after commit; see services.transaction.after_commit.
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.core.config import get_settings
from eventrental.core.logging import get_logger
from eventrental.infrastructure.redis_client import get_redis
from eventrental.models.enums import NotificationKind
from eventrental.models.notification import Notification
from eventrental.services.interfaces.notifier import NotificationDispatcher

logger = get_logger(__name__)
settings = get_settings()

_TEMPLATES = {
    NotificationKind.EVENT_CREATED: (
        "Event Created",
        'Your event "{event_title}" was successfully created',
    ),
    NotificationKind.EQUIPMENT_CHANGED: (
        "Event Equipment Updated",
        'Equipment for "{event_title}" was updated',
    ),
    NotificationKind.EVENT_CANCELLED: (
        "Event Cancelled",
        '"{event_title}" has been cancelled',
    ),
    NotificationKind.REGISTRATION_CONFIRMED: (
        "Registration Confirmed",
        "Your registration for {event_title} has been confirmed. Ticket {ticket_number}",
    ),
    NotificationKind.REGISTRATION_WAITLISTED: (
        "Added to Waitlist",
        "You have been added to the waitlist for {event_title}",
    ),
    NotificationKind.REGISTRATION_PROMOTED: (
        "Spot Available",
        "A spot opened up: your registration for {event_title} is now confirmed. Ticket {ticket_number}",
    ),
    NotificationKind.REGISTRATION_CANCELLED: (
        "Registration Cancelled",
        "Your registration for {event_title} has been cancelled",
    ),
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render_message(kind: str, payload: dict[str, Any]) -> tuple[str, str]:
    """Return (title, message) for a notification kind."""
    title, template = _TEMPLATES[NotificationKind(kind)]
    return title, template.format_map(_Defaults(payload))


class InAppNotificationDispatcher(NotificationDispatcher):
    """Stores a notification row in its own session and transaction."""

    backend = "in_app"

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def notify(self, user_id: int, kind: str, payload: dict[str, Any]) -> None:
        title, message = render_message(kind, payload)
        async with self.session_factory() as session:
            session.add(
                Notification(
                    user_id=user_id,
                    kind=kind,
                    title=title,
                    message=message,
                    event_id=payload.get("event_id"),
                    registration_id=payload.get("registration_id"),
                )
            )
            await session.commit()
        logger.info("notification_stored", user_id=user_id, kind=kind)


class RedisNotificationDispatcher(NotificationDispatcher):
    """Publishes notifications as JSON on a Redis pub/sub channel."""

    backend = "redis"

    def __init__(self, channel: Optional[str] = None):
        self.channel = channel or settings.NOTIFICATION_CHANNEL

    async def notify(self, user_id: int, kind: str, payload: dict[str, Any]) -> None:
        client = await get_redis()
        if client is None:
            raise RuntimeError("Redis is unavailable")

        title, message = render_message(kind, payload)
        await client.publish(
            self.channel,
            json.dumps(
                {
                    "user_id": user_id,
                    "kind": kind,
                    "title": title,
                    "message": message,
                    "payload": payload,
                    "sent_at": datetime.now(timezone.utc).isoformat(),
                },
                default=str,
            ),
        )
        logger.info("notification_published", user_id=user_id, kind=kind, channel=self.channel)


class LogNotificationDispatcher(NotificationDispatcher):
    """Logs notifications without delivering them."""

    backend = "log"

    async def notify(self, user_id: int, kind: str, payload: dict[str, Any]) -> None:
        title, message = render_message(kind, payload)
        logger.info("notification", user_id=user_id, kind=kind, title=title, message=message)
