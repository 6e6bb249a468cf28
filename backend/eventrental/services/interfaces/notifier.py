"""
Notification dispatcher interface.
Allows swapping delivery backends without changing reservation logic.
"""

from abc import ABC, abstractmethod
from typing import Any


class NotificationDispatcher(ABC):
    """
    Interface for post-commit notification delivery.

    Implementations:
    - InAppNotificationDispatcher: stores a notification row for the user
    - RedisNotificationDispatcher: publishes to a Redis pub/sub channel
    - LogNotificationDispatcher: logs only (local development)

    Dispatch happens after the reservation has committed. Implementations
    may raise; the caller logs the failure and moves on.
    """

    backend: str = "abstract"

    @abstractmethod
    async def notify(self, user_id: int, kind: str, payload: dict[str, Any]) -> None:
        """
        Deliver one notification.

        Args:
            user_id: Recipient
            kind: NotificationKind value
            payload: Event/registration details for the message
        """
        pass
