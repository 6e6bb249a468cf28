"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .notifier import NotificationDispatcher

__all__ = ['NotificationDispatcher']
