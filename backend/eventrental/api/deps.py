"""
Shared route dependencies.
"""

from eventrental.services.interfaces.notifier import NotificationDispatcher
from eventrental.services import notifier_factory


def get_notifier() -> NotificationDispatcher:
    """Notification dispatcher for post-commit side effects. Overridden in tests."""
    return notifier_factory.get_notifier()
