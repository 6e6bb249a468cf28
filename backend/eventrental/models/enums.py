"""
Closed status vocabularies shared by models, services and schemas.

Statuses are stored as plain strings. Reading a value outside these sets is
a data-integrity failure, never defaulted.
"""

from enum import Enum


class EquipmentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    CANCELLED = "cancelled"


class CapacityDecision(str, Enum):
    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    REJECTED = "rejected"


class NotificationKind(str, Enum):
    EVENT_CREATED = "event_created"
    EQUIPMENT_CHANGED = "equipment_changed"
    EVENT_CANCELLED = "event_cancelled"
    REGISTRATION_CONFIRMED = "registration_confirmed"
    REGISTRATION_WAITLISTED = "registration_waitlisted"
    REGISTRATION_PROMOTED = "registration_promoted"
    REGISTRATION_CANCELLED = "registration_cancelled"


def sql_values(enum_cls) -> str:
    """Render an enum as a SQL IN-list for CHECK constraints."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
