"""
Registration model: one user's ticket for one event.

Key design decisions:
- Partial unique index on (event_id, user_id) WHERE status != 'cancelled':
  at most one live registration per user per event, while cancelled rows
  are kept as history and do not block re-registering
- Unique ticket_number: the second linearization point of registration
- Status has no default; it is decided once by the capacity tracker
- Waitlist order is registration id order
"""

from sqlalchemy import Column, Integer, String, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship

from eventrental.core.errors import DataIntegrityError
from eventrental.db.base import Base, TimestampMixin
from eventrental.models.enums import RegistrationStatus, sql_values

ACTIVE_PREDICATE = text("status != 'cancelled'")


class Registration(Base, TimestampMixin):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    status = Column(String(20), nullable=False)
    ticket_number = Column(String(32), nullable=False)

    event = relationship("Event")

    __table_args__ = (
        Index("uq_registrations_ticket_number", "ticket_number", unique=True),
        Index(
            "uq_registrations_active_user_event",
            "event_id",
            "user_id",
            unique=True,
            postgresql_where=ACTIVE_PREDICATE,
            sqlite_where=ACTIVE_PREDICATE,
        ),
        # Waitlist head lookup: WHERE event_id = ? AND status = 'waitlisted' ORDER BY id
        Index("ix_registrations_event_status", "event_id", "status", "id"),
        CheckConstraint(f"status IN ({sql_values(RegistrationStatus)})", name="check_registration_status"),
    )

    @property
    def state(self) -> RegistrationStatus:
        """Stored status as a closed enum; anything else is corrupt data."""
        try:
            return RegistrationStatus(self.status)
        except ValueError:
            raise DataIntegrityError(
                f"Registration {self.id} has invalid status {self.status!r}"
            ) from None

    @property
    def is_active(self) -> bool:
        return self.state != RegistrationStatus.CANCELLED

    def __repr__(self) -> str:
        return (
            f"<Registration(id={self.id}, user={self.user_id}, event={self.event_id}, "
            f"status={self.status}, ticket={self.ticket_number})>"
        )
