"""
Event model with capacity tracking and equipment reservations.

Key design decisions:
- `confirmed_count` is denormalized so the "is there room" check and the
  increment happen in one conditional UPDATE on the event row
- The waitlist is the event's waitlisted registrations in id order (FIFO);
  `waitlist_count` mirrors its length so the waitlist invariant can be
  enforced on the event row itself
- `version` is bumped on every capacity mutation for optimistic readers
- Equipment lines snapshot the unit price at booking time, so the event's
  equipment cost is stable even if the vendor changes the price later
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import relationship

from eventrental.db.base import Base, TimestampMixin


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    location = Column(String(255), nullable=False)
    organizer_id = Column(Integer, nullable=False, index=True)

    capacity = Column(Integer, nullable=False)
    confirmed_count = Column(Integer, nullable=False, default=0)
    waitlist_count = Column(Integer, nullable=False, default=0)
    waitlist_enabled = Column(Boolean, nullable=False, default=True)

    # Optimistic locking version counter
    version = Column(Integer, nullable=False, default=1)

    equipment = relationship(
        "EventEquipment",
        back_populates="event",
        lazy="selectin",
        cascade="all",
        passive_deletes=True,
        order_by="EventEquipment.equipment_id",
    )

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_event_capacity_positive"),
        CheckConstraint("confirmed_count >= 0", name="check_confirmed_non_negative"),
        CheckConstraint("confirmed_count <= capacity", name="check_confirmed_lte_capacity"),
        CheckConstraint("waitlist_count >= 0", name="check_waitlist_non_negative"),
        Index("ix_events_date", "date"),
    )

    @property
    def available_spots(self) -> int:
        return max(0, self.capacity - self.confirmed_count)

    @property
    def is_full(self) -> bool:
        return self.confirmed_count >= self.capacity

    @property
    def equipment_cost(self) -> Decimal:
        return sum((line.line_total for line in self.equipment), Decimal("0"))

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, title={self.title}, "
            f"confirmed={self.confirmed_count}/{self.capacity}, waitlist={self.waitlist_count})>"
        )


class EventEquipment(Base):
    """One equipment line reserved for one event."""

    __tablename__ = "event_equipment"

    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), primary_key=True, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)

    event = relationship("Event", back_populates="equipment")
    equipment = relationship("Equipment", back_populates="reservations")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_event_equipment_quantity_positive"),
    )

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price) * self.quantity

    def __repr__(self) -> str:
        return f"<EventEquipment(event={self.event_id}, equipment={self.equipment_id}, qty={self.quantity})>"
