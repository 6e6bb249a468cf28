"""
Equipment model: a vendor's rentable stock.

Key design decisions:
- `quantity` is the number of units available right now; `rented_count` is
  the number allocated to events. The pair moves in lockstep, so
  quantity + rented_count is the owned total.
- Only the inventory ledger writes those two columns, always through a single
  conditional UPDATE.
- CHECK constraints keep both counts non-negative at the DB level.
"""

from sqlalchemy import Column, Integer, String, Numeric, Index, CheckConstraint
from sqlalchemy.orm import relationship

from eventrental.db.base import Base, TimestampMixin
from eventrental.models.enums import EquipmentStatus, sql_values


class Equipment(Base, TimestampMixin):
    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    category = Column(String(50), nullable=True)
    vendor_id = Column(Integer, nullable=False, index=True)
    unit_price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    rented_count = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False, default=EquipmentStatus.PENDING.value)

    reservations = relationship("EventEquipment", back_populates="equipment")

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="check_equipment_quantity_non_negative"),
        CheckConstraint("rented_count >= 0", name="check_equipment_rented_non_negative"),
        CheckConstraint("unit_price >= 0", name="check_equipment_price_non_negative"),
        CheckConstraint(f"status IN ({sql_values(EquipmentStatus)})", name="check_equipment_status"),
        # Catalog query: approved equipment that still has units
        Index("ix_equipment_status_quantity", "status", "quantity"),
    )

    @property
    def owned_total(self) -> int:
        return self.quantity + self.rented_count

    def __repr__(self) -> str:
        return (
            f"<Equipment(id={self.id}, name={self.name}, "
            f"available={self.quantity}, rented={self.rented_count}, status={self.status})>"
        )
