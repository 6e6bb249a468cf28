"""
Inventory ledger: the only code that writes equipment stock counts.

CONCURRENCY STRATEGY: Conditional Atomic Update
===============================================

Problem:
  Two events try to reserve the last speaker at the same time.
  Both read quantity=1, both decrement to 0, both succeed.
  Result: the vendor has rented out a speaker they do not have.

Solution:
  The sufficiency check and the mutation are one statement:

    UPDATE equipment
       SET quantity = quantity - :q, rented_count = rented_count + :q
     WHERE id = :id AND status = 'approved' AND quantity >= :q

  The database evaluates the WHERE clause against the row it is about to
  write (PostgreSQL re-checks it after waiting on a concurrent writer's row
  lock), so of N concurrent reservations for K units exactly K match.
  rows_affected == 0 means "did not fit"; a follow-up read only classifies
  why, it never decides anything.

  quantity and rented_count move in lockstep, so quantity + rented_count is
  conserved across every reserve/release pair. The DB CHECK constraints are
  the final safety net.

All functions run inside the caller's transaction and never commit.
"""

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.core.errors import (
    EquipmentNotFound,
    EquipmentUnavailable,
    InsufficientStock,
    ValidationError,
)
from eventrental.core.logging import get_logger
from eventrental.core.metrics import ledger_release_anomalies, record_ledger
from eventrental.db.base import INTEGER_MAX
from eventrental.models.enums import EquipmentStatus
from eventrental.models.equipment import Equipment

logger = get_logger(__name__)


def _require_positive(quantity: int, operation: str) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"{operation} quantity must be an integer", quantity=quantity)
    if quantity <= 0:
        raise ValidationError(f"{operation} quantity must be positive", quantity=quantity)
    if quantity > INTEGER_MAX:
        raise ValidationError(f"{operation} quantity is out of range", quantity=quantity)


async def get_stock(db: AsyncSession, equipment_id: int) -> Equipment:
    """Read the current committed counts, refreshing any cached instance."""
    result = await db.execute(
        select(Equipment)
        .where(Equipment.id == equipment_id)
        .execution_options(populate_existing=True)
    )
    equipment = result.scalar_one_or_none()
    if equipment is None:
        raise EquipmentNotFound(equipment_id)
    return equipment


async def reserve(db: AsyncSession, equipment_id: int, quantity: int) -> Equipment:
    """
    Move `quantity` units from available to rented.
    Raises InsufficientStock / EquipmentUnavailable / EquipmentNotFound
    without changing anything.
    """
    _require_positive(quantity, "reserve")

    result = await db.execute(
        update(Equipment)
        .where(
            Equipment.id == equipment_id,
            Equipment.status == EquipmentStatus.APPROVED.value,
            Equipment.quantity >= quantity,
        )
        .values(
            quantity=Equipment.quantity - quantity,
            rented_count=Equipment.rented_count + quantity,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        try:
            equipment = await get_stock(db, equipment_id)
        except EquipmentNotFound:
            record_ledger("reserve", "missing")
            raise
        if equipment.status != EquipmentStatus.APPROVED.value:
            record_ledger("reserve", "unavailable")
            raise EquipmentUnavailable(equipment_id, equipment.status)
        record_ledger("reserve", "insufficient")
        logger.warning(
            "reserve_insufficient_stock",
            equipment_id=equipment_id,
            requested=quantity,
            available=equipment.quantity,
        )
        raise InsufficientStock(equipment_id, requested=quantity, available=equipment.quantity)

    equipment = await get_stock(db, equipment_id)
    record_ledger("reserve", "ok")
    logger.info(
        "equipment_reserved",
        equipment_id=equipment_id,
        quantity=quantity,
        available=equipment.quantity,
        rented=equipment.rented_count,
    )
    return equipment


async def release(db: AsyncSession, equipment_id: int, quantity: int) -> Equipment:
    """
    Move `quantity` units from rented back to available.

    Releasing more than is rented is a double release somewhere upstream.
    It is floored at what is actually rented, so the owned total never grows,
    and logged as an anomaly.
    """
    _require_positive(quantity, "release")

    result = await db.execute(
        update(Equipment)
        .where(Equipment.id == equipment_id, Equipment.rented_count >= quantity)
        .values(
            quantity=Equipment.quantity + quantity,
            rented_count=Equipment.rented_count - quantity,
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        floored = case(
            (Equipment.rented_count < quantity, Equipment.rented_count),
            else_=quantity,
        )
        result = await db.execute(
            update(Equipment)
            .where(Equipment.id == equipment_id)
            .values(
                quantity=Equipment.quantity + floored,
                rented_count=Equipment.rented_count - floored,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            record_ledger("release", "missing")
            raise EquipmentNotFound(equipment_id)

        equipment = await get_stock(db, equipment_id)
        ledger_release_anomalies.inc()
        record_ledger("release", "anomaly")
        logger.warning(
            "ledger_release_anomaly",
            equipment_id=equipment_id,
            requested=quantity,
            available=equipment.quantity,
            rented=equipment.rented_count,
        )
        return equipment

    equipment = await get_stock(db, equipment_id)
    record_ledger("release", "ok")
    logger.info(
        "equipment_released",
        equipment_id=equipment_id,
        quantity=quantity,
        available=equipment.quantity,
        rented=equipment.rented_count,
    )
    return equipment


async def adjust(db: AsyncSession, equipment_id: int, delta: int) -> Equipment:
    """
    Signed ledger change seen from the stock's side:
    delta > 0 returns units to stock, delta < 0 takes units from stock.
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("adjust delta must be an integer", delta=delta)
    if delta > 0:
        return await release(db, equipment_id, delta)
    if delta < 0:
        return await reserve(db, equipment_id, -delta)
    return await get_stock(db, equipment_id)
