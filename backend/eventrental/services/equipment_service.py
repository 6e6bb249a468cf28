"""
Equipment catalog: vendors list equipment, admins approve it, organizers
browse what is rentable.

Stock counts are never written here. New equipment starts with all of its
units available; from then on only the inventory ledger moves them.
"""

from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.core.errors import EquipmentInUse, EquipmentNotFound, NotAuthorized
from eventrental.core.logging import get_logger
from eventrental.core.security import Principal
from eventrental.models.enums import EquipmentStatus
from eventrental.models.equipment import Equipment
from eventrental.models.event import EventEquipment
from eventrental.schemas.equipment import EquipmentCreate, EquipmentUpdate
from eventrental.services.cache_service import invalidate_catalog_cache
from eventrental.services.transaction import atomic

logger = get_logger(__name__)


async def get_equipment(db: AsyncSession, equipment_id: int) -> Equipment:
    result = await db.execute(
        select(Equipment)
        .where(Equipment.id == equipment_id)
        .execution_options(populate_existing=True)
    )
    equipment = result.scalar_one_or_none()
    if equipment is None:
        raise EquipmentNotFound(equipment_id)
    return equipment


async def create_equipment(
    db: AsyncSession,
    data: EquipmentCreate,
    vendor_id: int,
) -> Equipment:
    """List new equipment. It stays pending until an admin approves it."""
    async with atomic(db, "create_equipment"):
        equipment = Equipment(
            name=data.name,
            description=data.description,
            category=data.category,
            vendor_id=vendor_id,
            unit_price=data.unit_price,
            quantity=data.quantity,
            rented_count=0,
            status=EquipmentStatus.PENDING.value,
        )
        db.add(equipment)
        await db.flush()
        equipment = await get_equipment(db, equipment.id)

    logger.info("equipment_created", equipment_id=equipment.id, vendor_id=vendor_id, quantity=equipment.quantity)
    return equipment


def _require_owner(equipment: Equipment, actor: Principal, action: str) -> None:
    if equipment.vendor_id != actor.user_id and not actor.is_admin:
        raise NotAuthorized(f"Only the owning vendor can {action} this equipment", equipment_id=equipment.id)


async def update_equipment(
    db: AsyncSession,
    equipment_id: int,
    data: EquipmentUpdate,
    actor: Principal,
) -> Equipment:
    """
    Edit name, description, category or price. Existing event lines keep
    the price they were reserved at.
    """
    changes = data.model_dump(exclude_unset=True)

    async with atomic(db, "update_equipment"):
        equipment = await get_equipment(db, equipment_id)
        _require_owner(equipment, actor, "edit")
        if changes:
            await db.execute(
                update(Equipment)
                .where(Equipment.id == equipment_id)
                .values(**changes)
                .execution_options(synchronize_session=False)
            )
            equipment = await get_equipment(db, equipment_id)

    if changes:
        logger.info("equipment_updated", equipment_id=equipment_id, actor_id=actor.user_id, fields=sorted(changes))
        await invalidate_catalog_cache()
    return equipment


async def set_equipment_status(
    db: AsyncSession,
    equipment_id: int,
    new_status: EquipmentStatus,
) -> Equipment:
    """Approve or reject equipment. Counts are left alone either way."""
    async with atomic(db, "set_equipment_status"):
        result = await db.execute(
            update(Equipment)
            .where(Equipment.id == equipment_id)
            .values(status=EquipmentStatus(new_status).value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise EquipmentNotFound(equipment_id)
        equipment = await get_equipment(db, equipment_id)

    logger.info("equipment_status_changed", equipment_id=equipment_id, status=equipment.status)
    await invalidate_catalog_cache()
    return equipment


async def delete_equipment(
    db: AsyncSession,
    equipment_id: int,
    actor: Principal,
) -> None:
    """
    Delete equipment no event holds a reservation on.

    The row is locked before the in-use check, so a concurrent reserve either
    commits its line first (EquipmentInUse here) or waits and then finds the
    equipment gone (EquipmentNotFound there).
    """
    async with atomic(db, "delete_equipment"):
        locked = await db.execute(
            update(Equipment)
            .where(Equipment.id == equipment_id)
            .values(status=Equipment.status)
            .execution_options(synchronize_session=False)
        )
        if locked.rowcount == 0:
            raise EquipmentNotFound(equipment_id)

        equipment = await get_equipment(db, equipment_id)
        _require_owner(equipment, actor, "delete")

        event_ids = list(
            (
                await db.execute(
                    select(EventEquipment.event_id)
                    .where(EventEquipment.equipment_id == equipment_id)
                    .order_by(EventEquipment.event_id)
                )
            ).scalars()
        )
        if event_ids:
            raise EquipmentInUse(equipment_id, event_ids)

        await db.execute(
            delete(Equipment)
            .where(Equipment.id == equipment_id)
            .execution_options(synchronize_session=False)
        )

    logger.info("equipment_deleted", equipment_id=equipment_id, actor_id=actor.user_id)
    await invalidate_catalog_cache()


async def list_available_equipment(db: AsyncSession, category: Optional[str] = None) -> list[Equipment]:
    """
    Approved equipment with units left, cheapest first.
    Uses the ix_equipment_status_quantity index.
    """
    query = select(Equipment).where(
        Equipment.status == EquipmentStatus.APPROVED.value,
        Equipment.quantity > 0,
    )
    if category:
        query = query.where(Equipment.category == category)

    result = await db.execute(query.order_by(Equipment.unit_price.asc(), Equipment.id.asc()))
    return list(result.scalars().all())
