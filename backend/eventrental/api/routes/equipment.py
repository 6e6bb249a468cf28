"""
Equipment catalog endpoints with Redis caching on the listing.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.core.logging import get_logger
from eventrental.core.security import Principal, require_role
from eventrental.db.session import get_db
from eventrental.schemas.equipment import (
    EquipmentCatalogResponse,
    EquipmentCreate,
    EquipmentResponse,
    EquipmentStatusUpdate,
    EquipmentUpdate,
)
from eventrental.services import equipment_service
from eventrental.services.cache_service import get_cached_catalog, set_cached_catalog

logger = get_logger(__name__)
router = APIRouter(prefix="/equipment", tags=["Equipment"])


@router.post("/", response_model=EquipmentResponse, status_code=status.HTTP_201_CREATED)
async def create_equipment_endpoint(
    data: EquipmentCreate,
    principal: Principal = Depends(require_role("vendor")),
    db: AsyncSession = Depends(get_db),
):
    """List new equipment. Vendors only; starts out pending approval."""
    return await equipment_service.create_equipment(db, data, principal.user_id)


@router.get("/", response_model=EquipmentCatalogResponse)
async def list_equipment_endpoint(
    category: Optional[str] = Query(None, max_length=50),
    db: AsyncSession = Depends(get_db),
):
    """
    Rentable equipment (approved, units left).
    Results are cached in Redis; the cache is dropped after every committed
    stock change.
    """
    cached = await get_cached_catalog(category)
    if cached is not None:
        logger.info("equipment_catalog_cache_hit", category=category)
        return EquipmentCatalogResponse(items=cached, total=len(cached), cached=True)

    items = await equipment_service.list_available_equipment(db, category)
    payload = [EquipmentResponse.model_validate(item).model_dump(mode="json") for item in items]
    await set_cached_catalog(category, payload)
    return EquipmentCatalogResponse(items=payload, total=len(payload), cached=False)


@router.get("/{equipment_id}", response_model=EquipmentResponse)
async def get_equipment_endpoint(
    equipment_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Single equipment item with live counts. Not cached."""
    return await equipment_service.get_equipment(db, equipment_id)


@router.patch("/{equipment_id}", response_model=EquipmentResponse)
async def update_equipment_endpoint(
    equipment_id: int,
    body: EquipmentUpdate,
    principal: Principal = Depends(require_role("vendor", "admin")),
    db: AsyncSession = Depends(get_db),
):
    """Edit catalog details. Events that already rent it keep their price."""
    return await equipment_service.update_equipment(db, equipment_id, body, principal)


@router.patch("/{equipment_id}/status", response_model=EquipmentResponse)
async def set_equipment_status_endpoint(
    equipment_id: int,
    body: EquipmentStatusUpdate,
    principal: Principal = Depends(require_role("admin")),
    db: AsyncSession = Depends(get_db),
):
    return await equipment_service.set_equipment_status(db, equipment_id, body.status)


@router.delete("/{equipment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_equipment_endpoint(
    equipment_id: int,
    principal: Principal = Depends(require_role("vendor", "admin")),
    db: AsyncSession = Depends(get_db),
):
    """Delete equipment. Rejected with 409 while any event holds it."""
    await equipment_service.delete_equipment(db, equipment_id, principal)
