"""
Event endpoints: creation with equipment, equipment line changes,
registration and deletion.

Every write goes through the reservation coordinator, which owns the
transaction, stock and capacity counts, and the catalog cache.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.api.deps import get_notifier
from eventrental.core.security import Principal, get_current_principal
from eventrental.db.session import get_db
from eventrental.schemas.event import (
    EquipmentLinesAdd,
    EquipmentQuantityUpdate,
    EventCreate,
    EventDeletedResponse,
    EventResponse,
    EventSummary,
)
from eventrental.schemas.registration import RegistrationResponse
from eventrental.services import reservation_coordinator as coordinator
from eventrental.services.interfaces.notifier import NotificationDispatcher

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """
    Create an event and reserve its equipment in one transaction.
    If any line cannot be reserved, nothing is created.
    """
    return await coordinator.create_event_with_equipment(db, event_data, principal.user_id, notifier)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a single event. Not cached (needs live capacity counts)."""
    return await coordinator.get_event(db, event_id)


@router.get("/{event_id}/summary", response_model=EventSummary)
async def event_summary_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await coordinator.event_summary(db, event_id)


@router.delete("/{event_id}", response_model=EventDeletedResponse)
async def delete_event_endpoint(
    event_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Delete an event and return all of its equipment to stock. Organizer or admin."""
    result = await coordinator.delete_event(db, event_id, principal, notifier)
    return EventDeletedResponse(
        message="Event deleted successfully",
        event_id=result.event_id,
        released_lines=result.released_lines,
        cancelled_registrations=result.cancelled_registrations,
    )


@router.post("/{event_id}/equipment", response_model=EventResponse)
async def add_equipment_endpoint(
    event_id: int,
    body: EquipmentLinesAdd,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await coordinator.add_equipment_to_event(db, event_id, body.lines, principal, notifier)


@router.patch("/{event_id}/equipment/{equipment_id}", response_model=EventResponse)
async def update_equipment_quantity_endpoint(
    event_id: int,
    equipment_id: int,
    body: EquipmentQuantityUpdate,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await coordinator.update_equipment_quantity(
        db, event_id, equipment_id, body.quantity, principal, notifier
    )


@router.delete("/{event_id}/equipment/{equipment_id}", response_model=EventResponse)
async def remove_equipment_endpoint(
    event_id: int,
    equipment_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    return await coordinator.remove_equipment_from_event(db, event_id, equipment_id, principal, notifier)


@router.post(
    "/{event_id}/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def register_endpoint(
    event_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """
    Register for an event.

    Confirmed while seats remain, waitlisted once the event is full,
    409 event_full if the waitlist is closed.
    """
    return await coordinator.register_for_event(db, event_id, principal.user_id, notifier)
