"""
Registration endpoints for the authenticated user's own tickets.
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.api.deps import get_notifier
from eventrental.core.security import Principal, get_current_principal
from eventrental.db.session import get_db
from eventrental.schemas.registration import CancellationResponse, RegistrationResponse
from eventrental.services import reservation_coordinator as coordinator
from eventrental.services.interfaces.notifier import NotificationDispatcher

router = APIRouter(prefix="/registrations", tags=["Registrations"])


@router.get("/", response_model=list[RegistrationResponse])
async def list_registrations(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Get all registrations for the authenticated user, newest first."""
    return await coordinator.list_user_registrations(db, principal.user_id)


@router.get("/{registration_id}", response_model=RegistrationResponse)
async def get_registration_endpoint(
    registration_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await coordinator.get_registration(db, registration_id, principal.user_id)


@router.delete("/{registration_id}", response_model=CancellationResponse)
async def cancel_registration_endpoint(
    registration_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    """Cancel a registration. A freed seat goes to the head of the waitlist."""
    result = await coordinator.cancel_registration(db, registration_id, principal.user_id, notifier)
    return CancellationResponse(
        message="Registration cancelled successfully",
        registration=RegistrationResponse.model_validate(result.registration),
        promoted=RegistrationResponse.model_validate(result.promoted) if result.promoted else None,
    )


@router.get("/{registration_id}/ticket")
async def download_ticket(
    registration_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    registration, content = await coordinator.get_ticket(db, registration_id, principal.user_id)
    return Response(
        content=content,
        media_type="text/plain; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{registration.ticket_number}.txt"'},
    )
