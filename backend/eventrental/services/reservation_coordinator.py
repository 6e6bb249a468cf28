"""
Reservation coordinator: the transaction boundary for every operation that
moves equipment stock or event capacity.

TRANSACTION STRATEGY
====================

Each operation is one database transaction on the request's session
(`services.transaction.atomic`). Ledger and capacity steps are applied as
they go; if any step raises, the whole transaction rolls back, so a failure
on the third equipment line leaves the first two untouched. Notifications
and cache invalidation run only after commit and can never undo a
committed reservation.

Lock order:
  1. the event row (`capacity_tracker.lock_event`, or the INSERT of a new one)
  2. equipment rows, in equipment id order (`inventory_ledger`)
  3. registrations / event_equipment lines of that event

Every writer follows it, so concurrent operations queue instead of
deadlocking. Everything a response needs is loaded before commit; the
session is not read again afterwards.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from eventrental.core.config import get_settings
from eventrental.core.errors import (
    AlreadyCancelled,
    AlreadyRegistered,
    EventFull,
    EventNotFound,
    NotAuthorized,
    PersistenceFailure,
    RegistrationNotFound,
    ReservationLineNotFound,
    TicketCollision,
    ValidationError,
)
from eventrental.core.logging import get_logger
from eventrental.core.metrics import ticket_collisions
from eventrental.core.security import Principal
from eventrental.db.base import INTEGER_MAX
from eventrental.models.enums import CapacityDecision, NotificationKind, RegistrationStatus
from eventrental.models.event import Event, EventEquipment
from eventrental.models.registration import Registration
from eventrental.schemas.event import EquipmentLine, EquipmentLineResponse, EventCreate, EventSummary
from eventrental.services import capacity_tracker, inventory_ledger, tickets
from eventrental.services.interfaces.notifier import NotificationDispatcher
from eventrental.services.transaction import Notice, after_commit, atomic

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class CancellationResult:
    registration: Registration
    promoted: Optional[Registration] = None


@dataclass
class DeletionResult:
    event_id: int
    released_lines: int
    cancelled_registrations: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _validate_lines(lines: Iterable[EquipmentLine]) -> list[EquipmentLine]:
    """Reject empty, duplicated or non-positive lines; return them in lock order."""
    lines = list(lines)
    if not lines:
        raise ValidationError("At least one equipment line is required")

    seen = set()
    for line in lines:
        if not 0 < line.equipment_id <= INTEGER_MAX:
            raise ValidationError("Equipment id is out of range", equipment_id=line.equipment_id)
        if not 0 < line.quantity <= INTEGER_MAX:
            raise ValidationError(
                "Equipment quantity must be a positive integer within range",
                equipment_id=line.equipment_id,
                quantity=line.quantity,
            )
        if line.equipment_id in seen:
            raise ValidationError("Duplicate equipment line", equipment_id=line.equipment_id)
        seen.add(line.equipment_id)

    return sorted(lines, key=lambda line: line.equipment_id)


def _validate_event(event_data: EventCreate) -> None:
    if event_data.capacity < 1:
        raise ValidationError("Event capacity must be at least 1", capacity=event_data.capacity)
    if event_data.capacity > INTEGER_MAX:
        raise ValidationError("Event capacity is out of range", capacity=event_data.capacity)
    if _utc(event_data.date) <= datetime.now(timezone.utc):
        raise ValidationError("Event date must be in the future")


def _event_payload(event: Event, **extra) -> dict:
    return {"event_id": event.id, "event_title": event.title, **extra}


def _require_organizer(event: Event, actor: Principal, allow_admin: bool = False) -> None:
    if event.organizer_id == actor.user_id:
        return
    if allow_admin and actor.is_admin:
        return
    raise NotAuthorized("Only the event organizer can change this event", event_id=event.id)


async def _load_event(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(
        select(Event)
        .where(Event.id == event_id)
        .options(selectinload(Event.equipment))
        .execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise EventNotFound(event_id)
    return event


async def _load_line(db: AsyncSession, event_id: int, equipment_id: int) -> EventEquipment:
    result = await db.execute(
        select(EventEquipment)
        .where(EventEquipment.event_id == event_id, EventEquipment.equipment_id == equipment_id)
        .execution_options(populate_existing=True)
    )
    line = result.scalar_one_or_none()
    if line is None:
        raise ReservationLineNotFound(event_id, equipment_id)
    return line


async def _load_registration(db: AsyncSession, registration_id: int) -> Registration:
    result = await db.execute(
        select(Registration)
        .where(Registration.id == registration_id)
        .execution_options(populate_existing=True)
    )
    registration = result.scalar_one_or_none()
    if registration is None:
        raise RegistrationNotFound(registration_id)
    return registration


async def _active_registration_id(db: AsyncSession, event_id: int, user_id: int) -> Optional[int]:
    result = await db.execute(
        select(Registration.id).where(
            Registration.event_id == event_id,
            Registration.user_id == user_id,
            Registration.status != RegistrationStatus.CANCELLED.value,
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Event equipment
# ---------------------------------------------------------------------------

async def create_event_with_equipment(
    db: AsyncSession,
    event_data: EventCreate,
    organizer_id: int,
    notifier: NotificationDispatcher,
) -> Event:
    """
    Create an event and reserve all of its equipment, or nothing at all.
    Each line's unit price is snapshotted from the equipment at booking time.
    """
    async with atomic(db, "create_event"):
        _validate_event(event_data)
        lines = _validate_lines(event_data.equipment)

        event = Event(
            title=event_data.title,
            description=event_data.description,
            date=event_data.date,
            location=event_data.location,
            organizer_id=organizer_id,
            capacity=event_data.capacity,
            confirmed_count=0,
            waitlist_count=0,
            waitlist_enabled=event_data.waitlist_enabled,
            version=1,
        )
        db.add(event)
        await db.flush()

        for line in lines:
            equipment = await inventory_ledger.reserve(db, line.equipment_id, line.quantity)
            db.add(
                EventEquipment(
                    event_id=event.id,
                    equipment_id=line.equipment_id,
                    quantity=line.quantity,
                    unit_price=equipment.unit_price,
                )
            )
        await db.flush()
        event = await _load_event(db, event.id)

    logger.info(
        "event_created",
        event_id=event.id,
        organizer_id=organizer_id,
        capacity=event.capacity,
        lines=len(lines),
    )
    await after_commit(
        notifier,
        [Notice(organizer_id, NotificationKind.EVENT_CREATED.value, _event_payload(event))],
        stock_changed=True,
    )
    return event


async def add_equipment_to_event(
    db: AsyncSession,
    event_id: int,
    lines: Iterable[EquipmentLine],
    actor: Principal,
    notifier: NotificationDispatcher,
) -> Event:
    """
    Reserve more equipment for an existing event. A line for equipment the
    event already holds grows that reservation and keeps its price snapshot.
    """
    async with atomic(db, "add_equipment"):
        lines = _validate_lines(lines)
        event = await _load_event(db, event_id)
        _require_organizer(event, actor)
        await capacity_tracker.lock_event(db, event_id)

        for line in lines:
            equipment = await inventory_ledger.reserve(db, line.equipment_id, line.quantity)
            grown = await db.execute(
                update(EventEquipment)
                .where(
                    EventEquipment.event_id == event_id,
                    EventEquipment.equipment_id == line.equipment_id,
                )
                .values(quantity=EventEquipment.quantity + line.quantity)
                .execution_options(synchronize_session=False)
            )
            if grown.rowcount == 0:
                db.add(
                    EventEquipment(
                        event_id=event_id,
                        equipment_id=line.equipment_id,
                        quantity=line.quantity,
                        unit_price=equipment.unit_price,
                    )
                )
        await db.flush()
        event = await _load_event(db, event_id)

    logger.info("event_equipment_added", event_id=event_id, lines=len(lines))
    await after_commit(
        notifier,
        [Notice(event.organizer_id, NotificationKind.EQUIPMENT_CHANGED.value, _event_payload(event))],
        stock_changed=True,
    )
    return event


async def remove_equipment_from_event(
    db: AsyncSession,
    event_id: int,
    equipment_id: int,
    actor: Principal,
    notifier: NotificationDispatcher,
) -> Event:
    """Drop one equipment line and return its whole quantity to stock."""
    async with atomic(db, "remove_equipment"):
        event = await _load_event(db, event_id)
        _require_organizer(event, actor)
        await capacity_tracker.lock_event(db, event_id)

        line = await _load_line(db, event_id, equipment_id)
        quantity = line.quantity
        removed = await db.execute(
            delete(EventEquipment)
            .where(
                EventEquipment.event_id == event_id,
                EventEquipment.equipment_id == equipment_id,
            )
            .execution_options(synchronize_session=False)
        )
        if removed.rowcount == 0:
            raise ReservationLineNotFound(event_id, equipment_id)

        await inventory_ledger.release(db, equipment_id, quantity)
        event = await _load_event(db, event_id)

    logger.info(
        "event_equipment_removed",
        event_id=event_id,
        equipment_id=equipment_id,
        quantity=quantity,
    )
    await after_commit(
        notifier,
        [Notice(event.organizer_id, NotificationKind.EQUIPMENT_CHANGED.value, _event_payload(event))],
        stock_changed=True,
    )
    return event


async def update_equipment_quantity(
    db: AsyncSession,
    event_id: int,
    equipment_id: int,
    new_quantity: int,
    actor: Principal,
    notifier: NotificationDispatcher,
) -> Event:
    """
    Change a line's quantity. The ledger moves the difference first; the
    line is rewritten only if the ledger accepted it.
    """
    async with atomic(db, "update_equipment_quantity"):
        if (
            isinstance(new_quantity, bool)
            or not isinstance(new_quantity, int)
            or not 0 < new_quantity <= INTEGER_MAX
        ):
            raise ValidationError("Equipment quantity must be a positive integer", quantity=new_quantity)

        event = await _load_event(db, event_id)
        _require_organizer(event, actor)
        await capacity_tracker.lock_event(db, event_id)

        line = await _load_line(db, event_id, equipment_id)
        current = line.quantity
        delta = new_quantity - current

        if delta:
            await inventory_ledger.adjust(db, equipment_id, -delta)
            updated = await db.execute(
                update(EventEquipment)
                .where(
                    EventEquipment.event_id == event_id,
                    EventEquipment.equipment_id == equipment_id,
                    EventEquipment.quantity == current,
                )
                .values(quantity=new_quantity)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                raise PersistenceFailure("update equipment quantity")

        event = await _load_event(db, event_id)

    logger.info(
        "event_equipment_quantity_updated",
        event_id=event_id,
        equipment_id=equipment_id,
        previous=current,
        quantity=new_quantity,
    )
    if delta:
        await after_commit(
            notifier,
            [Notice(event.organizer_id, NotificationKind.EQUIPMENT_CHANGED.value, _event_payload(event))],
            stock_changed=True,
        )
    return event


async def delete_event(
    db: AsyncSession,
    event_id: int,
    actor: Principal,
    notifier: NotificationDispatcher,
) -> DeletionResult:
    """
    Delete an event: every reservation goes back to stock, registrations and
    lines are removed with it. Active registrants are told afterwards.
    """
    async with atomic(db, "delete_event"):
        event = await _load_event(db, event_id)
        _require_organizer(event, actor, allow_admin=True)
        await capacity_tracker.lock_event(db, event_id)
        event = await _load_event(db, event_id)

        lines = [(line.equipment_id, line.quantity) for line in event.equipment]
        for equipment_id, quantity in lines:
            await inventory_ledger.release(db, equipment_id, quantity)

        registrants = (
            await db.execute(
                select(Registration.id, Registration.user_id).where(
                    Registration.event_id == event_id,
                    Registration.status != RegistrationStatus.CANCELLED.value,
                )
            )
        ).all()
        payload = _event_payload(event)

        await db.execute(
            delete(Registration)
            .where(Registration.event_id == event_id)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(EventEquipment)
            .where(EventEquipment.event_id == event_id)
            .execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(Event).where(Event.id == event_id).execution_options(synchronize_session=False)
        )

    logger.info(
        "event_deleted",
        event_id=event_id,
        actor_id=actor.user_id,
        released_lines=len(lines),
        cancelled_registrations=len(registrants),
    )
    await after_commit(
        notifier,
        [
            Notice(user_id, NotificationKind.EVENT_CANCELLED.value, dict(payload, registration_id=registration_id))
            for registration_id, user_id in registrants
        ],
        stock_changed=bool(lines),
    )
    return DeletionResult(
        event_id=event_id,
        released_lines=len(lines),
        cancelled_registrations=len(registrants),
    )


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------

async def _insert_registration(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    decision: CapacityDecision,
    ticket_number: str,
) -> Registration:
    """
    Insert inside a SAVEPOINT. A unique-index hit on the ticket number gets a
    fresh ticket; a hit on (event, user) means a concurrent registration won.
    """
    for attempt in range(1, settings.TICKET_MAX_ATTEMPTS + 1):
        registration = Registration(
            event_id=event_id,
            user_id=user_id,
            status=decision.value,
            ticket_number=ticket_number,
        )
        try:
            async with db.begin_nested():
                db.add(registration)
                await db.flush()
        except IntegrityError:
            if await _active_registration_id(db, event_id, user_id) is not None:
                raise AlreadyRegistered(event_id, user_id)
            ticket_collisions.inc()
            logger.info("ticket_collision_on_insert", ticket_number=ticket_number, attempt=attempt)
            ticket_number = await tickets.allocate_ticket_number(db)
            continue

        await db.refresh(registration)
        return registration

    raise TicketCollision(settings.TICKET_MAX_ATTEMPTS)


async def register_for_event(
    db: AsyncSession,
    event_id: int,
    user_id: int,
    notifier: NotificationDispatcher,
) -> Registration:
    """
    Register a user: confirmed while there is room, waitlisted once the event
    is full (if its waitlist is open), EventFull otherwise.
    """
    async with atomic(db, "register"):
        await capacity_tracker.lock_event(db, event_id)

        if await _active_registration_id(db, event_id, user_id) is not None:
            raise AlreadyRegistered(event_id, user_id)

        ticket_number = await tickets.allocate_ticket_number(db)

        decision = await capacity_tracker.try_confirm(db, event_id)
        if decision == CapacityDecision.REJECTED:
            raise EventFull(event_id)

        registration = await _insert_registration(db, event_id, user_id, decision, ticket_number)
        event = await capacity_tracker.get_capacity(db, event_id)

    logger.info(
        "registration_created",
        registration_id=registration.id,
        event_id=event_id,
        user_id=user_id,
        status=registration.status,
        ticket_number=registration.ticket_number,
    )
    kind = (
        NotificationKind.REGISTRATION_CONFIRMED
        if decision == CapacityDecision.CONFIRMED
        else NotificationKind.REGISTRATION_WAITLISTED
    )
    await after_commit(
        notifier,
        [
            Notice(
                user_id,
                kind.value,
                _event_payload(
                    event,
                    registration_id=registration.id,
                    ticket_number=registration.ticket_number,
                ),
            )
        ],
    )
    return registration


async def cancel_registration(
    db: AsyncSession,
    registration_id: int,
    user_id: int,
    notifier: NotificationDispatcher,
) -> CancellationResult:
    """
    Cancel the caller's own registration. Cancelling a confirmed seat
    promotes the head of the waitlist into it.
    """
    async with atomic(db, "cancel_registration"):
        registration = await _load_registration(db, registration_id)
        if registration.user_id != user_id:
            raise RegistrationNotFound(registration_id)

        event_id = registration.event_id
        await capacity_tracker.lock_event(db, event_id)

        registration = await _load_registration(db, registration_id)
        previous = registration.state
        if previous == RegistrationStatus.CANCELLED:
            raise AlreadyCancelled(registration_id)

        flipped = await db.execute(
            update(Registration)
            .where(Registration.id == registration_id, Registration.status == previous.value)
            .values(status=RegistrationStatus.CANCELLED.value)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount == 0:
            raise AlreadyCancelled(registration_id)

        promoted = await capacity_tracker.cancel(db, event_id, previous)
        registration = await _load_registration(db, registration_id)
        event = await capacity_tracker.get_capacity(db, event_id)

    logger.info(
        "registration_cancelled",
        registration_id=registration_id,
        event_id=event_id,
        user_id=user_id,
        previous_status=previous.value,
        promoted_registration_id=promoted.id if promoted else None,
    )
    notices = [
        Notice(
            user_id,
            NotificationKind.REGISTRATION_CANCELLED.value,
            _event_payload(event, registration_id=registration_id),
        )
    ]
    if promoted is not None:
        notices.append(
            Notice(
                promoted.user_id,
                NotificationKind.REGISTRATION_PROMOTED.value,
                _event_payload(
                    event,
                    registration_id=promoted.id,
                    ticket_number=promoted.ticket_number,
                ),
            )
        )
    await after_commit(notifier, notices)
    return CancellationResult(registration=registration, promoted=promoted)


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

async def get_event(db: AsyncSession, event_id: int) -> Event:
    return await _load_event(db, event_id)


async def event_summary(db: AsyncSession, event_id: int) -> EventSummary:
    """Capacity and equipment picture of one event."""
    event = await _load_event(db, event_id)
    waitlist_length = (
        await db.execute(
            select(func.count(Registration.id)).where(
                Registration.event_id == event_id,
                Registration.status == RegistrationStatus.WAITLISTED.value,
            )
        )
    ).scalar_one()

    return EventSummary(
        event_id=event.id,
        title=event.title,
        capacity=event.capacity,
        confirmed=event.confirmed_count,
        waitlist_length=waitlist_length,
        available_spots=event.available_spots,
        is_full=event.is_full,
        equipment=[EquipmentLineResponse.model_validate(line) for line in event.equipment],
        equipment_cost=event.equipment_cost,
    )


async def get_registration(db: AsyncSession, registration_id: int, user_id: int) -> Registration:
    """A registration visible to its owner only."""
    registration = await _load_registration(db, registration_id)
    if registration.user_id != user_id:
        raise RegistrationNotFound(registration_id)
    return registration


async def get_ticket(db: AsyncSession, registration_id: int, user_id: int) -> tuple[Registration, bytes]:
    registration = await get_registration(db, registration_id, user_id)
    event = await capacity_tracker.get_capacity(db, registration.event_id)
    return registration, tickets.render_ticket(registration, event)


async def list_user_registrations(db: AsyncSession, user_id: int) -> list[Registration]:
    result = await db.execute(
        select(Registration)
        .where(Registration.user_id == user_id)
        .order_by(Registration.id.desc())
    )
    return list(result.scalars().all())
