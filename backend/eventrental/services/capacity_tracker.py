"""
Capacity tracker: the only code that writes an event's confirmed and
waitlist counts.

The "is there room" check and the increment are one conditional UPDATE on
the event row, the same pattern the inventory ledger uses for stock:

    UPDATE events SET confirmed_count = confirmed_count + 1
     WHERE id = :id AND confirmed_count < capacity

Joining the waitlist is conditional the other way round (only while the
event is full and the waitlist is open). If neither statement matches, a
slot changed hands between the two; the decision is retried.

The waitlist itself is the event's waitlisted registrations in id order.
Cancellation of a confirmed registration pops the head, strictly FIFO.

Callers lock the event row before touching its registrations (any UPDATE on
the row does it), so capacity writers for one event are serialized and
never deadlock against each other.
"""

from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.core.config import get_settings
from eventrental.core.errors import DataIntegrityError, EventNotFound, PersistenceFailure
from eventrental.core.logging import get_logger
from eventrental.core.metrics import capacity_retries, record_decision, waitlist_promotions
from eventrental.models.enums import CapacityDecision, RegistrationStatus
from eventrental.models.event import Event
from eventrental.models.registration import Registration

logger = get_logger(__name__)
settings = get_settings()


async def get_capacity(db: AsyncSession, event_id: int) -> Event:
    result = await db.execute(
        select(Event).where(Event.id == event_id).execution_options(populate_existing=True)
    )
    event = result.scalar_one_or_none()
    if event is None:
        raise EventNotFound(event_id)
    return event


async def lock_event(db: AsyncSession, event_id: int) -> None:
    """Take the event row's write lock for the rest of the transaction."""
    result = await db.execute(
        update(Event)
        .where(Event.id == event_id)
        .values(version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise EventNotFound(event_id)


async def try_confirm(db: AsyncSession, event_id: int) -> CapacityDecision:
    """
    Claim a confirmed slot, or a waitlist place if the event is full.
    REJECTED means full with the waitlist closed; the caller must not create
    a registration.
    """
    for attempt in range(1, settings.CAPACITY_MAX_ATTEMPTS + 1):
        confirmed = await db.execute(
            update(Event)
            .where(Event.id == event_id, Event.confirmed_count < Event.capacity)
            .values(confirmed_count=Event.confirmed_count + 1, version=Event.version + 1)
            .execution_options(synchronize_session=False)
        )
        if confirmed.rowcount == 1:
            record_decision(CapacityDecision.CONFIRMED.value)
            return CapacityDecision.CONFIRMED

        waitlisted = await db.execute(
            update(Event)
            .where(
                Event.id == event_id,
                Event.confirmed_count >= Event.capacity,
                Event.waitlist_enabled.is_(True),
            )
            .values(waitlist_count=Event.waitlist_count + 1, version=Event.version + 1)
            .execution_options(synchronize_session=False)
        )
        if waitlisted.rowcount == 1:
            record_decision(CapacityDecision.WAITLISTED.value)
            return CapacityDecision.WAITLISTED

        event = await get_capacity(db, event_id)
        if event.is_full and not event.waitlist_enabled:
            record_decision(CapacityDecision.REJECTED.value)
            return CapacityDecision.REJECTED

        # A slot freed up between the two statements
        capacity_retries.inc()
        logger.info("capacity_retry", event_id=event_id, attempt=attempt)

    raise PersistenceFailure("capacity decision")


async def cancel(
    db: AsyncSession,
    event_id: int,
    cancelled_status: RegistrationStatus,
) -> Optional[Registration]:
    """
    Account for a registration that was just cancelled.

    A confirmed cancellation frees a slot and promotes the waitlist head into
    it; the promoted registration is returned. A waitlisted cancellation only
    shortens the waitlist.
    """
    if cancelled_status == RegistrationStatus.WAITLISTED:
        result = await db.execute(
            update(Event)
            .where(Event.id == event_id, Event.waitlist_count > 0)
            .values(waitlist_count=Event.waitlist_count - 1, version=Event.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise DataIntegrityError(f"Event {event_id} waitlist count is already zero")
        return None

    if cancelled_status != RegistrationStatus.CONFIRMED:
        raise DataIntegrityError(f"Cannot release capacity for a {cancelled_status.value} registration")

    freed = await db.execute(
        update(Event)
        .where(Event.id == event_id, Event.confirmed_count > 0)
        .values(confirmed_count=Event.confirmed_count - 1, version=Event.version + 1)
        .execution_options(synchronize_session=False)
    )
    if freed.rowcount == 0:
        raise DataIntegrityError(f"Event {event_id} confirmed count is already zero")

    promoted = await _promote_waitlist_head(db, event_id)
    if promoted is None:
        return None

    refilled = await db.execute(
        update(Event)
        .where(
            Event.id == event_id,
            Event.confirmed_count < Event.capacity,
            Event.waitlist_count > 0,
        )
        .values(
            confirmed_count=Event.confirmed_count + 1,
            waitlist_count=Event.waitlist_count - 1,
        )
        .execution_options(synchronize_session=False)
    )
    if refilled.rowcount == 0:
        raise DataIntegrityError(f"Event {event_id} lost the freed slot during promotion")

    waitlist_promotions.inc()
    logger.info(
        "waitlist_promoted",
        event_id=event_id,
        registration_id=promoted.id,
        user_id=promoted.user_id,
    )
    return promoted


async def _promote_waitlist_head(db: AsyncSession, event_id: int) -> Optional[Registration]:
    while True:
        head_id = (
            await db.execute(
                select(Registration.id)
                .where(
                    Registration.event_id == event_id,
                    Registration.status == RegistrationStatus.WAITLISTED.value,
                )
                .order_by(Registration.id.asc())
                .limit(1)
            )
        ).scalar_one_or_none()
        if head_id is None:
            return None

        flipped = await db.execute(
            update(Registration)
            .where(
                Registration.id == head_id,
                Registration.status == RegistrationStatus.WAITLISTED.value,
            )
            .values(status=RegistrationStatus.CONFIRMED.value)
            .execution_options(synchronize_session=False)
        )
        if flipped.rowcount == 1:
            result = await db.execute(
                select(Registration)
                .where(Registration.id == head_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one()
        # Head was cancelled concurrently; take the next one
