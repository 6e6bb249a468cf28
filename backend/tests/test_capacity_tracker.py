"""
Tests for the capacity tracker: confirmed/waitlisted decisions and FIFO promotion.
"""

import pytest
from sqlalchemy import update

from conftest import make_event
from eventrental.core.errors import DataIntegrityError, EventNotFound
from eventrental.models import Event, Registration
from eventrental.models.enums import CapacityDecision, RegistrationStatus
from eventrental.services import capacity_tracker


async def counts(session_factory, event_id: int) -> tuple[int, int]:
    async with session_factory() as session:
        event = await session.get(Event, event_id)
        return event.confirmed_count, event.waitlist_count


async def decide(session_factory, event_id: int) -> CapacityDecision:
    async with session_factory() as session:
        decision = await capacity_tracker.try_confirm(session, event_id)
        await session.commit()
        return decision


async def add_registration(session_factory, event_id: int, user_id: int, status: RegistrationStatus) -> int:
    async with session_factory() as session:
        registration = Registration(
            event_id=event_id,
            user_id=user_id,
            status=status.value,
            ticket_number=f"TKT-000000-{user_id:04d}",
        )
        session.add(registration)
        await session.commit()
        return registration.id


@pytest.mark.asyncio
async def test_confirms_until_full_then_waitlists(session_factory, event_id):
    decisions = [await decide(session_factory, event_id) for _ in range(4)]

    assert decisions == [
        CapacityDecision.CONFIRMED,
        CapacityDecision.CONFIRMED,
        CapacityDecision.WAITLISTED,
        CapacityDecision.WAITLISTED,
    ]
    assert await counts(session_factory, event_id) == (2, 2)


@pytest.mark.asyncio
async def test_rejects_when_full_and_waitlist_closed(session_factory, notifier, equipment_id):
    event_id = await make_event(session_factory, notifier, [(equipment_id, 1)], capacity=1, waitlist_enabled=False)

    assert await decide(session_factory, event_id) == CapacityDecision.CONFIRMED
    assert await decide(session_factory, event_id) == CapacityDecision.REJECTED
    assert await counts(session_factory, event_id) == (1, 0)


@pytest.mark.asyncio
async def test_missing_event(session_factory):
    async with session_factory() as session:
        with pytest.raises(EventNotFound):
            await capacity_tracker.try_confirm(session, 404)
        with pytest.raises(EventNotFound):
            await capacity_tracker.lock_event(session, 404)
        await session.rollback()


@pytest.mark.asyncio
async def test_confirmed_never_exceeds_capacity(session_factory, event_id):
    """Interleaved confirms and cancellations keep confirmed_count <= capacity."""
    for step in range(12):
        if step % 3 == 2:
            async with session_factory() as session:
                await capacity_tracker.cancel(session, event_id, RegistrationStatus.CONFIRMED)
                await session.commit()
        else:
            await decide(session_factory, event_id)

        confirmed, waitlisted = await counts(session_factory, event_id)
        assert 0 <= confirmed <= 2
        assert waitlisted >= 0


@pytest.mark.asyncio
async def test_cancel_confirmed_promotes_lowest_id_waitlisted(session_factory, event_id):
    await add_registration(session_factory, event_id, 10, RegistrationStatus.CONFIRMED)
    await add_registration(session_factory, event_id, 11, RegistrationStatus.CONFIRMED)
    first = await add_registration(session_factory, event_id, 12, RegistrationStatus.WAITLISTED)
    second = await add_registration(session_factory, event_id, 13, RegistrationStatus.WAITLISTED)
    async with session_factory() as session:
        await session.execute(
            update(Event).where(Event.id == event_id).values(confirmed_count=2, waitlist_count=2)
        )
        await session.commit()

    async with session_factory() as session:
        promoted = await capacity_tracker.cancel(session, event_id, RegistrationStatus.CONFIRMED)
        await session.commit()

    assert promoted.id == first
    assert promoted.status == RegistrationStatus.CONFIRMED.value
    assert await counts(session_factory, event_id) == (2, 1)

    async with session_factory() as session:
        assert (await session.get(Registration, second)).status == RegistrationStatus.WAITLISTED.value


@pytest.mark.asyncio
async def test_cancel_confirmed_without_waitlist_frees_slot(session_factory, event_id):
    await decide(session_factory, event_id)

    async with session_factory() as session:
        promoted = await capacity_tracker.cancel(session, event_id, RegistrationStatus.CONFIRMED)
        await session.commit()

    assert promoted is None
    assert await counts(session_factory, event_id) == (0, 0)


@pytest.mark.asyncio
async def test_cancel_waitlisted_only_shortens_waitlist(session_factory, event_id):
    for _ in range(3):
        await decide(session_factory, event_id)

    async with session_factory() as session:
        assert await capacity_tracker.cancel(session, event_id, RegistrationStatus.WAITLISTED) is None
        await session.commit()

    assert await counts(session_factory, event_id) == (2, 0)


@pytest.mark.asyncio
async def test_cancel_with_nothing_confirmed_is_integrity_error(session_factory, event_id):
    async with session_factory() as session:
        with pytest.raises(DataIntegrityError):
            await capacity_tracker.cancel(session, event_id, RegistrationStatus.CONFIRMED)
        with pytest.raises(DataIntegrityError):
            await capacity_tracker.cancel(session, event_id, RegistrationStatus.WAITLISTED)
        await session.rollback()

    assert await counts(session_factory, event_id) == (0, 0)
