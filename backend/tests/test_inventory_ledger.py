"""
Tests for the inventory ledger: conditional reserve/release on equipment stock.
"""

import asyncio

import pytest
from prometheus_client import REGISTRY

from conftest import make_equipment, stock_of
from eventrental.core.errors import (
    EquipmentNotFound,
    EquipmentUnavailable,
    InsufficientStock,
    ValidationError,
)
from eventrental.models.enums import EquipmentStatus
from eventrental.services import inventory_ledger


def anomalies() -> float:
    return REGISTRY.get_sample_value("ledger_release_anomalies_total") or 0.0


@pytest.mark.asyncio
async def test_reserve_moves_units_to_rented(session_factory):
    equipment_id = await make_equipment(session_factory, quantity=10)

    async with session_factory() as session:
        equipment = await inventory_ledger.reserve(session, equipment_id, 4)
        await session.commit()

    assert (equipment.quantity, equipment.rented_count) == (6, 4)
    assert await stock_of(session_factory, equipment_id) == (6, 4)


@pytest.mark.asyncio
async def test_reserve_insufficient_changes_nothing(session_factory):
    equipment_id = await make_equipment(session_factory, quantity=3)

    async with session_factory() as session:
        with pytest.raises(InsufficientStock) as exc_info:
            await inventory_ledger.reserve(session, equipment_id, 5)
        await session.rollback()

    assert exc_info.value.context == {"equipment_id": equipment_id, "requested": 5, "available": 3}
    assert await stock_of(session_factory, equipment_id) == (3, 0)


@pytest.mark.asyncio
async def test_reserve_requires_approved_equipment(session_factory):
    equipment_id = await make_equipment(session_factory, quantity=10, status=EquipmentStatus.PENDING)

    async with session_factory() as session:
        with pytest.raises(EquipmentUnavailable):
            await inventory_ledger.reserve(session, equipment_id, 1)
        await session.rollback()

    assert await stock_of(session_factory, equipment_id) == (10, 0)


@pytest.mark.asyncio
async def test_reserve_missing_equipment(session_factory):
    async with session_factory() as session:
        with pytest.raises(EquipmentNotFound):
            await inventory_ledger.reserve(session, 999, 1)
        await session.rollback()


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -2, True, 1.5, 2**31, 10**20])
async def test_reserve_rejects_non_positive_non_integer_or_oversized(session_factory, quantity):
    equipment_id = await make_equipment(session_factory, quantity=10)

    async with session_factory() as session:
        with pytest.raises(ValidationError):
            await inventory_ledger.reserve(session, equipment_id, quantity)
        with pytest.raises(ValidationError):
            await inventory_ledger.release(session, equipment_id, quantity)
        await session.rollback()

    assert await stock_of(session_factory, equipment_id) == (10, 0)


@pytest.mark.asyncio
async def test_counts_stay_non_negative_and_conserved(session_factory):
    """Any sequence of reserve/release keeps both counts >= 0 and their sum fixed."""
    equipment_id = await make_equipment(session_factory, quantity=5)
    steps = [("reserve", 2), ("reserve", 3), ("reserve", 1), ("release", 2), ("reserve", 2), ("release", 5)]

    for operation, quantity in steps:
        async with session_factory() as session:
            try:
                await getattr(inventory_ledger, operation)(session, equipment_id, quantity)
                await session.commit()
            except InsufficientStock:
                await session.rollback()

        available, rented = await stock_of(session_factory, equipment_id)
        assert available >= 0
        assert rented >= 0
        assert available + rented == 5


@pytest.mark.asyncio
async def test_concurrent_reserves_never_oversell(session_factory):
    """N concurrent single-unit reservations against K units: exactly K win."""
    units, contenders = 5, 25
    equipment_id = await make_equipment(session_factory, quantity=units)

    async def attempt() -> bool:
        async with session_factory() as session:
            try:
                await inventory_ledger.reserve(session, equipment_id, 1)
                await session.commit()
                return True
            except InsufficientStock:
                await session.rollback()
                return False

    results = await asyncio.gather(*(attempt() for _ in range(contenders)))

    assert results.count(True) == units
    assert results.count(False) == contenders - units
    assert await stock_of(session_factory, equipment_id) == (0, units)


@pytest.mark.asyncio
async def test_double_release_is_floored_and_counted(session_factory):
    equipment_id = await make_equipment(session_factory, quantity=10)
    before = anomalies()

    async with session_factory() as session:
        await inventory_ledger.reserve(session, equipment_id, 3)
        await session.commit()

    for _ in range(2):
        async with session_factory() as session:
            await inventory_ledger.release(session, equipment_id, 3)
            await session.commit()

    assert await stock_of(session_factory, equipment_id) == (10, 0)
    assert anomalies() == before + 1


@pytest.mark.asyncio
async def test_partial_over_release_only_returns_what_was_rented(session_factory):
    equipment_id = await make_equipment(session_factory, quantity=10)

    async with session_factory() as session:
        await inventory_ledger.reserve(session, equipment_id, 2)
        equipment = await inventory_ledger.release(session, equipment_id, 5)
        await session.commit()

    assert (equipment.quantity, equipment.rented_count) == (10, 0)


@pytest.mark.asyncio
async def test_adjust_routes_by_sign(session_factory):
    equipment_id = await make_equipment(session_factory, quantity=10)

    async with session_factory() as session:
        taken = await inventory_ledger.adjust(session, equipment_id, -4)
        assert (taken.quantity, taken.rented_count) == (6, 4)

        returned = await inventory_ledger.adjust(session, equipment_id, 1)
        assert (returned.quantity, returned.rented_count) == (7, 3)

        unchanged = await inventory_ledger.adjust(session, equipment_id, 0)
        assert (unchanged.quantity, unchanged.rented_count) == (7, 3)

        with pytest.raises(InsufficientStock):
            await inventory_ledger.adjust(session, equipment_id, -8)
        await session.commit()

    assert await stock_of(session_factory, equipment_id) == (7, 3)
