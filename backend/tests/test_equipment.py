"""
Tests for the equipment catalog endpoints.
"""

import asyncio

import pytest
from httpx import AsyncClient

from conftest import VENDOR_ID, auth_headers, future, make_equipment, stock_of
from eventrental.core.errors import EquipmentInUse, EquipmentNotFound
from eventrental.core.security import Principal
from eventrental.models.enums import EquipmentStatus
from eventrental.schemas.event import EquipmentLine
from eventrental.services import equipment_service
from eventrental.services import reservation_coordinator as coordinator


@pytest.mark.asyncio
async def test_vendor_lists_equipment_pending(client: AsyncClient, vendor_headers):
    response = await client.post(
        "/api/v1/equipment/",
        json={"name": "Fog Machine", "category": "effects", "unit_price": "12.50", "quantity": 4},
        headers=vendor_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "pending"
    assert (data["quantity"], data["rented_count"]) == (4, 0)


@pytest.mark.asyncio
async def test_only_vendors_list_equipment(client: AsyncClient, organizer_headers):
    response = await client.post(
        "/api/v1/equipment/",
        json={"name": "Fog Machine", "unit_price": "12.50", "quantity": 4},
        headers=organizer_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_negative_quantity_rejected_by_schema(client: AsyncClient, vendor_headers):
    response = await client.post(
        "/api/v1/equipment/",
        json={"name": "Fog Machine", "unit_price": "12.50", "quantity": -1},
        headers=vendor_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_admin_approval_makes_equipment_rentable(client: AsyncClient, session_factory, admin_headers):
    equipment_id = await make_equipment(session_factory, status=EquipmentStatus.PENDING)
    assert (await client.get("/api/v1/equipment/")).json()["total"] == 0

    response = await client.patch(
        f"/api/v1/equipment/{equipment_id}/status", json={"status": "approved"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    catalog = (await client.get("/api/v1/equipment/")).json()
    assert [item["id"] for item in catalog["items"]] == [equipment_id]
    assert catalog["cached"] is False


@pytest.mark.asyncio
async def test_status_change_requires_admin(client: AsyncClient, equipment_id, vendor_headers):
    response = await client.patch(
        f"/api/v1/equipment/{equipment_id}/status", json={"status": "rejected"}, headers=vendor_headers
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_status_change_unknown_value(client: AsyncClient, equipment_id, admin_headers):
    response = await client.patch(
        f"/api/v1/equipment/{equipment_id}/status", json={"status": "lost"}, headers=admin_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_catalog_filters_by_category_and_stock(client: AsyncClient, session_factory):
    speaker = await make_equipment(session_factory, quantity=2, category="audio")
    await make_equipment(session_factory, quantity=0, category="audio", name="Sold out")
    await make_equipment(session_factory, quantity=5, category="lighting", name="Lights")

    response = await client.get("/api/v1/equipment/", params={"category": "audio"})

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == [speaker]


@pytest.mark.asyncio
async def test_get_equipment(client: AsyncClient, equipment_id):
    response = await client.get(f"/api/v1/equipment/{equipment_id}")
    assert response.status_code == 200
    assert response.json()["quantity"] == 10

    response = await client.get("/api/v1/equipment/99999")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_equipment_in_use(client: AsyncClient, vendor_headers, equipment_id, event_id):
    response = await client.delete(f"/api/v1/equipment/{equipment_id}", headers=vendor_headers)

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "equipment_in_use"
    assert body["context"]["event_ids"] == [event_id]


@pytest.mark.asyncio
async def test_delete_equipment(client: AsyncClient, vendor_headers, equipment_id):
    response = await client.delete(f"/api/v1/equipment/{equipment_id}", headers=vendor_headers)
    assert response.status_code == 204

    assert (await client.get(f"/api/v1/equipment/{equipment_id}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_equipment_of_other_vendor(client: AsyncClient, equipment_id):
    response = await client.delete(f"/api/v1/equipment/{equipment_id}", headers=auth_headers(55, "vendor"))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_price_change_keeps_reserved_lines_at_old_price(
    client: AsyncClient, vendor_headers, organizer_headers, session_factory, equipment_id, event_id
):
    response = await client.patch(
        f"/api/v1/equipment/{equipment_id}",
        json={"unit_price": "99.00", "name": "Big Speaker"},
        headers=vendor_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert (data["name"], data["unit_price"]) == ("Big Speaker", "99.00")
    assert await stock_of(session_factory, equipment_id) == (8, 2)

    summary = (await client.get(f"/api/v1/events/{event_id}/summary")).json()
    assert summary["equipment"][0]["unit_price"] == "25.00"
    assert summary["equipment_cost"] == "50.00"

    response = await client.post(
        "/api/v1/events/",
        json={
            "title": "After Party",
            "date": future().isoformat(),
            "location": "Rooftop",
            "capacity": 20,
            "equipment": [{"equipment_id": equipment_id, "quantity": 1}],
        },
        headers=organizer_headers,
    )
    assert response.status_code == 201
    assert response.json()["equipment"][0]["unit_price"] == "99.00"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [{"quantity": 500}, {"rented_count": 0}, {"name": None}, {"unit_price": "-1.00"}],
    ids=["quantity", "rented-count", "null-name", "negative-price"],
)
async def test_update_equipment_rejects_bad_fields(client: AsyncClient, vendor_headers, session_factory, equipment_id, body):
    response = await client.patch(f"/api/v1/equipment/{equipment_id}", json=body, headers=vendor_headers)

    assert response.status_code == 422
    assert await stock_of(session_factory, equipment_id) == (10, 0)


@pytest.mark.asyncio
async def test_update_equipment_owner_or_admin(client: AsyncClient, admin_headers, equipment_id):
    response = await client.patch(
        f"/api/v1/equipment/{equipment_id}", json={"category": "pa"}, headers=auth_headers(55, "vendor")
    )
    assert response.status_code == 403

    response = await client.patch(f"/api/v1/equipment/{equipment_id}", json={"category": "pa"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["category"] == "pa"

    response = await client.patch("/api/v1/equipment/99999", json={"category": "pa"}, headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_missing_equipment(client: AsyncClient, vendor_headers):
    response = await client.delete("/api/v1/equipment/99999", headers=vendor_headers)
    assert response.status_code == 404
    assert response.json()["error"] == "equipment_not_found"


@pytest.mark.asyncio
async def test_delete_racing_a_reservation_has_one_clean_winner(session_factory, notifier, organizer, event_id):
    """Either the line lands first (in use) or the delete does (not found); never a persistence error."""
    mixer = await make_equipment(session_factory, quantity=3, name="Mixer")
    vendor = Principal(user_id=VENDOR_ID, role="vendor")

    async def delete():
        async with session_factory() as session:
            return await equipment_service.delete_equipment(session, mixer, vendor)

    async def reserve():
        async with session_factory() as session:
            return await coordinator.add_equipment_to_event(
                session, event_id, [EquipmentLine(equipment_id=mixer, quantity=1)], organizer, notifier
            )

    deleted, added = await asyncio.gather(delete(), reserve(), return_exceptions=True)

    if isinstance(deleted, EquipmentInUse):
        assert not isinstance(added, Exception)
        assert await stock_of(session_factory, mixer) == (2, 1)
    else:
        assert deleted is None
        assert isinstance(added, EquipmentNotFound)
