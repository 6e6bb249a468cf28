"""
Pytest fixtures for test database, client, and authentication.

Each test gets its own SQLite database file, so concurrent sessions in the
race tests really contend for the same rows. Identity is a locally minted
JWT; notifications go to a recording dispatcher.
"""

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./eventrental_test.db")
os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("NOTIFICATION_BACKEND", "log")

from datetime import datetime, timezone, timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventrental.main import app
from eventrental.api.deps import get_notifier
from eventrental.core.security import Principal, create_access_token
from eventrental.db.base import Base
from eventrental.db.session import build_engine, get_db
from eventrental.models import Equipment
from eventrental.models.enums import EquipmentStatus
from eventrental.schemas.event import EquipmentLine, EventCreate
from eventrental.services import reservation_coordinator as coordinator
from eventrental.services.interfaces.notifier import NotificationDispatcher

ORGANIZER_ID = 1
VENDOR_ID = 2
ADMIN_ID = 3


class RecordingNotifier(NotificationDispatcher):
    """Keeps every notification in memory; optionally fails like a broken backend."""

    backend = "recording"

    def __init__(self):
        self.sent: list[tuple[int, str, dict]] = []
        self.fail = False

    async def notify(self, user_id: int, kind: str, payload: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("notification backend down")
        self.sent.append((user_id, kind, payload))

    def kinds_for(self, user_id: int) -> list[str]:
        return [kind for uid, kind, _ in self.sent if uid == user_id]


def auth_headers(user_id: int, role: str = "user") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


def future(days: int = 30) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh database file per test; tables created from the models."""
    # Long pool wait: the race tests queue hundreds of sessions on a few connections
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'eventrental.db'}", pool_timeout=120)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client with one fresh session per request, like production."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def organizer() -> Principal:
    return Principal(user_id=ORGANIZER_ID, role="user")


@pytest.fixture
def admin() -> Principal:
    return Principal(user_id=ADMIN_ID, role="admin")


@pytest.fixture
def organizer_headers() -> dict:
    return auth_headers(ORGANIZER_ID)


@pytest.fixture
def vendor_headers() -> dict:
    return auth_headers(VENDOR_ID, "vendor")


@pytest.fixture
def admin_headers() -> dict:
    return auth_headers(ADMIN_ID, "admin")


async def make_equipment(
    session_factory,
    quantity: int = 10,
    unit_price: str = "25.00",
    status: EquipmentStatus = EquipmentStatus.APPROVED,
    name: str = "Speaker",
    category: Optional[str] = "audio",
) -> int:
    """Seed equipment directly; returns its id."""
    async with session_factory() as session:
        equipment = Equipment(
            name=name,
            category=category,
            vendor_id=VENDOR_ID,
            unit_price=Decimal(unit_price),
            quantity=quantity,
            rented_count=0,
            status=status.value,
        )
        session.add(equipment)
        await session.commit()
        return equipment.id


async def make_event(
    session_factory,
    notifier: NotificationDispatcher,
    lines: list[tuple[int, int]],
    capacity: int = 100,
    waitlist_enabled: bool = True,
    organizer_id: int = ORGANIZER_ID,
) -> int:
    """Create an event through the coordinator; returns its id."""
    data = EventCreate(
        title="Test Gala",
        description="A test event",
        date=future(),
        location="Test Venue",
        capacity=capacity,
        waitlist_enabled=waitlist_enabled,
        equipment=[EquipmentLine(equipment_id=eid, quantity=qty) for eid, qty in lines],
    )
    async with session_factory() as session:
        event = await coordinator.create_event_with_equipment(session, data, organizer_id, notifier)
        return event.id


async def stock_of(session_factory, equipment_id: int) -> tuple[int, int]:
    """(quantity, rented_count) as committed."""
    async with session_factory() as session:
        equipment = await session.get(Equipment, equipment_id)
        return equipment.quantity, equipment.rented_count


@pytest_asyncio.fixture
async def equipment_id(session_factory) -> int:
    """Approved equipment with 10 units."""
    return await make_equipment(session_factory, quantity=10)


@pytest_asyncio.fixture
async def event_id(session_factory, notifier, equipment_id) -> int:
    """Event with capacity 2, waitlist open, renting 2 of the 10 units."""
    return await make_event(session_factory, notifier, [(equipment_id, 2)], capacity=2)
