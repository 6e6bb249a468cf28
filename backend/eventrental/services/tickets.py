"""
Ticket numbers and ticket artifacts.

Ticket numbers look like TKT-482913-0457: the last six digits of the
millisecond clock plus four random digits. The unique index on
registrations.ticket_number is the authority; the lookup here only makes a
collision at insert time unlikely.
"""

import secrets
import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.core.config import get_settings
from eventrental.core.errors import TicketCollision
from eventrental.core.logging import get_logger
from eventrental.core.metrics import ticket_collisions
from eventrental.models.event import Event
from eventrental.models.registration import Registration

logger = get_logger(__name__)
settings = get_settings()


def generate_ticket_number() -> str:
    clock = int(time.time() * 1000) % 1_000_000
    return f"TKT-{clock:06d}-{secrets.randbelow(10_000):04d}"


async def ticket_exists(db: AsyncSession, ticket_number: str) -> bool:
    result = await db.execute(
        select(Registration.id).where(Registration.ticket_number == ticket_number)
    )
    return result.first() is not None


async def allocate_ticket_number(db: AsyncSession) -> str:
    """Generate a ticket number not yet in use, with a bounded number of tries."""
    for attempt in range(1, settings.TICKET_MAX_ATTEMPTS + 1):
        candidate = generate_ticket_number()
        if not await ticket_exists(db, candidate):
            return candidate
        ticket_collisions.inc()
        logger.info("ticket_collision", ticket_number=candidate, attempt=attempt)
    raise TicketCollision(settings.TICKET_MAX_ATTEMPTS)


def render_ticket(registration: Registration, event: Event) -> bytes:
    """Plain-text ticket for a registration."""
    lines = [
        "EVENT TICKET",
        "=" * 40,
        f"Event:    {event.title}",
        f"Date:     {event.date:%Y-%m-%d %H:%M}",
        f"Location: {event.location}",
        "-" * 40,
        f"Ticket:   {registration.ticket_number}",
        f"Status:   {registration.state.value.upper()}",
        f"Holder:   user #{registration.user_id}",
        "=" * 40,
    ]
    return ("\n".join(lines) + "\n").encode("utf-8")
