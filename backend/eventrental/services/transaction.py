"""
Transaction boundary shared by the coordinator and the catalog service.

`atomic` wraps one logical operation in the session's transaction: every
ledger and capacity step inside it commits together or is rolled back
together. The database transaction is the compensating-action list, so a
failure on the third equipment line undoes the first two without any
hand-written release calls.

`after_commit` runs side effects that must never undo a committed
reservation (notifications, cache invalidation). Their failures are logged
and counted, not raised.
"""

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from eventrental.core.errors import PersistenceFailure, ReservationError
from eventrental.core.logging import get_logger
from eventrental.core.metrics import notification_failures, record_operation, reservation_latency
from eventrental.services.cache_service import invalidate_catalog_cache
from eventrental.services.interfaces.notifier import NotificationDispatcher

logger = get_logger(__name__)


@dataclass
class Notice:
    """A notification to send once the transaction has committed."""

    user_id: int
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


@asynccontextmanager
async def atomic(db: AsyncSession, operation: str) -> AsyncIterator[None]:
    start = time.perf_counter()
    try:
        yield
        await db.commit()
    except ReservationError as e:
        await db.rollback()
        record_operation(operation, "rejected")
        logger.info("operation_rejected", operation=operation, error=e.code, detail=e.detail)
        raise
    except SQLAlchemyError as e:
        await db.rollback()
        record_operation(operation, "rolled_back")
        logger.error("operation_rolled_back", operation=operation, error=str(e))
        raise PersistenceFailure(operation, e) from e
    except Exception:
        await db.rollback()
        record_operation(operation, "rolled_back")
        logger.exception("operation_failed", operation=operation)
        raise

    record_operation(operation, "committed")
    reservation_latency.labels(operation=operation).observe(time.perf_counter() - start)


async def after_commit(
    notifier: NotificationDispatcher,
    notices: Iterable[Notice] = (),
    stock_changed: bool = False,
) -> None:
    for notice in notices:
        try:
            await notifier.notify(notice.user_id, notice.kind, notice.payload)
        except Exception as e:
            notification_failures.labels(backend=notifier.backend).inc()
            logger.warning(
                "notification_failed",
                user_id=notice.user_id,
                kind=notice.kind,
                backend=notifier.backend,
                error=str(e),
            )

    if stock_changed:
        await invalidate_catalog_cache()
