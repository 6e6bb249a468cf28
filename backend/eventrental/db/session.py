"""
Async engine and session factory.

One AsyncSession per request. The reservation coordinator owns commit and
rollback; this dependency only guarantees the session is rolled back and
closed if a handler raises before the coordinator got to do so.
"""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from eventrental.core.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # Writers queue on the file lock instead of failing fast.
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """
    SQLite: take the write lock when the transaction starts.

    The driver's own deferred BEGIN breaks SAVEPOINT and lets two
    read-then-write transactions deadlock on lock upgrade. BEGIN IMMEDIATE
    serializes writers up front, which is what the conditional updates need.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str, **overrides) -> AsyncEngine:
    options = _engine_options(url)
    options.update(overrides)
    engine = create_async_engine(url, echo=settings.DEBUG, **options)
    if url.startswith("sqlite"):
        _use_immediate_transactions(engine)
    return engine


engine = build_engine(settings.DATABASE_URL)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
