"""
Async engine, session factory and model base for the portal.

Request handlers get a session from ``get_db``; detached work such as
first-login notifications and the invite sweep opens its own sessions
through ``get_session_factory``. The connection string is never logged.
"""

import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from servicegrid_portal.config import settings

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    options = {"echo": settings.sqlalchemy_echo, "pool_pre_ping": True}
    # SQLite (local runs) does not take queue-pool sizing
    if not url.startswith("sqlite"):
        options.update(
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=1800,
        )
    return options


engine = create_async_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))


def _mark_query_start(conn, cursor, statement, parameters, context, executemany):
    conn.info.setdefault("portal_query_started", []).append(time.monotonic())


def _log_slow_query(conn, cursor, statement, parameters, context, executemany):
    started = conn.info.get("portal_query_started")
    if not started:
        return
    elapsed_ms = (time.monotonic() - started.pop()) * 1000
    if elapsed_ms < settings.SLOW_QUERY_THRESHOLD_MS:
        return
    # Only the table-level shape of the statement; bound values may hold token hashes
    summary = " ".join(statement.split())[:160]
    logger.warning("Slow portal query took %.0fms: %s", elapsed_ms, summary)


event.listen(engine.sync_engine, "before_cursor_execute", _mark_query_start)
event.listen(engine.sync_engine, "after_cursor_execute", _log_slow_query)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncSession:
    """Dependency to get a database session.

    Services commit their own units of work; this only closes the session.
    """
    session = async_session_maker()
    try:
        yield session
    finally:
        await session.close()


def get_session_factory() -> async_sessionmaker:
    """Dependency returning the factory used by fire-and-forget tasks."""
    return async_session_maker


async def init_db():
    """Create missing portal tables (local runs; production uses alembic)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
