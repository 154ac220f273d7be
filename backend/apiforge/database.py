"""
apiforge — Database Engine & Session Management
================================================

What:  Async SQLAlchemy engine, session factory and declarative Base.
How:   `build_engine()` creates an async engine from settings; the container
       owns it and hands a session factory to the SQLAlchemy provider.
Who:   Used by the container, the lifespan handler and SqlAlchemyProvider.
When:  Engine is built once per application; sessions are opened per
       provider operation.

Connection Pooling:
    SQLite (aiosqlite) uses SQLAlchemy's default pool for file databases;
    server databases (postgresql+asyncpg) get pool_pre_ping and a one hour
    recycle so stale connections are replaced transparently.

    SQLite does not enforce foreign keys unless asked to, so every new
    SQLite connection runs `PRAGMA foreign_keys=ON`. Without it the
    INVALID_REFERENCE translation would never fire.
"""

import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from apiforge.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all ORM models.

    `Base.metadata` is used by the lifespan handler to create tables.
    """
    pass


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine for `settings.database_url`.

    Echoes SQL only at DEBUG log level; SQL logging is too noisy otherwise.
    """
    is_sqlite = settings.database_url.startswith("sqlite")
    kwargs = {"echo": settings.log_level == "DEBUG"}
    if not is_sqlite:
        kwargs.update(pool_pre_ping=True, pool_recycle=3600)

    engine = create_async_engine(settings.database_url, **kwargs)

    if is_sqlite:
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    logger.debug("Database engine created for %s", engine.url.render_as_string(hide_password=True))
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    # expire_on_commit=False: rows are serialized after commit
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """Create every table registered on Base.metadata (idempotent)."""
    # Imported for their side effect of registering tables on Base.metadata
    from apiforge.models import food_entry, nutrition_goal, user  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close all pooled connections. Called during application shutdown."""
    await engine.dispose()
