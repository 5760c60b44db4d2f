"""
Database Session Management

Async engine and session factory for the visitor store.

Key Features:
- SQLite by default: NullPool and check_same_thread=False for aiosqlite
- Any other async SQLAlchemy URL gets the driver's default pooling
- The session factory is the store handle: it is put on app.state at startup
  and passed explicitly to services and background tasks
- Fail-fast connectivity check used by the startup hook
"""

from typing import Any, AsyncGenerator

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession as SQLModelAsyncSession

from visitor_tracker.core.setting import settings
from visitor_tracker.db import models  # noqa: F401  (registers tables on the metadata)


def is_sqlite_url(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """
    Create the async engine for a database URL.

    SQLite-specific configuration:
    - NullPool: file-based database, a fresh connection per checkout
    - check_same_thread=False: required for aiosqlite
    """
    engine_kwargs: dict[str, Any] = {"echo": False}
    if is_sqlite_url(database_url):
        engine_kwargs["poolclass"] = NullPool
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_pre_ping"] = True
    engine_kwargs.update(kwargs)

    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=SQLModelAsyncSession,
        expire_on_commit=False,  # Rows are serialized after commit for broadcasting
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)
async_session_maker = build_session_factory(engine)


async def init_database(db_engine: AsyncEngine, create_tables: bool = True) -> None:
    """
    Verify the store is reachable and optionally create missing tables.

    Raises whatever the driver raises; the startup hook turns that into
    StoreUnavailableError.
    """
    async with db_engine.begin() as connection:
        if create_tables:
            await connection.run_sync(SQLModel.metadata.create_all)
        await connection.execute(text("SELECT 1"))


async def ping_database(session: AsyncSession) -> bool:
    """Return True if a trivial query succeeds on the given session."""
    try:
        await session.execute(text("SELECT 1"))
    except Exception:
        return False
    return True


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency function for FastAPI to get a database session.

    Uses the session factory registered on app.state at startup, commits
    on success and rolls back on any exception.
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
