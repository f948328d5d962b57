"""Async SQLAlchemy engine and session factory.

Provides:
- async_engine:         the application-wide AsyncEngine instance
- AsyncSessionLocal:    the async_sessionmaker factory
- get_db():             FastAPI dependency that yields an AsyncSession
- Base.metadata:        re-exported so migrations can reference it without
                        importing individual models

Services do not open sessions from this module directly; they receive an
``async_sessionmaker`` so that tests can bind them to a throwaway engine.

Connection pool is sized for the FastAPI process plus the Celery workers:
- pool_size=10:         baseline connections held open
- max_overflow=20:      burst connections allowed above pool_size
- pool_pre_ping=True:   verify connection health before handing out

SQLite URLs (local development) skip the pool arguments.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

# Import Base so callers can do ``from site_archiver.core.database import Base``.
from site_archiver.core.models.base import Base  # noqa: F401


def _build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine from a database URL.

    Separated from module-level code so tests can call this with a test DSN
    without importing settings.
    """
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False)
    return create_async_engine(
        database_url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def _get_database_url() -> str:
    """Resolve the database URL from application settings.

    Imported lazily so that test code can patch settings before the engine
    is created.
    """
    from site_archiver.config.settings import get_settings  # noqa: PLC0415

    return str(get_settings().database_url)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Return the session factory configuration shared by the app and the tests."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# ---------------------------------------------------------------------------
# Application-wide engine and session factory.
# These are module-level singletons created on first import.
# ---------------------------------------------------------------------------
async_engine = _build_engine(_get_database_url())

AsyncSessionLocal: async_sessionmaker[AsyncSession] = build_session_factory(async_engine)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an AsyncSession for use as a FastAPI dependency.

    The session is closed after the response is sent, even if an exception
    is raised.  It is NOT auto-committed on exit; route handlers remain
    explicit about their transaction boundaries.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
