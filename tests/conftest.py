"""Shared pytest fixtures for Site Archiver tests.

Fixture summary
---------------
test_engine        Async in-memory SQLite engine with all tables created.
session_factory    ``async_sessionmaker`` bound to ``test_engine``.
storage            :class:`ArchiveStorage` rooted in a per-test temp dir.
dispatched         List collecting archive ids handed to the fake dispatcher.
archive_service    :class:`ArchiveService` with the fake dispatcher and no crawler.
scheduler_service  :class:`SchedulerService` whose jobs sleep until cancelled.

Service tests run entirely against SQLite (aiosqlite); no PostgreSQL, Redis
or browser binary is required.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Set required env vars before any application modules are imported so that
# Settings() does not raise a ValidationError during collection.

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "SCHEDULER_ENABLED": "false",
    "PUBLIC_BASE_URL": "http://archive.test",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)

# ---------------------------------------------------------------------------
# Application imports (after env bootstrap)
# ---------------------------------------------------------------------------

from site_archiver.archives.service import ArchiveService  # noqa: E402
from site_archiver.archives.storage import ArchiveStorage  # noqa: E402
from site_archiver.config.settings import get_settings  # noqa: E402
from site_archiver.core.database import build_session_factory  # noqa: E402
from site_archiver.core.models import Base  # noqa: E402
from site_archiver.scheduler.service import SchedulerService  # noqa: E402

get_settings.cache_clear()

PUBLIC_BASE_URL = "http://archive.test"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Yield an in-memory SQLite engine shared by every session of one test.

    ``StaticPool`` keeps the single connection (and therefore the database)
    alive for the whole test; foreign keys are switched on so cascades match
    PostgreSQL.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @sa.event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def storage(tmp_path: Path) -> ArchiveStorage:
    return ArchiveStorage(tmp_path / "archives", filename_max_length=64)


@pytest.fixture
def dispatched() -> list[uuid.UUID]:
    return []


@pytest.fixture
def archive_service(
    session_factory: async_sessionmaker[AsyncSession],
    storage: ArchiveStorage,
    dispatched: list[uuid.UUID],
) -> ArchiveService:
    """ArchiveService whose dispatcher only records ids.

    Tests that run a crawl replace ``crawler_factory`` on the instance.
    """

    def _no_crawler():
        raise AssertionError("crawler_factory not configured for this test")

    return ArchiveService(
        session_factory=session_factory,
        storage=storage,
        crawler_factory=_no_crawler,
        dispatcher=dispatched.append,
        public_base_url=PUBLIC_BASE_URL,
    )


async def _sleep_forever(delay: float) -> None:  # noqa: ARG001
    await asyncio.Event().wait()


@pytest_asyncio.fixture
async def scheduler_service(
    session_factory: async_sessionmaker[AsyncSession],
    archive_service: ArchiveService,
) -> AsyncGenerator[SchedulerService, None]:
    """SchedulerService whose jobs never fire on their own."""
    service = SchedulerService(
        session_factory=session_factory,
        archive_service=archive_service,
        sleep=_sleep_forever,
    )
    yield service
    await service.shutdown()
