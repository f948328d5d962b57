"""FastAPI dependency injection providers.

The services are built once by the application lifespan and stored on
``app.state``; route handlers receive them through these providers.  Tests
replace them with ``app.dependency_overrides``.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from site_archiver.archives.service import ArchiveService
from site_archiver.config.settings import Settings, get_settings
from site_archiver.scheduler.service import SchedulerService


def get_archive_service(request: Request) -> ArchiveService:
    """Return the application's :class:`ArchiveService`."""
    return request.app.state.archive_service


def get_scheduler_service(request: Request) -> SchedulerService:
    """Return the application's :class:`SchedulerService`."""
    return request.app.state.scheduler_service


def get_session_factory(request: Request) -> async_sessionmaker[AsyncSession]:
    """Return the session factory shared by the services."""
    return request.app.state.session_factory


ArchiveServiceDep = Annotated[ArchiveService, Depends(get_archive_service)]
SchedulerServiceDep = Annotated[SchedulerService, Depends(get_scheduler_service)]
SessionFactoryDep = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
