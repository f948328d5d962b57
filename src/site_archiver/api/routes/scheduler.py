"""FastAPI router for recurring archive schedules.

Routes:
    GET    /api/scheduler/scheduled-archives                  list schedules
    POST   /api/scheduler/scheduled-archives                  create schedule
    PUT    /api/scheduler/scheduled-archives/{id}             update cadence / active flag
    DELETE /api/scheduler/scheduled-archives/{id}             delete schedule
    POST   /api/scheduler/scheduled-archives/{id}/toggle      flip active flag
    GET    /api/scheduler/status                              live job registry
"""

from __future__ import annotations

import uuid

import structlog
from fastapi import APIRouter, Response, status

from site_archiver.api.dependencies import SchedulerServiceDep
from site_archiver.core.models import ScheduledArchive
from site_archiver.core.schemas.schedule import (
    ScheduledArchiveCreate,
    ScheduledArchiveRead,
    ScheduledArchiveUpdate,
    SchedulerStatus,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/scheduled-archives", response_model=list[ScheduledArchiveRead])
async def list_scheduled_archives(scheduler: SchedulerServiceDep) -> list[ScheduledArchive]:
    """Return every schedule, soonest next run first."""
    return await scheduler.list_scheduled_archives()


@router.post(
    "/scheduled-archives",
    response_model=ScheduledArchiveRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_scheduled_archive(
    payload: ScheduledArchiveCreate,
    scheduler: SchedulerServiceDep,
) -> ScheduledArchive:
    """Schedule recurring archives of ``payload.url``.

    Raises:
        HTTPException 400: If the URL or the cron expression is invalid.
        HTTPException 409: If the URL already has an active schedule.
    """
    return await scheduler.create_scheduled_archive(payload.url, payload.cron_schedule)


@router.put("/scheduled-archives/{schedule_id}", response_model=ScheduledArchiveRead)
async def update_scheduled_archive(
    schedule_id: uuid.UUID,
    payload: ScheduledArchiveUpdate,
    scheduler: SchedulerServiceDep,
) -> ScheduledArchive:
    """Change the cadence and/or active flag of a schedule.

    Raises:
        HTTPException 400: If the cron expression is invalid.
        HTTPException 404: If the schedule does not exist.
        HTTPException 409: If activation would duplicate an active schedule.
    """
    return await scheduler.update_scheduled_archive(
        schedule_id,
        cron_schedule=payload.cron_schedule,
        is_active=payload.is_active,
    )


@router.delete(
    "/scheduled-archives/{schedule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_model=None,
)
async def delete_scheduled_archive(
    schedule_id: uuid.UUID,
    scheduler: SchedulerServiceDep,
) -> Response:
    """Delete a schedule and stop its job.

    Raises:
        HTTPException 404: If the schedule does not exist.
    """
    await scheduler.delete_scheduled_archive(schedule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/scheduled-archives/{schedule_id}/toggle", response_model=ScheduledArchiveRead)
async def toggle_scheduled_archive(
    schedule_id: uuid.UUID,
    scheduler: SchedulerServiceDep,
) -> ScheduledArchive:
    """Flip the active flag of a schedule.

    Raises:
        HTTPException 404: If the schedule does not exist.
        HTTPException 409: If activation would duplicate an active schedule.
    """
    record = await scheduler.toggle_scheduled_archive(schedule_id)
    logger.info(
        "scheduled_archive_toggled",
        schedule_id=str(schedule_id),
        is_active=record.is_active,
    )
    return record


@router.get("/status", response_model=SchedulerStatus)
async def scheduler_status(scheduler: SchedulerServiceDep) -> SchedulerStatus:
    """Return every registered job and whether its timer is live."""
    return scheduler.get_job_status()
