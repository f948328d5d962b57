"""Pydantic request/response schemas for scheduled archives and scheduler status."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ScheduledArchiveCreate(BaseModel):
    """Payload for scheduling recurring archives of ``url``.

    Attributes:
        url: Root URL to archive on every firing.
        cron_schedule: Five-field cron expression.  Defaults to the configured
            ``default_cron_schedule`` (weekly, Sunday midnight UTC).
    """

    url: str = Field(min_length=1, max_length=2048)
    cron_schedule: Optional[str] = Field(default=None, max_length=100)


class ScheduledArchiveUpdate(BaseModel):
    """Partial update of a scheduled archive.  Omitted fields are unchanged."""

    cron_schedule: Optional[str] = Field(default=None, max_length=100)
    is_active: Optional[bool] = None


class ScheduledArchiveRead(BaseModel):
    """Representation of a persisted scheduled archive."""

    id: uuid.UUID
    url: str
    domain: str
    cron_schedule: str
    is_active: bool
    last_run: Optional[datetime]
    next_run: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class JobStatus(BaseModel):
    """Live state of one registered job."""

    id: uuid.UUID
    url: str
    schedule: str
    is_running: bool


class SchedulerStatus(BaseModel):
    """Aggregate state of the job registry."""

    total_jobs: int
    running_jobs: int
    jobs: List[JobStatus]
