"""Recurring archive jobs backed by ``scheduled_archives`` rows.

Each active row has exactly one live job: an :class:`asyncio.Task` that
sleeps until the next occurrence of the row's cron expression, asks the
archive service for a new archive, records the run and goes back to sleep.
Inactive rows have no job.

The job registry is owned by one :class:`SchedulerService` instance.  Every
mutation of a row (create, update, toggle, delete) deregisters and, when the
row ends up active, re-registers its job while holding that row's lock, so
two concurrent mutations of the same row can never leave zero or two jobs
behind an active row.

A failed firing is logged and leaves ``last_run``/``next_run`` untouched; the
job stays registered and fires again at the next occurrence.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from site_archiver.archives.service import ArchiveService, validate_url
from site_archiver.core.exceptions import DuplicateScheduleError, ScheduleNotFoundError
from site_archiver.core.models import ScheduledArchive, ensure_utc, utcnow
from site_archiver.core.schemas.schedule import JobStatus, SchedulerStatus
from site_archiver.scheduler.cadence import next_occurrence, validate_cadence

logger = structlog.get_logger(__name__)

DEFAULT_CRON_SCHEDULE = "0 0 * * 0"


def _record_firing(outcome: str) -> None:
    try:
        from site_archiver.api.metrics import scheduled_firings_total  # noqa: PLC0415

        scheduled_firings_total.labels(outcome=outcome).inc()
    except Exception as exc:  # noqa: BLE001
        logger.debug("scheduler_metrics_failed", error=str(exc))


@dataclass
class ScheduledJob:
    """A registered recurring job and the task driving it."""

    schedule_id: uuid.UUID
    url: str
    cron_schedule: str
    task: asyncio.Task

    @property
    def is_running(self) -> bool:
        return not self.task.done()


class SchedulerService:
    """Keeps live jobs in lockstep with the active ``scheduled_archives`` rows.

    Args:
        session_factory: Factory for the ``AsyncSession`` used by every call.
        archive_service: Service invoked on every firing.
        default_cron_schedule: Cadence used when none is supplied.
        clock: Returns the current aware UTC time.
        sleep: Coroutine used to wait for the next occurrence.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        archive_service: ArchiveService,
        default_cron_schedule: str = DEFAULT_CRON_SCHEDULE,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.session_factory = session_factory
        self.archive_service = archive_service
        self.default_cron_schedule = default_cron_schedule
        self._clock = clock
        self._sleep = sleep
        self._jobs: dict[uuid.UUID, ScheduledJob] = {}
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def _lock_for(self, schedule_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(schedule_id)
        if lock is None:
            lock = self._locks[schedule_id] = asyncio.Lock()
        return lock

    def _register(self, record: ScheduledArchive) -> None:
        task = asyncio.create_task(
            self._run_job(record.id, record.url, record.cron_schedule),
            name=f"scheduled-archive-{record.id}",
        )
        self._jobs[record.id] = ScheduledJob(
            schedule_id=record.id,
            url=record.url,
            cron_schedule=record.cron_schedule,
            task=task,
        )
        logger.info(
            "scheduled_job_registered",
            schedule_id=str(record.id),
            url=record.url,
            cron_schedule=record.cron_schedule,
        )

    async def _deregister(self, schedule_id: uuid.UUID) -> None:
        job = self._jobs.pop(schedule_id, None)
        if job is None:
            return
        job.task.cancel()
        await asyncio.gather(job.task, return_exceptions=True)
        logger.info("scheduled_job_deregistered", schedule_id=str(schedule_id))

    async def _sync_job(self, record: ScheduledArchive) -> None:
        """Replace the job of ``record``; caller holds the row's lock."""
        await self._deregister(record.id)
        if record.is_active:
            self._register(record)

    def registered_job(self, schedule_id: uuid.UUID) -> Optional[ScheduledJob]:
        return self._jobs.get(schedule_id)

    # ------------------------------------------------------------------
    # Job body
    # ------------------------------------------------------------------

    async def _run_job(self, schedule_id: uuid.UUID, url: str, cron_schedule: str) -> None:
        while True:
            now = self._clock()
            delay = (next_occurrence(cron_schedule, now) - now).total_seconds()
            await self._sleep(max(0.0, delay))
            await self.fire_job(schedule_id, url, cron_schedule)

    async def fire_job(self, schedule_id: uuid.UUID, url: str, cron_schedule: str) -> bool:
        """Run one firing of a job.  Returns ``True`` when an archive was created.

        Never raises.
        """
        log = logger.bind(schedule_id=str(schedule_id), url=url)
        try:
            archive = await self.archive_service.create_archive(url)
        except Exception as exc:  # noqa: BLE001
            log.error("scheduled_archive_failed", error=str(exc))
            _record_firing("error")
            return False

        now = self._clock()
        try:
            async with self.session_factory() as session:
                await session.execute(
                    sa.update(ScheduledArchive)
                    .where(ScheduledArchive.id == schedule_id)
                    .values(
                        last_run=now,
                        next_run=next_occurrence(cron_schedule, now),
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except Exception as exc:  # noqa: BLE001
            log.error("scheduled_archive_update_failed", error=str(exc))
        _record_firing("success")
        log.info("scheduled_archive_fired", archive_id=str(archive.id))
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize_scheduler(self) -> int:
        """Register a job for every active row.  Returns the number registered.

        Rows whose ``next_run`` is missing or already past get a fresh one.
        """
        now = self._clock()
        async with self.session_factory() as session:
            result = await session.execute(
                sa.select(ScheduledArchive).where(ScheduledArchive.is_active.is_(True))
            )
            records = list(result.scalars().all())
            for record in records:
                next_run = ensure_utc(record.next_run)
                if next_run is None or next_run <= now:
                    record.next_run = next_occurrence(record.cron_schedule, now)
            await session.commit()

        registered = 0
        for record in records:
            async with self._lock_for(record.id):
                if record.id in self._jobs:
                    continue
                self._register(record)
                registered += 1
        logger.info("scheduler_initialized", jobs=registered)
        return registered

    async def shutdown(self) -> None:
        """Cancel every live job."""
        for schedule_id in list(self._jobs):
            async with self._lock_for(schedule_id):
                await self._deregister(schedule_id)
        logger.info("scheduler_shutdown")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _ensure_url_not_scheduled(
        self,
        session: AsyncSession,
        url: str,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        stmt = sa.select(ScheduledArchive.id).where(
            ScheduledArchive.url == url,
            ScheduledArchive.is_active.is_(True),
        )
        if exclude_id is not None:
            stmt = stmt.where(ScheduledArchive.id != exclude_id)
        if (await session.execute(stmt.limit(1))).first() is not None:
            raise DuplicateScheduleError(url)

    async def create_scheduled_archive(
        self,
        url: str,
        cron_schedule: Optional[str] = None,
    ) -> ScheduledArchive:
        """Persist an active schedule for ``url`` and register its job.

        Raises:
            InvalidUrlError: If ``url`` is not an absolute http(s) URL.
            InvalidCadenceError: If ``cron_schedule`` is malformed.
            DuplicateScheduleError: If ``url`` already has an active schedule.
        """
        url = url.strip()
        domain = validate_url(url)
        cron_schedule = validate_cadence(cron_schedule or self.default_cron_schedule)

        async with self.session_factory() as session:
            await self._ensure_url_not_scheduled(session, url)
            record = ScheduledArchive(
                url=url,
                domain=domain,
                cron_schedule=cron_schedule,
                is_active=True,
                next_run=next_occurrence(cron_schedule, self._clock()),
            )
            session.add(record)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateScheduleError(url) from exc

        async with self._lock_for(record.id):
            await self._sync_job(record)
        logger.info(
            "scheduled_archive_created",
            schedule_id=str(record.id),
            url=url,
            cron_schedule=cron_schedule,
        )
        return record

    async def update_scheduled_archive(
        self,
        schedule_id: uuid.UUID,
        cron_schedule: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> ScheduledArchive:
        """Change the cadence and/or active flag of a schedule.

        ``next_run`` is recomputed when the cadence changes or the schedule
        is re-activated.

        Raises:
            InvalidCadenceError: If ``cron_schedule`` is malformed.
            ScheduleNotFoundError: If no schedule has ``schedule_id``.
            DuplicateScheduleError: If activating would leave two active
                schedules for the same URL.
        """
        if cron_schedule is not None:
            cron_schedule = validate_cadence(cron_schedule)
        async with self._lock_for(schedule_id):
            return await self._update_locked(schedule_id, cron_schedule, is_active)

    async def toggle_scheduled_archive(self, schedule_id: uuid.UUID) -> ScheduledArchive:
        """Flip ``is_active`` of a schedule.

        Raises:
            ScheduleNotFoundError: If no schedule has ``schedule_id``.
            DuplicateScheduleError: If activating would leave two active
                schedules for the same URL.
        """
        async with self._lock_for(schedule_id):
            async with self.session_factory() as session:
                record = await session.get(ScheduledArchive, schedule_id)
                if record is None:
                    raise ScheduleNotFoundError(schedule_id)
                target = not record.is_active
            return await self._update_locked(schedule_id, None, target)

    async def _update_locked(
        self,
        schedule_id: uuid.UUID,
        cron_schedule: Optional[str],
        is_active: Optional[bool],
    ) -> ScheduledArchive:
        async with self.session_factory() as session:
            record = await session.get(ScheduledArchive, schedule_id)
            if record is None:
                raise ScheduleNotFoundError(schedule_id)

            reactivated = bool(is_active) and not record.is_active
            if reactivated:
                await self._ensure_url_not_scheduled(session, record.url, exclude_id=record.id)

            cadence_changed = cron_schedule is not None and cron_schedule != record.cron_schedule
            if cron_schedule is not None:
                record.cron_schedule = cron_schedule
            if is_active is not None:
                record.is_active = is_active
            if cadence_changed or reactivated:
                record.next_run = next_occurrence(record.cron_schedule, self._clock())

            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateScheduleError(record.url) from exc

        await self._sync_job(record)
        logger.info(
            "scheduled_archive_updated",
            schedule_id=str(schedule_id),
            cron_schedule=record.cron_schedule,
            is_active=record.is_active,
        )
        return record

    async def delete_scheduled_archive(self, schedule_id: uuid.UUID) -> None:
        """Deregister the job of a schedule and delete the row.

        Raises:
            ScheduleNotFoundError: If no schedule has ``schedule_id``.
        """
        async with self._lock_for(schedule_id):
            async with self.session_factory() as session:
                record = await session.get(ScheduledArchive, schedule_id)
                if record is None:
                    raise ScheduleNotFoundError(schedule_id)
                await self._deregister(schedule_id)
                await session.delete(record)
                await session.commit()
        self._locks.pop(schedule_id, None)
        logger.info("scheduled_archive_deleted", schedule_id=str(schedule_id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_scheduled_archive(self, schedule_id: uuid.UUID) -> ScheduledArchive:
        async with self.session_factory() as session:
            record = await session.get(ScheduledArchive, schedule_id)
        if record is None:
            raise ScheduleNotFoundError(schedule_id)
        return record

    async def list_scheduled_archives(self) -> list[ScheduledArchive]:
        """Return every schedule, soonest ``next_run`` first."""
        async with self.session_factory() as session:
            result = await session.execute(
                sa.select(ScheduledArchive).order_by(
                    ScheduledArchive.next_run.asc().nulls_last(),
                    ScheduledArchive.created_at.asc(),
                )
            )
            return list(result.scalars().all())

    def active_jobs_count(self) -> int:
        return sum(1 for job in self._jobs.values() if job.is_running)

    def get_job_status(self) -> SchedulerStatus:
        """Report every registered job and whether its task is still live."""
        jobs = [
            JobStatus(
                id=job.schedule_id,
                url=job.url,
                schedule=job.cron_schedule,
                is_running=job.is_running,
            )
            for job in self._jobs.values()
        ]
        return SchedulerStatus(
            total_jobs=len(jobs),
            running_jobs=sum(1 for job in jobs if job.is_running),
            jobs=jobs,
        )
