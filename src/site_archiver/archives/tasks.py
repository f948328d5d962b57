"""Celery task running the background crawl of one archive.

``run_archive_task``
    Loads the archive, crawls its root URL, persists pages and assets and
    moves the archive to ``COMPLETED``, or to ``FAILED`` on any error.

Task naming convention::

    site_archiver.archives.tasks.<action>

Retry policy:
    Crawling is stateful (files are written and rows inserted as it goes),
    so ``max_retries=0``.  Page and asset failures are handled inside the
    crawler; anything else ends in ``FAILED``.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from typing import Any

from site_archiver.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _run_archive(archive_id: uuid.UUID) -> None:
    """Build an :class:`ArchiveService` for this worker and run one archive."""
    from site_archiver.archives.service import build_archive_service  # noqa: PLC0415
    from site_archiver.config.settings import get_settings  # noqa: PLC0415
    from site_archiver.core.database import AsyncSessionLocal  # noqa: PLC0415

    service = build_archive_service(get_settings(), AsyncSessionLocal)
    await service.run_archive(archive_id)


def _record_task(status: str, task_start: float) -> None:
    try:
        from site_archiver.api.metrics import (  # noqa: PLC0415
            celery_task_duration_seconds,
            celery_tasks_total,
        )

        celery_tasks_total.labels(task_name="run_archive_task", status=status).inc()
        celery_task_duration_seconds.labels(task_name="run_archive_task").observe(
            time.perf_counter() - task_start
        )
    except Exception as exc:  # noqa: BLE001
        logger.debug("archiver: metrics recording failed: %s", exc)


@celery_app.task(
    name="site_archiver.archives.tasks.run_archive_task",
    bind=True,
    acks_late=True,
    max_retries=0,
    soft_time_limit=7_200,   # 2 hours
    time_limit=10_800,       # 3 hours
)
def run_archive_task(self: Any, archive_id: str) -> dict[str, Any]:
    """Crawl and persist the archive ``archive_id``.

    Runs the async pipeline via ``asyncio.run()``.  The pipeline records its
    own failures on the archive row, so this task only fails for a malformed
    id.

    Args:
        archive_id: UUID string of the archive to crawl.

    Returns:
        Dict with ``archive_id`` and the Celery ``task_id``.
    """
    logger.info("archiver: run_archive_task started for archive=%s", archive_id)
    task_start = time.perf_counter()
    try:
        asyncio.run(_run_archive(uuid.UUID(archive_id)))
    except Exception:
        _record_task("error", task_start)
        raise
    _record_task("success", task_start)
    logger.info("archiver: run_archive_task finished for archive=%s", archive_id)
    return {"archive_id": archive_id, "task_id": self.request.id}
