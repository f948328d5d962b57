"""Celery application for Site Archiver background crawls.

Configures the broker, result backend, serialization, task routing, and
timezone.  All configuration values are sourced from ``Settings`` so that
no secrets or environment-specific values are hard-coded here.

Usage (starting a worker)::

    celery -A site_archiver.workers.celery_app worker -Q archiving --loglevel=info

Usage (within application code)::

    from site_archiver.archives.tasks import run_archive_task

    run_archive_task.apply_async(kwargs={"archive_id": str(archive.id)}, queue="archiving")
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import setup_logging, task_postrun, worker_process_init
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

load_dotenv()

from site_archiver.config.settings import get_settings  # noqa: E402

settings = get_settings()

#: The global Celery application instance.
celery_app = Celery(
    "site_archiver",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["site_archiver.archives.tasks"],
)

# ---------------------------------------------------------------------------
# Core configuration
# ---------------------------------------------------------------------------

celery_app.conf.update(
    # JSON only; task arguments are archive ids.
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    # Acknowledge after completion so a crashed worker's crawl is redelivered
    # rather than silently lost.
    task_acks_late=True,
    # One long crawl per worker process at a time.
    worker_prefetch_multiplier=1,
    result_expires=86_400,
    task_soft_time_limit=3_600,
    task_time_limit=7_200,
    task_routes={
        "site_archiver.archives.tasks.run_archive_task": {
            "queue": "archiving",
            "soft_time_limit": 7_200,   # 2 hours
            "time_limit": 10_800,        # 3 hours
        },
    },
)


@setup_logging.connect
def _configure_worker_logging(**kwargs: object) -> None:  # noqa: ARG001
    """Route worker logging through the structlog configuration."""
    from site_archiver.core.logging_config import configure_logging  # noqa: PLC0415

    configure_logging(settings.log_level)


# ---------------------------------------------------------------------------
# Engine disposal on fork
# ---------------------------------------------------------------------------
@worker_process_init.connect
def _dispose_engine_on_fork(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the async engine after Celery forks a worker process.

    Pooled connections belong to the parent's event loop and cannot be reused
    by the child.
    """
    from site_archiver.core import database as _db  # noqa: PLC0415

    _db.async_engine.sync_engine.dispose(close=False)


# ---------------------------------------------------------------------------
# Engine disposal after each task
# ---------------------------------------------------------------------------
@task_postrun.connect
def _dispose_async_engine_after_task(**kwargs: object) -> None:  # noqa: ARG001
    """Dispose the async engine's connection pool after each task completes.

    Every task runs under its own ``asyncio.run()`` loop, and pooled asyncpg
    connections stay bound to the loop that created them.
    """
    try:
        from site_archiver.core import database as _db  # noqa: PLC0415

        _db.async_engine.sync_engine.dispose(close=False)
    except Exception as exc:  # noqa: BLE001
        _logger.warning("worker: engine disposal failed: %s", exc)
