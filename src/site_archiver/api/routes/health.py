"""System route handlers for the Site Archiver API.

``GET /health``
    Liveness check: verifies the process can reach the database
    (``SELECT 1``), asks Celery whether any worker is listening and reports
    the number of live scheduler jobs.  Always returns HTTP 200; the
    ``status`` field distinguishes ``"ok"`` from ``"degraded"``.
    Diagnostic only; must never raise HTTP 5xx errors.

``GET /metrics``
    Prometheus metrics, unless ``metrics_enabled`` is off.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

import sqlalchemy as sa
from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse

from site_archiver.api.dependencies import SettingsDep
from site_archiver.api.metrics import get_metrics_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


async def _check_database(request: Request) -> str:
    """Run ``SELECT 1`` through the application's session factory.

    Returns:
        ``"ok"`` if the query succeeds, ``"error"`` otherwise.
    """
    try:
        async with request.app.state.session_factory() as session:
            await session.execute(sa.text("SELECT 1"))
        return "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        return "error"


async def _check_celery_workers() -> str:
    """Check if any Celery workers are responding.

    No worker responding is reported as ``"no_workers"`` rather than
    ``"error"``: archives can still be created, their crawl simply waits in
    the queue.

    Returns:
        ``"ok"``, ``"no_workers"``, or ``"error"`` if the broker is unreachable.
    """
    try:
        from site_archiver.workers.celery_app import celery_app  # noqa: PLC0415

        loop = asyncio.get_running_loop()
        inspect = celery_app.control.inspect(timeout=2.0)
        ping_result = await loop.run_in_executor(None, inspect.ping)
        if ping_result:
            return "ok"
        return "no_workers"
    except Exception:
        logger.exception("Health check: Celery inspect failed")
        return "error"


def _active_jobs(request: Request) -> int:
    scheduler = getattr(request.app.state, "scheduler_service", None)
    if scheduler is None:
        return 0
    return scheduler.active_jobs_count()


@router.get("/health", include_in_schema=True)
async def health(request: Request) -> JSONResponse:
    """Return process-level health.

    Returns:
        JSON with keys: ``status``, ``database``, ``celery``,
        ``active_jobs``, ``timestamp``.
    """
    db_status, celery_status = await asyncio.gather(
        _check_database(request),
        _check_celery_workers(),
    )
    overall = "ok" if db_status == "ok" and celery_status == "ok" else "degraded"

    payload = {
        "status": overall,
        "database": db_status,
        "celery": celery_status,
        "active_jobs": _active_jobs(request),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    logger.info("system_health_check", extra={"health": payload})
    return JSONResponse(payload)


@router.get("/metrics", include_in_schema=False)
async def metrics(settings: SettingsDep) -> Response:
    """Expose Prometheus metrics in the text exposition format.

    Raises:
        HTTPException 404: If ``metrics_enabled`` is switched off.
    """
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    body, content_type = get_metrics_response()
    return Response(content=body, media_type=content_type)
