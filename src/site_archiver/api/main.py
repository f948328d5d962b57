"""FastAPI application factory and entry point.

Creates the application instance, registers middleware and exception
handlers, mounts the route routers, and builds the archive and scheduler
services in the application lifespan.

Usage::

    # Development server (from project root)
    uvicorn site_archiver.api.main:app --reload

    # Production
    gunicorn site_archiver.api.main:app -k uvicorn.workers.UvicornWorker

Run a single API process: the scheduler's jobs live inside it.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from site_archiver.api.metrics import http_request_duration_seconds, http_requests_total
from site_archiver.config.settings import get_settings
from site_archiver.core.exceptions import (
    DuplicateScheduleError,
    InvalidInputError,
    NotFoundError,
)
from site_archiver.core.logging_config import configure_logging, request_id_var

configure_logging("INFO")

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Build the services, start the scheduler, and stop it on shutdown."""
    from site_archiver.archives.service import build_archive_service  # noqa: PLC0415
    from site_archiver.core.database import AsyncSessionLocal  # noqa: PLC0415
    from site_archiver.scheduler.service import SchedulerService  # noqa: PLC0415

    settings = get_settings()
    archive_service = build_archive_service(settings, AsyncSessionLocal)
    scheduler_service = SchedulerService(
        session_factory=AsyncSessionLocal,
        archive_service=archive_service,
        default_cron_schedule=settings.default_cron_schedule,
    )
    application.state.session_factory = AsyncSessionLocal
    application.state.archive_service = archive_service
    application.state.scheduler_service = scheduler_service

    if settings.scheduler_enabled:
        await scheduler_service.initialize_scheduler()
    logger.info(
        "application_startup",
        app_name=settings.app_name,
        debug=settings.debug,
        log_level=settings.log_level,
        scheduler_enabled=settings.scheduler_enabled,
    )
    try:
        yield
    finally:
        await scheduler_service.shutdown()
        logger.info("application_shutdown")


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


async def _duplicate_schedule_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: ARG001
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


async def _invalid_input_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: ARG001
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


async def _not_found_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: ARG001
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


def _record_request(request: Request, status_code: int, elapsed: float) -> None:
    """Update the HTTP metrics, labelling by route template where one matched."""
    route = request.scope.get("route")
    path = getattr(route, "path", None) or request.url.path
    try:
        http_requests_total.labels(
            method=request.method, path=path, status=str(status_code)
        ).inc()
        http_request_duration_seconds.labels(method=request.method, path=path).observe(elapsed)
    except Exception as exc:  # noqa: BLE001
        logger.debug("http_metrics_failed", error=str(exc))


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application.

    Separated from the module-level ``app`` singleton so that tests can
    call ``create_app()`` with a patched settings environment.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    application = FastAPI(
        title=settings.app_name,
        description="Crawls websites into self-contained snapshots and serves them back.",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with its status and duration under a request id."""
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed = time.perf_counter() - start
            status_code = getattr(response, "status_code", 500)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=round(elapsed * 1000, 2),
            )
            _record_request(request, status_code, elapsed)

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Exception handlers -------------------------------------------------
    # Starlette resolves handlers along the exception's MRO, so the 409
    # handler wins over the generic 400 one for duplicate schedules.

    application.add_exception_handler(DuplicateScheduleError, _duplicate_schedule_handler)
    application.add_exception_handler(InvalidInputError, _invalid_input_handler)
    application.add_exception_handler(NotFoundError, _not_found_handler)

    # ---- Routers ------------------------------------------------------------

    from site_archiver.api.routes import (  # noqa: PLC0415
        archives,
        health as health_routes,
        scheduler,
    )

    application.include_router(health_routes.router)
    application.include_router(archives.router, prefix="/api/archives", tags=["archives"])
    application.include_router(scheduler.router, prefix="/api/scheduler", tags=["scheduler"])

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn / Gunicorn.
"""
