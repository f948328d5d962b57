"""Logging setup shared by the API process and the Celery archiving worker.

``configure_logging()`` is called by ``api/main.py`` (at import, then again
with the configured level in the lifespan) and by the ``setup_logging``
signal handler in ``workers/celery_app.py``.  Both logging styles found in
the package end up in the same renderer:

* the crawler and storage layers use ``logging.getLogger(__name__)`` with
  ``"crawler: ..."`` / ``"storage: ..."`` messages;
* services and routes use ``structlog.get_logger(__name__)`` with
  snake_case events such as ``archive_completed`` or
  ``scheduled_archive_fired`` plus bound fields.

Output is one JSON object per line, or coloured console lines at DEBUG.

Redaction covers two cases.  Keys naming connection strings or credentials
(``database_url``, ``celery_broker_url``, ``celery_result_backend``,
cookies, tokens) lose their value entirely.  URLs with embedded
``user:password@`` credentials, which crawled sites and Redis/PostgreSQL
DSNs both carry, keep their host but lose the userinfo, wherever they
appear in a string value, the rendered message included.
"""

from __future__ import annotations

import logging
import re
import sys
from contextvars import ContextVar
from typing import Any

import structlog
from structlog.types import EventDict, WrappedLogger

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
"""Set by the request-logging middleware for the duration of one request."""

REDACTED = "[REDACTED]"

_SECRET_SUBSTRINGS: frozenset[str] = frozenset({
    "password",
    "passwd",
    "secret",
    "token",
    "api_key",
    "authorization",
    "cookie",
    "credential",
    "database_url",
    "broker_url",
    "result_backend",
    "dsn",
})
"""Lower-cased substrings of event-dict keys whose whole value is dropped."""

_URL_USERINFO_RE = re.compile(r"(?P<scheme>[a-zA-Z][a-zA-Z0-9+.\-]*://)[^/\s@]+@")

#: Libraries whose INFO output drowns the archive events outside DEBUG.
_NOISY_LOGGERS: tuple[str, ...] = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "asyncio",
    "celery.worker.strategy",
)


def _is_secret_key(key: Any) -> bool:
    key_lower = str(key).lower()
    return any(secret in key_lower for secret in _SECRET_SUBSTRINGS)


def _scrub_url_credentials(value: str) -> str:
    if "@" not in value:
        return value
    return _URL_USERINFO_RE.sub(rf"\g<scheme>{REDACTED}@", value)


def _redact(value: Any) -> Any:
    if isinstance(value, str):
        return _scrub_url_credentials(value)
    if isinstance(value, dict):
        return {
            k: REDACTED if _is_secret_key(k) else _redact(v)
            for k, v in value.items()
        }
    if isinstance(value, list):
        return [_redact(item) for item in value]
    if type(value) is tuple:
        return tuple(_redact(item) for item in value)
    return value


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Drop secret-bearing values and strip credentials out of URLs."""
    for key in list(event_dict.keys()):
        if _is_secret_key(key):
            event_dict[key] = REDACTED
        else:
            event_dict[key] = _redact(event_dict[key])
    return event_dict


def _inject_request_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    rid = request_id_var.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Install the structlog pipeline on the root logger.

    Every record carries ``timestamp``, ``level``, ``logger`` and ``event``;
    records emitted while serving a request also carry ``request_id``.
    Calling it again replaces the previous handler.

    Args:
        log_level: Level name, case-insensitive.  ``DEBUG`` switches to the
            console renderer and keeps third-party INFO output.
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_request_id,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _redact_secrets,
    ]

    if is_development:
        final_renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(colors=True)
    else:
        final_renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    if not is_development:
        for noisy_logger in _NOISY_LOGGERS:
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
