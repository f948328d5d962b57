"""Prometheus metrics for Site Archiver.

All metrics are module-level singletons registered on the default
``REGISTRY``.

Metrics defined here:

  archives_total{status}
      Counter: archives reaching a terminal state (completed, failed).

  archive_pages_total / archive_assets_total
      Counters: pages and assets persisted by completed crawls.

  scheduled_firings_total{outcome}
      Counter: scheduler job firings by outcome (success, error).

  http_requests_total{method, path, status}
      Counter: HTTP requests handled by the FastAPI application.

  http_request_duration_seconds{method, path}
      Histogram: HTTP request latency in seconds.

  celery_tasks_total{task_name, status}
      Counter: Celery task completions by task name and outcome.

  celery_task_duration_seconds{task_name}
      Histogram: Celery task wall-clock duration in seconds.

Usage::

    from site_archiver.api.metrics import archives_total
    archives_total.labels(status="completed").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram

# ---------------------------------------------------------------------------
# Archive metrics
# ---------------------------------------------------------------------------

archives_total: Counter = Counter(
    "archives_total",
    "Archives reaching a terminal state, by status.",
    labelnames=["status"],
)

archive_pages_total: Counter = Counter(
    "archive_pages_total",
    "Pages persisted by completed crawls.",
)

archive_assets_total: Counter = Counter(
    "archive_assets_total",
    "Assets persisted by completed crawls.",
)

scheduled_firings_total: Counter = Counter(
    "scheduled_firings_total",
    "Scheduler job firings by outcome.",
    labelnames=["outcome"],
)
"""Labels:
  outcome: 'success' when an archive was created, else 'error'
"""

# ---------------------------------------------------------------------------
# HTTP metrics (populated by middleware in main.py)
# ---------------------------------------------------------------------------

http_requests_total: Counter = Counter(
    "http_requests_total",
    "HTTP requests handled by the FastAPI application.",
    labelnames=["method", "path", "status"],
)
"""Labels:
  method: HTTP method (GET, POST, ...)
  path:   route template where one matched, else the raw path
  status: HTTP response status code as string
"""

http_request_duration_seconds: Histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds.",
    labelnames=["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

# ---------------------------------------------------------------------------
# Celery task metrics (populated in archives/tasks.py)
# ---------------------------------------------------------------------------

celery_tasks_total: Counter = Counter(
    "celery_tasks_total",
    "Celery task completions by task name and outcome.",
    labelnames=["task_name", "status"],
)

celery_task_duration_seconds: Histogram = Histogram(
    "celery_task_duration_seconds",
    "Celery task wall-clock duration in seconds.",
    labelnames=["task_name"],
    buckets=[1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0, 1800.0, 3600.0],
)


# ---------------------------------------------------------------------------
# Response helper
# ---------------------------------------------------------------------------


def get_metrics_response() -> tuple[bytes, str]:
    """Generate a Prometheus text-format metrics response.

    Returns:
        A tuple of (body_bytes, content_type_string).
    """
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # noqa: PLC0415

    return generate_latest(), CONTENT_TYPE_LATEST
