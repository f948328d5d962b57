"""Application-wide exception hierarchy for Site Archiver.

All custom exceptions subclass ``SiteArchiverError``, enabling consistent
error handling and structured logging across the application.

Hierarchy::

    SiteArchiverError
    ├── InvalidInputError
    │   ├── InvalidUrlError
    │   ├── InvalidCadenceError
    │   └── DuplicateScheduleError
    └── NotFoundError
        ├── ArchiveNotFoundError
        ├── ScheduleNotFoundError
        └── ArchivedFileNotFoundError

Validation errors are raised before any state is mutated.  Transient fetch
failures never surface as exceptions outside the crawler; they are logged and
the affected page or asset is dropped.
"""

from __future__ import annotations


class SiteArchiverError(Exception):
    """Base class for all Site Archiver exceptions."""


# ---------------------------------------------------------------------------
# Validation failures
# ---------------------------------------------------------------------------


class InvalidInputError(SiteArchiverError):
    """Raised when caller-supplied input is rejected before any state change."""


class InvalidUrlError(InvalidInputError):
    """Raised when a URL is malformed or uses an unsupported scheme.

    Args:
        url: The rejected value.
    """

    def __init__(self, url: str) -> None:
        super().__init__(f"Invalid URL format: {url!r}")
        self.url = url


class InvalidCadenceError(InvalidInputError):
    """Raised when a cron expression cannot be parsed.

    Args:
        expression: The rejected cron expression.
        reason: Optional parser detail.
    """

    def __init__(self, expression: str, reason: str | None = None) -> None:
        msg = f"Invalid cron schedule format: {expression!r}"
        if reason:
            msg += f" ({reason})"
        super().__init__(msg)
        self.expression = expression


class DuplicateScheduleError(InvalidInputError):
    """Raised when a URL already has an active scheduled archive.

    Args:
        url: The URL that is already scheduled.
    """

    def __init__(self, url: str) -> None:
        super().__init__(
            f"{url} is already scheduled for automatic archiving"
        )
        self.url = url


# ---------------------------------------------------------------------------
# Not-found failures
# ---------------------------------------------------------------------------


class NotFoundError(SiteArchiverError):
    """Base class for lookups that found nothing."""


class ArchiveNotFoundError(NotFoundError):
    """Raised when no archive exists for the given id."""

    def __init__(self, archive_id: object) -> None:
        super().__init__(f"Archive '{archive_id}' not found.")
        self.archive_id = archive_id


class ScheduleNotFoundError(NotFoundError):
    """Raised when no scheduled archive exists for the given id."""

    def __init__(self, schedule_id: object) -> None:
        super().__init__(f"Scheduled archive '{schedule_id}' not found.")
        self.schedule_id = schedule_id


class ArchivedFileNotFoundError(NotFoundError):
    """Raised when neither the compressed nor the plain stored file exists.

    Args:
        path: The requested storage path.
    """

    def __init__(self, path: object) -> None:
        super().__init__(f"Archived file '{path}' not found.")
        self.path = path
