"""SQLAlchemy declarative base and shared mixins for all ORM models.

Provides:
- Base: the DeclarativeBase subclass all models inherit from
- TimestampMixin: created_at / updated_at columns
- utcnow: timezone-aware "now" used for Python-side column defaults
- ensure_utc: normalises datetimes loaded from backends without tz support

Column types are the portable SQLAlchemy 2.0 variants (``sa.Uuid``,
timezone-aware ``sa.DateTime``) so the same models run on PostgreSQL and on
the SQLite database used by the test suite.  Timestamps are filled on the
Python side as well as by the server default so that freshly flushed rows can
be serialised without a refresh round-trip.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite; convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """Shared declarative base for all Site Archiver models."""

    type_annotation_map = {
        uuid.UUID: sa.Uuid(as_uuid=True),
        datetime: sa.DateTime(timezone=True),
    }


class TimestampMixin:
    """Adds created_at and updated_at columns.

    The ``onupdate`` kwarg refreshes updated_at on every ORM-level UPDATE.
    """

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
        onupdate=utcnow,
    )
