"""SQLAlchemy ORM model for recurring archive definitions.

A ``ScheduledArchive`` is the persisted half of a recurring job; the live half
is the timer registered in :class:`site_archiver.scheduler.service.SchedulerService`.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from site_archiver.core.models.base import Base, TimestampMixin


class ScheduledArchive(TimestampMixin, Base):
    """A URL re-archived on a cron cadence while ``is_active`` is set.

    At most one active row may exist per URL; the partial unique index
    ``uq_scheduled_archives_active_url`` enforces it at the database level.

    Attributes:
        url: Root URL passed to the archive service on every firing.
        domain: Host name of ``url``.
        cron_schedule: Five-field cron expression (UTC).
        is_active: Whether a live job should exist for this row.
        last_run: When the last successful firing created an archive.
        next_run: Next occurrence of ``cron_schedule``.
    """

    __tablename__ = "scheduled_archives"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    domain: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    cron_schedule: Mapped[str] = mapped_column(
        sa.String(100),
        nullable=False,
        server_default=sa.text("'0 0 * * 0'"),
    )
    is_active: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=True,
        server_default=sa.true(),
    )
    last_run: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )
    next_run: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        sa.Index(
            "uq_scheduled_archives_active_url",
            "url",
            unique=True,
            postgresql_where=sa.text("is_active"),
            sqlite_where=sa.text("is_active"),
        ),
        sa.Index("idx_scheduled_archives_next_run", "next_run"),
    )
