"""SQLAlchemy ORM models for Site Archiver.

All models are imported here so that:
1. Alembic autogenerate can discover them via Base.metadata.
2. Application code can do ``from site_archiver.core.models import Archive``
   without knowing which sub-module a model lives in.
3. SQLAlchemy's relationship resolution finds all mapper targets at
   import time.
"""

from __future__ import annotations

from site_archiver.core.models.base import Base, TimestampMixin, ensure_utc, utcnow
from site_archiver.core.models.archive import (
    Archive,
    ArchiveStatus,
    Asset,
    AssetKind,
    Page,
)
from site_archiver.core.models.schedule import ScheduledArchive

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "utcnow",
    "ensure_utc",
    # Archives
    "Archive",
    "ArchiveStatus",
    "Page",
    "Asset",
    "AssetKind",
    # Scheduling
    "ScheduledArchive",
]
