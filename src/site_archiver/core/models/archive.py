"""SQLAlchemy ORM models for archives, their pages and their assets.

Covers:
- Archive: one crawl attempt for a root URL at a point in time.
- Page: one rendered and locally stored HTML document within an archive.
- Asset: one downloaded resource (image, stylesheet, script, ...) of a page.

Pages cascade-delete with their archive and assets with their page.  Pages
and assets are written once by the crawl pipeline and never updated.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from site_archiver.core.models.base import Base, TimestampMixin, utcnow


class ArchiveStatus(str, enum.Enum):
    """Lifecycle state of an :class:`Archive`.

    Archives are created ``IN_PROGRESS`` and move exactly once to
    ``COMPLETED`` or ``FAILED``.  ``PENDING`` exists for records created by
    external tooling before a crawl is dispatched.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (ArchiveStatus.COMPLETED, ArchiveStatus.FAILED)


class AssetKind(str, enum.Enum):
    """Classification of a downloaded asset, derived from the tag that referenced it."""

    IMAGE = "IMAGE"
    STYLESHEET = "STYLESHEET"
    SCRIPT = "SCRIPT"
    FONT = "FONT"
    OTHER = "OTHER"


class Archive(TimestampMixin, Base):
    """A snapshot of a site crawled from ``root_url``.

    status progression:
        IN_PROGRESS → COMPLETED
        IN_PROGRESS → FAILED

    ``total_pages`` and ``total_assets`` are written once, when the crawl
    results are persisted.  ``file_path`` is the storage root of the snapshot
    (``<base>/<domain>/<timestamp>``).
    """

    __tablename__ = "archives"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    domain: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    root_url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    status: Mapped[ArchiveStatus] = mapped_column(
        sa.Enum(ArchiveStatus, native_enum=False, length=20, name="archive_status"),
        nullable=False,
        default=ArchiveStatus.PENDING,
    )
    total_pages: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        default=0,
        server_default=sa.text("0"),
    )
    total_assets: Mapped[int] = mapped_column(
        sa.Integer,
        nullable=False,
        default=0,
        server_default=sa.text("0"),
    )
    file_path: Mapped[str] = mapped_column(sa.Text, nullable=False)
    error_message: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)

    pages: Mapped[list["Page"]] = relationship(
        back_populates="archive",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Page.position",
    )

    __table_args__ = (
        sa.Index("idx_archives_domain", "domain"),
        sa.Index("idx_archives_created_at", "created_at"),
    )


class Page(Base):
    """One stored HTML document of an archive.

    Attributes:
        url: The URL the page was rendered from.
        title: Document title after script execution, if any.
        file_path: Path of the stored markup, relative to the archive root.
        links_count: Number of ``<a>`` elements in the rendered markup.
        position: Order in which the crawler produced the page.
    """

    __tablename__ = "pages"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    archive_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        sa.ForeignKey("archives.id", ondelete="CASCADE"),
        nullable=False,
    )
    url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    file_path: Mapped[str] = mapped_column(sa.Text, nullable=False)
    links_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    position: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )

    archive: Mapped[Archive] = relationship(back_populates="pages")
    assets: Mapped[list["Asset"]] = relationship(
        back_populates="page",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (sa.Index("idx_pages_archive_id", "archive_id"),)


class Asset(Base):
    """One downloaded resource referenced by a page.

    ``size`` is the original byte length; ``compressed_size`` is only set when
    the storage layer compressed the payload.
    """

    __tablename__ = "assets"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    page_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        sa.ForeignKey("pages.id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[AssetKind] = mapped_column(
        sa.Enum(AssetKind, native_enum=False, length=20, name="asset_kind"),
        nullable=False,
    )
    original_url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    local_path: Mapped[str] = mapped_column(sa.Text, nullable=False)
    size: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    compressed_size: Mapped[Optional[int]] = mapped_column(sa.Integer, nullable=True)
    is_compressed: Mapped[bool] = mapped_column(
        sa.Boolean,
        nullable=False,
        default=False,
    )
    mime_type: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )

    page: Mapped[Page] = relationship(back_populates="assets")

    __table_args__ = (sa.Index("idx_assets_page_id", "page_id"),)
