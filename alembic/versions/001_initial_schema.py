"""Initial schema: archives, pages, assets and scheduled archives.

Creates the Site Archiver schema in FK-dependency order:

1. archives            one crawl attempt of a root URL
2. pages               stored documents of an archive (FK → archives, CASCADE)
3. assets              downloaded resources of a page (FK → pages, CASCADE)
4. scheduled_archives  recurring archive definitions, with a partial unique
                       index allowing one active row per URL

Revision ID: 001
Revises:
Create Date: 2026-10-17
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # ------------------------------------------------------------------
    # archives
    # ------------------------------------------------------------------
    op.create_table(
        "archives",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("root_url", sa.Text(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("total_pages", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_assets", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_archives_domain", "archives", ["domain"])
    op.create_index("idx_archives_created_at", "archives", ["created_at"])

    # ------------------------------------------------------------------
    # pages
    # ------------------------------------------------------------------
    op.create_table(
        "pages",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "archive_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("archives.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("file_path", sa.Text(), nullable=False),
        sa.Column("links_count", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_pages_archive_id", "pages", ["archive_id"])

    # ------------------------------------------------------------------
    # assets
    # ------------------------------------------------------------------
    op.create_table(
        "assets",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column(
            "page_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("pages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("original_url", sa.Text(), nullable=False),
        sa.Column("local_path", sa.Text(), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("compressed_size", sa.Integer(), nullable=True),
        sa.Column("is_compressed", sa.Boolean(), nullable=False),
        sa.Column("mime_type", sa.String(255), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_assets_page_id", "assets", ["page_id"])

    # ------------------------------------------------------------------
    # scheduled_archives
    # ------------------------------------------------------------------
    op.create_table(
        "scheduled_archives",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column(
            "cron_schedule",
            sa.String(100),
            nullable=False,
            server_default=sa.text("'0 0 * * 0'"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_run", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_run", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "uq_scheduled_archives_active_url",
        "scheduled_archives",
        ["url"],
        unique=True,
        postgresql_where=sa.text("is_active"),
        sqlite_where=sa.text("is_active"),
    )
    op.create_index("idx_scheduled_archives_next_run", "scheduled_archives", ["next_run"])


def downgrade() -> None:
    op.drop_index("idx_scheduled_archives_next_run", table_name="scheduled_archives")
    op.drop_index("uq_scheduled_archives_active_url", table_name="scheduled_archives")
    op.drop_table("scheduled_archives")
    op.drop_index("idx_assets_page_id", table_name="assets")
    op.drop_table("assets")
    op.drop_index("idx_pages_archive_id", table_name="pages")
    op.drop_table("pages")
    op.drop_index("idx_archives_created_at", table_name="archives")
    op.drop_index("idx_archives_domain", table_name="archives")
    op.drop_table("archives")
