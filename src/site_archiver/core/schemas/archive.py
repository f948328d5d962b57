"""Pydantic request/response schemas for archives.

Used by the archive API routes for validation, serialisation, and OpenAPI
documentation generation.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from site_archiver.core.models.archive import ArchiveStatus


class ArchiveCreate(BaseModel):
    """Payload for requesting a new archive of ``url``."""

    url: str = Field(min_length=1, max_length=2048)


class ArchiveRead(BaseModel):
    """Representation of a persisted archive.

    ``page_count`` is filled by listing endpoints that count pages in SQL.
    """

    id: uuid.UUID
    domain: str
    root_url: str
    timestamp: datetime
    status: ArchiveStatus
    total_pages: int
    total_assets: int
    file_path: str
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    page_count: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class PageRead(BaseModel):
    """Representation of one stored page."""

    id: uuid.UUID
    archive_id: uuid.UUID
    url: str
    title: Optional[str]
    file_path: str
    links_count: int
    position: int
    created_at: datetime
    asset_count: int = 0

    model_config = ConfigDict(from_attributes=True)


class ArchiveDetail(ArchiveRead):
    """Archive with its pages, returned by ``GET /api/archives/{id}``."""

    pages: List[PageRead] = Field(default_factory=list)


class DomainGroup(BaseModel):
    """All archive versions of one domain, newest first."""

    domain: str
    root_url: str
    total_versions: int
    latest_archive: ArchiveRead
    versions: List[ArchiveRead]
