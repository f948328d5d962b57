"""FastAPI router for archives and archived content.

Routes:
    GET    /api/archives/                          list archives, newest first
    GET    /api/archives/grouped                   archives grouped by domain
    POST   /api/archives/                          create archive + dispatch crawl
    GET    /api/archives/{archive_id}              archive with its pages
    GET    /api/archives/{archive_id}/pages        pages in crawl order
    GET    /api/archives/{archive_id}/serve/{path} stored file, links rewritten

Served files may be embedded in an iframe by the configured
``frame_ancestors``.
"""

from __future__ import annotations

import mimetypes
import uuid

import structlog
from fastapi import APIRouter, Response, status

from site_archiver.api.dependencies import ArchiveServiceDep, SettingsDep
from site_archiver.core.models import Archive
from site_archiver.core.schemas.archive import (
    ArchiveCreate,
    ArchiveDetail,
    ArchiveRead,
    DomainGroup,
    PageRead,
)

logger = structlog.get_logger(__name__)

router = APIRouter()

#: Content types for extensions ``mimetypes`` does not know on every platform.
_EXTRA_CONTENT_TYPES: dict[str, str] = {
    ".js": "application/javascript",
    ".mjs": "application/javascript",
    ".css": "text/css",
    ".svg": "image/svg+xml",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".webp": "image/webp",
}

_HTML_TYPES: frozenset[str] = frozenset({"text/html", "application/xhtml+xml"})


def guess_content_type(path: str) -> str:
    """Return the response content type for a stored file path."""
    suffix = "." + path.rsplit(".", 1)[-1].lower() if "." in path else ""
    if suffix in _EXTRA_CONTENT_TYPES:
        return _EXTRA_CONTENT_TYPES[suffix]
    guessed, _ = mimetypes.guess_type(path)
    return guessed or "application/octet-stream"


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------


@router.get("/", response_model=list[ArchiveRead])
async def list_archives(service: ArchiveServiceDep) -> list[ArchiveRead]:
    """Return every archive, newest first, with its page count."""
    return await service.list_archives()


@router.get("/grouped", response_model=list[DomainGroup])
async def list_archives_grouped(service: ArchiveServiceDep) -> list[DomainGroup]:
    """Return archives grouped by domain, newest version first within each group."""
    return await service.list_archives_by_domain()


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post("/", response_model=ArchiveRead, status_code=status.HTTP_201_CREATED)
async def create_archive(payload: ArchiveCreate, service: ArchiveServiceDep) -> Archive:
    """Create an archive of ``payload.url`` and start crawling it in the background.

    The response carries the ``IN_PROGRESS`` record; poll
    ``GET /api/archives/{id}`` for the final status.

    Raises:
        HTTPException 400: If the URL is not an absolute http(s) URL.
    """
    archive = await service.create_archive(payload.url)
    logger.info("archive_requested", archive_id=str(archive.id), url=payload.url)
    return archive


# ---------------------------------------------------------------------------
# Detail
# ---------------------------------------------------------------------------


@router.get("/{archive_id}", response_model=ArchiveDetail)
async def get_archive(archive_id: uuid.UUID, service: ArchiveServiceDep) -> ArchiveDetail:
    """Return one archive with its pages.

    Raises:
        HTTPException 404: If the archive does not exist.
    """
    return await service.get_archive(archive_id)


@router.get("/{archive_id}/pages", response_model=list[PageRead])
async def list_archive_pages(
    archive_id: uuid.UUID,
    service: ArchiveServiceDep,
) -> list[PageRead]:
    """Return the pages of one archive in crawl order.

    Raises:
        HTTPException 404: If the archive does not exist.
    """
    return await service.list_pages(archive_id)


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------


@router.get("/{archive_id}/serve/{file_path:path}")
async def serve_archived_file(
    archive_id: uuid.UUID,
    file_path: str,
    service: ArchiveServiceDep,
    settings: SettingsDep,
) -> Response:
    """Stream a stored file of an archive.

    HTML documents have their page links and asset references rewritten to
    point back at this endpoint before they are returned.

    Raises:
        HTTPException 404: If the archive or the file does not exist.
    """
    content = await service.serve_archived_file(archive_id, file_path)
    content_type = guess_content_type(file_path)

    if content_type in _HTML_TYPES:
        html = content.decode("utf-8", errors="replace")
        content = (await service.rewrite_links_for_serving(html, archive_id, file_path)).encode(
            "utf-8"
        )
        content_type = f"{content_type}; charset=utf-8"

    headers = {
        "X-Frame-Options": "SAMEORIGIN",
        "Content-Security-Policy": "frame-ancestors " + " ".join(settings.frame_ancestors),
        "Access-Control-Allow-Origin": "*",
    }
    return Response(content=content, media_type=content_type, headers=headers)
