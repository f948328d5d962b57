"""Archive lifecycle: creation, background crawl, persistence and serving.

``ArchiveService`` owns every write to the ``archives``, ``pages`` and
``assets`` tables.  A request to archive a URL persists an ``IN_PROGRESS``
row and hands the crawl to a background worker through the injected
dispatcher; the only externally visible result of that work is the later
transition to ``COMPLETED`` or ``FAILED``.

Usage::

    from site_archiver.archives.service import build_archive_service
    from site_archiver.core.database import AsyncSessionLocal

    service = build_archive_service(get_settings(), AsyncSessionLocal)
    archive = await service.create_archive("https://example.com/")
"""

from __future__ import annotations

import inspect
import uuid
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import sqlalchemy as sa
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from site_archiver.archives.rewriting import rewrite_archived_html
from site_archiver.archives.storage import ArchiveStorage
from site_archiver.core.exceptions import (
    ArchivedFileNotFoundError,
    ArchiveNotFoundError,
    InvalidUrlError,
)
from site_archiver.core.models import Archive, ArchiveStatus, Asset, Page, utcnow
from site_archiver.core.schemas.archive import (
    ArchiveDetail,
    ArchiveRead,
    DomainGroup,
    PageRead,
)
from site_archiver.core.schemas.crawl import CrawlResult
from site_archiver.crawler.config import FETCHABLE_SCHEMES
from site_archiver.crawler.orchestrator import SiteCrawler

logger = structlog.get_logger(__name__)

#: Hands an archive id to a background worker.  May be sync or async.
ArchiveDispatcher = Callable[[uuid.UUID], "Awaitable[Any] | Any"]

_NON_TERMINAL = (ArchiveStatus.PENDING, ArchiveStatus.IN_PROGRESS)


def validate_url(url: str) -> str:
    """Return the host of ``url`` (lower-cased), or raise ``InvalidUrlError``.

    Only absolute ``http``/``https`` URLs with a host are accepted.
    """
    try:
        parts = urlsplit(url.strip())
    except ValueError as exc:
        raise InvalidUrlError(url) from exc
    if parts.scheme.lower() not in FETCHABLE_SCHEMES or not parts.hostname:
        raise InvalidUrlError(url)
    return parts.hostname.lower()


def _record_outcome(status: str, pages: int = 0, assets: int = 0) -> None:
    try:
        from site_archiver.api.metrics import (  # noqa: PLC0415
            archive_assets_total,
            archive_pages_total,
            archives_total,
        )

        archives_total.labels(status=status).inc()
        archive_pages_total.inc(pages)
        archive_assets_total.inc(assets)
    except Exception as exc:  # noqa: BLE001
        logger.debug("archive_metrics_failed", error=str(exc))


def dispatch_with_celery(archive_id: uuid.UUID) -> None:
    """Enqueue the crawl of ``archive_id`` on the ``archiving`` Celery queue."""
    from site_archiver.archives.tasks import run_archive_task  # noqa: PLC0415

    run_archive_task.apply_async(kwargs={"archive_id": str(archive_id)}, queue="archiving")


class ArchiveService:
    """Creates archives, runs their crawl, persists results and serves them.

    Args:
        session_factory: Factory for the ``AsyncSession`` used by every call.
        storage: Storage manager for archive roots and file reads.
        crawler_factory: Returns a fresh :class:`SiteCrawler` per crawl.
        dispatcher: Hands a new archive to the background worker.  Defaults
            to :func:`dispatch_with_celery`.
        public_base_url: Base URL used in rewritten serving links.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        storage: ArchiveStorage,
        crawler_factory: Callable[[], SiteCrawler],
        dispatcher: ArchiveDispatcher = dispatch_with_celery,
        public_base_url: str = "http://localhost:8000",
    ) -> None:
        self.session_factory = session_factory
        self.storage = storage
        self.crawler_factory = crawler_factory
        self.dispatcher = dispatcher
        self.public_base_url = public_base_url

    # ------------------------------------------------------------------
    # Creation and background crawl
    # ------------------------------------------------------------------

    async def create_archive(self, url: str) -> Archive:
        """Persist an ``IN_PROGRESS`` archive of ``url`` and dispatch its crawl.

        Returns as soon as the crawl has been handed off.

        Raises:
            InvalidUrlError: If ``url`` is not an absolute http(s) URL.
        """
        url = url.strip()
        domain = validate_url(url)
        timestamp = utcnow()
        archive_root = self.storage.generate_archive_path(domain, timestamp)

        async with self.session_factory() as session:
            archive = Archive(
                domain=domain,
                root_url=url,
                timestamp=timestamp,
                status=ArchiveStatus.IN_PROGRESS,
                file_path=str(archive_root),
            )
            session.add(archive)
            await session.commit()

        log = logger.bind(archive_id=str(archive.id), domain=domain)
        log.info("archive_created", root_url=url, file_path=str(archive_root))

        try:
            result = self.dispatcher(archive.id)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            log.error("archive_dispatch_failed", error=str(exc))
            await self._mark_failed(archive.id, f"dispatch failed: {exc}")
            raise

        return archive

    async def run_archive(self, archive_id: uuid.UUID) -> None:
        """Crawl the archive's root URL and persist the result.

        Every failure is converted into a ``FAILED`` status with
        ``error_message`` set; nothing is re-raised.  Archives that are
        already terminal are left alone.
        """
        log = logger.bind(archive_id=str(archive_id))
        try:
            async with self.session_factory() as session:
                archive = await session.get(Archive, archive_id)
                if archive is None:
                    log.warning("archive_run_missing")
                    return
                if archive.status.is_terminal:
                    log.warning("archive_run_skipped", status=archive.status.value)
                    return
                if archive.status == ArchiveStatus.PENDING:
                    archive.status = ArchiveStatus.IN_PROGRESS
                    await session.commit()
                root_url = archive.root_url
                archive_root = Path(archive.file_path)

            log.info("archive_crawl_started", root_url=root_url)
            self.storage.create_directory(archive_root)
            crawler = self.crawler_factory()
            result = await crawler.crawl_site(root_url, archive_root)
            if await self._persist_result(archive_id, result):
                _record_outcome("completed", len(result.pages), result.total_assets)
                log.info(
                    "archive_completed",
                    total_pages=len(result.pages),
                    total_assets=result.total_assets,
                )
        except Exception as exc:  # noqa: BLE001
            log.error("archive_failed", error=str(exc))
            await self._mark_failed(archive_id, str(exc) or type(exc).__name__)

    async def _persist_result(self, archive_id: uuid.UUID, result: CrawlResult) -> bool:
        """Insert the crawl records and complete the archive in one transaction.

        Returns ``False`` (and inserts nothing) when the archive is already
        terminal.
        """
        async with self.session_factory() as session:
            for position, record in enumerate(result.pages):
                page = Page(
                    archive_id=archive_id,
                    url=record.url,
                    title=record.title,
                    file_path=record.file_path,
                    links_count=record.links_count,
                    position=position,
                    assets=[
                        Asset(
                            kind=asset.kind,
                            original_url=asset.original_url,
                            local_path=asset.local_path,
                            size=asset.size,
                            compressed_size=asset.compressed_size,
                            is_compressed=asset.is_compressed,
                            mime_type=asset.mime_type,
                        )
                        for asset in record.assets
                    ],
                )
                session.add(page)
            await session.flush()

            updated = await session.execute(
                sa.update(Archive)
                .where(Archive.id == archive_id, Archive.status.in_(_NON_TERMINAL))
                .values(
                    status=ArchiveStatus.COMPLETED,
                    total_pages=len(result.pages),
                    total_assets=result.total_assets,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                await session.rollback()
                logger.warning("archive_result_discarded", archive_id=str(archive_id))
                return False
            await session.commit()
        return True

    async def _mark_failed(self, archive_id: uuid.UUID, message: str) -> None:
        try:
            async with self.session_factory() as session:
                updated = await session.execute(
                    sa.update(Archive)
                    .where(Archive.id == archive_id, Archive.status.in_(_NON_TERMINAL))
                    .values(
                        status=ArchiveStatus.FAILED,
                        error_message=message,
                        updated_at=utcnow(),
                    )
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            if updated.rowcount:
                _record_outcome("failed")
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "archive_mark_failed_error", archive_id=str(archive_id), error=str(exc)
            )

    # ------------------------------------------------------------------
    # Serving
    # ------------------------------------------------------------------

    async def serve_archived_file(self, archive_id: uuid.UUID, relative_path: str) -> bytes:
        """Return the stored bytes of ``relative_path`` inside an archive.

        Raises:
            ArchiveNotFoundError: If the archive does not exist.
            ArchivedFileNotFoundError: If the file does not exist or the
                path points outside the archive root.
        """
        archive = await self._get_archive_row(archive_id)
        root = Path(archive.file_path).resolve()
        target = (root / relative_path.lstrip("/")).resolve()
        if target != root and root not in target.parents:
            raise ArchivedFileNotFoundError(relative_path)
        return self.storage.read_file(target)

    async def rewrite_links_for_serving(
        self,
        html: str,
        archive_id: uuid.UUID,
        relative_path: str | None = None,
    ) -> str:
        """Route page anchors and asset references in ``html`` through the serving endpoint.

        The page lookup is rebuilt from the current ``pages`` rows on every
        call.  When ``relative_path`` names a stored page, relative anchors
        are resolved against that page's original URL.
        """
        async with self.session_factory() as session:
            rows = await session.execute(
                sa.select(Page.url, Page.file_path)
                .where(Page.archive_id == archive_id)
                .order_by(Page.position)
            )
            pages = [(url, file_path) for url, file_path in rows.all()]

        page_url = None
        if relative_path is not None:
            wanted = relative_path.lstrip("/")
            page_url = next((url for url, file_path in pages if file_path == wanted), None)

        return rewrite_archived_html(
            html,
            archive_id=archive_id,
            pages=pages,
            public_base_url=self.public_base_url,
            page_url=page_url,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _get_archive_row(self, archive_id: uuid.UUID) -> Archive:
        async with self.session_factory() as session:
            archive = await session.get(Archive, archive_id)
        if archive is None:
            raise ArchiveNotFoundError(archive_id)
        return archive

    async def get_archive(self, archive_id: uuid.UUID) -> ArchiveDetail:
        """Return an archive with its pages and their asset counts.

        Raises:
            ArchiveNotFoundError: If the archive does not exist.
        """
        archive = await self._get_archive_row(archive_id)
        pages = await self.list_pages(archive_id)
        summary = ArchiveRead.model_validate(archive)
        return ArchiveDetail(
            **summary.model_dump(exclude={"page_count"}),
            page_count=len(pages),
            pages=pages,
        )

    async def list_pages(self, archive_id: uuid.UUID) -> list[PageRead]:
        """Return the pages of an archive in crawl order.

        Raises:
            ArchiveNotFoundError: If the archive does not exist.
        """
        asset_count = (
            sa.select(sa.func.count(Asset.id))
            .where(Asset.page_id == Page.id)
            .correlate(Page)
            .scalar_subquery()
        )
        async with self.session_factory() as session:
            if await session.get(Archive, archive_id) is None:
                raise ArchiveNotFoundError(archive_id)
            rows = await session.execute(
                sa.select(Page, asset_count)
                .where(Page.archive_id == archive_id)
                .order_by(Page.position, Page.created_at)
            )
            return [
                PageRead.model_validate(page).model_copy(update={"asset_count": count})
                for page, count in rows.all()
            ]

    async def list_archives(self) -> list[ArchiveRead]:
        """Return every archive, newest first, with its stored page count."""
        page_count = (
            sa.select(sa.func.count(Page.id))
            .where(Page.archive_id == Archive.id)
            .correlate(Archive)
            .scalar_subquery()
        )
        async with self.session_factory() as session:
            rows = await session.execute(
                sa.select(Archive, page_count).order_by(
                    Archive.created_at.desc(), Archive.timestamp.desc()
                )
            )
            return [
                ArchiveRead.model_validate(archive).model_copy(update={"page_count": count})
                for archive, count in rows.all()
            ]

    async def list_archives_by_domain(self) -> list[DomainGroup]:
        """Group archives by domain; newest domain first, newest version first."""
        groups: dict[str, list[ArchiveRead]] = {}
        for archive in await self.list_archives():
            groups.setdefault(archive.domain, []).append(archive)
        return [
            DomainGroup(
                domain=domain,
                root_url=versions[0].root_url,
                total_versions=len(versions),
                latest_archive=versions[0],
                versions=versions,
            )
            for domain, versions in groups.items()
        ]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_archive_service(
    settings: Any,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    dispatcher: ArchiveDispatcher = dispatch_with_celery,
) -> ArchiveService:
    """Wire an :class:`ArchiveService` from application settings."""
    storage = ArchiveStorage(settings.archive_base_path, settings.filename_max_length)

    def crawler_factory() -> SiteCrawler:
        return SiteCrawler(
            storage=storage,
            max_pages=settings.max_pages_per_domain,
            timeout=settings.request_timeout_seconds,
            max_concurrent_requests=settings.max_concurrent_requests,
        )

    return ArchiveService(
        session_factory=session_factory,
        storage=storage,
        crawler_factory=crawler_factory,
        dispatcher=dispatcher,
        public_base_url=settings.public_base_url,
    )
