"""Tests for the archive lifecycle service.

Runs against in-memory SQLite.  The crawler is replaced by a stub returning a
prepared :class:`CrawlResult`, so no browser or network is involved.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Optional

import pytest
import sqlalchemy as sa
from prometheus_client import REGISTRY

from site_archiver.archives.service import ArchiveService, validate_url
from site_archiver.core.exceptions import (
    ArchivedFileNotFoundError,
    ArchiveNotFoundError,
    InvalidUrlError,
)
from site_archiver.core.models import Archive, ArchiveStatus, Asset, Page
from site_archiver.core.schemas.crawl import CrawlResult
from tests.factories import AssetRecordFactory, PageRecordFactory, build_crawl_result


class _StubCrawler:
    def __init__(self, result: Optional[CrawlResult] = None, error: Optional[Exception] = None) -> None:
        self.result = result
        self.error = error
        self.calls: list[tuple[str, Path]] = []

    async def crawl_site(self, root_url: str, archive_root: Path) -> CrawlResult:
        self.calls.append((root_url, archive_root))
        if self.error is not None:
            raise self.error
        assert self.result is not None
        return self.result


def _two_page_result() -> CrawlResult:
    return build_crawl_result(
        PageRecordFactory.build(
            url="https://example.com/",
            file_path="pages/index.html",
            assets=AssetRecordFactory.build_batch(2),
        ),
        PageRecordFactory.build(url="https://example.com/about", file_path="pages/_about.html"),
    )


def _use_crawler(service: ArchiveService, crawler: _StubCrawler) -> None:
    service.crawler_factory = lambda: crawler


async def _count(session_factory: Any, model: Any) -> int:
    async with session_factory() as session:
        return (await session.execute(sa.select(sa.func.count()).select_from(model))).scalar_one()


async def _reload(session_factory: Any, archive_id: uuid.UUID) -> Archive:
    async with session_factory() as session:
        archive = await session.get(Archive, archive_id)
    assert archive is not None
    return archive


# ---------------------------------------------------------------------------
# URL validation
# ---------------------------------------------------------------------------


class TestValidateUrl:
    def test_returns_lowercased_host(self) -> None:
        assert validate_url("https://Example.COM/path?q=1") == "example.com"

    @pytest.mark.parametrize("url", ["", "example.com", "ftp://example.com/", "https://", "mailto:a@b.c"])
    def test_rejects_non_http_urls(self, url: str) -> None:
        with pytest.raises(InvalidUrlError):
            validate_url(url)


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestCreateArchive:
    async def test_persists_in_progress_and_dispatches(
        self,
        archive_service: ArchiveService,
        session_factory: Any,
        dispatched: list[uuid.UUID],
    ) -> None:
        archive = await archive_service.create_archive("https://example.com/")

        assert archive.status == ArchiveStatus.IN_PROGRESS
        assert archive.domain == "example.com"
        assert archive.total_pages == 0
        assert dispatched == [archive.id]

        stored = await _reload(session_factory, archive.id)
        assert stored.status == ArchiveStatus.IN_PROGRESS
        assert Path(stored.file_path).parent.name == "example.com"

    async def test_invalid_url_creates_nothing(
        self,
        archive_service: ArchiveService,
        session_factory: Any,
        dispatched: list[uuid.UUID],
    ) -> None:
        with pytest.raises(InvalidUrlError):
            await archive_service.create_archive("not a url")

        assert dispatched == []
        assert await _count(session_factory, Archive) == 0

    async def test_dispatch_failure_marks_archive_failed(
        self,
        archive_service: ArchiveService,
        session_factory: Any,
    ) -> None:
        def _broken_dispatcher(archive_id: uuid.UUID) -> None:
            raise RuntimeError("broker down")

        archive_service.dispatcher = _broken_dispatcher
        with pytest.raises(RuntimeError):
            await archive_service.create_archive("https://example.com/")

        async with session_factory() as session:
            archive = (await session.execute(sa.select(Archive))).scalar_one()
        assert archive.status == ArchiveStatus.FAILED
        assert "broker down" in archive.error_message

    async def test_async_dispatcher_is_awaited(self, archive_service: ArchiveService) -> None:
        seen: list[uuid.UUID] = []

        async def _async_dispatcher(archive_id: uuid.UUID) -> None:
            seen.append(archive_id)

        archive_service.dispatcher = _async_dispatcher
        archive = await archive_service.create_archive("https://example.com/")
        assert seen == [archive.id]


# ---------------------------------------------------------------------------
# Background crawl
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestRunArchive:
    async def test_completed_totals_match_stored_rows(
        self,
        archive_service: ArchiveService,
        session_factory: Any,
    ) -> None:
        crawler = _StubCrawler(_two_page_result())
        _use_crawler(archive_service, crawler)
        archive = await archive_service.create_archive("https://example.com/")

        await archive_service.run_archive(archive.id)

        stored = await _reload(session_factory, archive.id)
        assert stored.status == ArchiveStatus.COMPLETED
        assert stored.error_message is None
        assert stored.total_pages == 2 == await _count(session_factory, Page)
        assert stored.total_assets == 2 == await _count(session_factory, Asset)
        assert crawler.calls == [("https://example.com/", Path(stored.file_path))]
        assert Path(stored.file_path).is_dir()

    async def test_completion_is_counted_once(self, archive_service: ArchiveService) -> None:
        def _completed() -> float:
            return REGISTRY.get_sample_value("archives_total", {"status": "completed"}) or 0.0

        _use_crawler(archive_service, _StubCrawler(_two_page_result()))
        archive = await archive_service.create_archive("https://example.com/")
        before = _completed()

        await archive_service.run_archive(archive.id)
        await archive_service.run_archive(archive.id)

        assert _completed() == before + 1

    async def test_crawl_error_marks_failed(
        self,
        archive_service: ArchiveService,
        session_factory: Any,
    ) -> None:
        _use_crawler(archive_service, _StubCrawler(error=RuntimeError("browser crashed")))
        archive = await archive_service.create_archive("https://example.com/")

        await archive_service.run_archive(archive.id)

        stored = await _reload(session_factory, archive.id)
        assert stored.status == ArchiveStatus.FAILED
        assert stored.error_message == "browser crashed"
        assert await _count(session_factory, Page) == 0

    async def test_terminal_archive_is_not_crawled_again(
        self,
        archive_service: ArchiveService,
        session_factory: Any,
    ) -> None:
        _use_crawler(archive_service, _StubCrawler(_two_page_result()))
        archive = await archive_service.create_archive("https://example.com/")
        await archive_service.run_archive(archive.id)

        second = _StubCrawler(error=RuntimeError("must not run"))
        _use_crawler(archive_service, second)
        await archive_service.run_archive(archive.id)

        stored = await _reload(session_factory, archive.id)
        assert second.calls == []
        assert stored.status == ArchiveStatus.COMPLETED
        assert await _count(session_factory, Page) == 2

    async def test_failed_archive_never_completes(
        self,
        archive_service: ArchiveService,
        session_factory: Any,
    ) -> None:
        archive = await archive_service.create_archive("https://example.com/")
        await archive_service._mark_failed(archive.id, "cancelled")

        await archive_service._persist_result(archive.id, _two_page_result())

        stored = await _reload(session_factory, archive.id)
        assert stored.status == ArchiveStatus.FAILED
        assert await _count(session_factory, Page) == 0

    async def test_pending_archive_is_picked_up(
        self,
        archive_service: ArchiveService,
        session_factory: Any,
        storage: Any,
    ) -> None:
        async with session_factory() as session:
            archive = Archive(
                domain="example.com",
                root_url="https://example.com/",
                file_path=str(storage.base_path / "example.com" / "pending"),
            )
            session.add(archive)
            await session.commit()
        _use_crawler(archive_service, _StubCrawler(_two_page_result()))

        await archive_service.run_archive(archive.id)

        assert (await _reload(session_factory, archive.id)).status == ArchiveStatus.COMPLETED

    async def test_unknown_archive_is_ignored(self, archive_service: ArchiveService) -> None:
        await archive_service.run_archive(uuid.uuid4())


# ---------------------------------------------------------------------------
# Serving
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestServing:
    async def test_reads_stored_file(self, archive_service: ArchiveService, storage: Any) -> None:
        archive = await archive_service.create_archive("https://example.com/")
        storage.write_file(Path(archive.file_path) / "pages" / "index.html", "<p>hello</p>")

        content = await archive_service.serve_archived_file(archive.id, "pages/index.html")

        assert content == b"<p>hello</p>"

    async def test_path_outside_archive_is_rejected(
        self, archive_service: ArchiveService, storage: Any
    ) -> None:
        archive = await archive_service.create_archive("https://example.com/")
        secret = Path(archive.file_path).parent / "secret.txt"
        secret.parent.mkdir(parents=True, exist_ok=True)
        secret.write_text("nope")

        with pytest.raises(ArchivedFileNotFoundError):
            await archive_service.serve_archived_file(archive.id, "../secret.txt")

    async def test_missing_file(self, archive_service: ArchiveService) -> None:
        archive = await archive_service.create_archive("https://example.com/")
        with pytest.raises(ArchivedFileNotFoundError):
            await archive_service.serve_archived_file(archive.id, "pages/missing.html")

    async def test_unknown_archive(self, archive_service: ArchiveService) -> None:
        with pytest.raises(ArchiveNotFoundError):
            await archive_service.serve_archived_file(uuid.uuid4(), "pages/index.html")

    async def test_rewrite_uses_stored_pages(self, archive_service: ArchiveService) -> None:
        _use_crawler(archive_service, _StubCrawler(_two_page_result()))
        archive = await archive_service.create_archive("https://example.com/")
        await archive_service.run_archive(archive.id)

        html = await archive_service.rewrite_links_for_serving(
            '<a href="/about/">About</a><img src="assets/image/a.png">', archive.id
        )

        prefix = f"http://archive.test/api/archives/{archive.id}/serve/"
        assert f'href="{prefix}pages/_about.html"' in html
        assert f'src="{prefix}assets/image/a.png"' in html

    async def test_relative_links_resolve_against_served_page(
        self, archive_service: ArchiveService
    ) -> None:
        result = build_crawl_result(
            PageRecordFactory.build(url="https://example.com/", file_path="pages/index.html"),
            PageRecordFactory.build(url="https://example.com/about", file_path="pages/_about.html"),
            PageRecordFactory.build(url="https://example.com/docs/", file_path="pages/_docs_.html"),
            PageRecordFactory.build(
                url="https://example.com/docs/about", file_path="pages/_docs_about.html"
            ),
        )
        _use_crawler(archive_service, _StubCrawler(result))
        archive = await archive_service.create_archive("https://example.com/")
        await archive_service.run_archive(archive.id)

        html = await archive_service.rewrite_links_for_serving(
            '<a href="about">x</a><a href="../">up</a>', archive.id, "pages/_docs_.html"
        )

        prefix = f"http://archive.test/api/archives/{archive.id}/serve/"
        assert f'href="{prefix}pages/_docs_about.html"' in html
        assert f'href="{prefix}pages/index.html"' in html


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestQueries:
    async def test_get_archive_includes_pages_in_crawl_order(
        self, archive_service: ArchiveService
    ) -> None:
        _use_crawler(archive_service, _StubCrawler(_two_page_result()))
        archive = await archive_service.create_archive("https://example.com/")
        await archive_service.run_archive(archive.id)

        detail = await archive_service.get_archive(archive.id)

        assert detail.status == ArchiveStatus.COMPLETED
        assert detail.page_count == 2
        assert [p.url for p in detail.pages] == ["https://example.com/", "https://example.com/about"]
        assert [p.asset_count for p in detail.pages] == [2, 0]
        assert [p.position for p in detail.pages] == [0, 1]

    async def test_get_unknown_archive(self, archive_service: ArchiveService) -> None:
        with pytest.raises(ArchiveNotFoundError):
            await archive_service.get_archive(uuid.uuid4())

    async def test_list_pages_of_unknown_archive(self, archive_service: ArchiveService) -> None:
        with pytest.raises(ArchiveNotFoundError):
            await archive_service.list_pages(uuid.uuid4())

    async def test_list_newest_first_with_page_counts(
        self, archive_service: ArchiveService
    ) -> None:
        _use_crawler(archive_service, _StubCrawler(_two_page_result()))
        first = await archive_service.create_archive("https://example.com/")
        await archive_service.run_archive(first.id)
        second = await archive_service.create_archive("https://other.org/")

        archives = await archive_service.list_archives()

        assert [a.id for a in archives] == [second.id, first.id]
        assert [a.page_count for a in archives] == [0, 2]

    async def test_grouped_by_domain(self, archive_service: ArchiveService) -> None:
        oldest = await archive_service.create_archive("https://example.com/")
        other = await archive_service.create_archive("https://other.org/")
        newest = await archive_service.create_archive("https://example.com/")

        groups = await archive_service.list_archives_by_domain()

        assert [g.domain for g in groups] == ["example.com", "other.org"]
        example = groups[0]
        assert example.total_versions == 2
        assert example.latest_archive.id == newest.id
        assert [v.id for v in example.versions] == [newest.id, oldest.id]
        assert groups[1].versions[0].id == other.id
