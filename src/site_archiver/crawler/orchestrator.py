"""Breadth-first site crawler producing a :class:`CrawlResult`.

Algorithm
---------
1. Seed a FIFO frontier with the root URL.
2. Pop a URL; skip it if already visited (exact string match).
3. Render it in the headless browser, localize its assets, rewrite the asset
   references and store the markup under ``pages/<filename>``.
4. Fetch the same URL again *without* rendering and queue every same-host
   anchor target that is neither visited nor already queued.
5. Stop when the frontier is empty or the page cap is reached.

A failure anywhere in steps 3–4 for one URL is logged and that URL is left
out of the result; its outbound links are never explored.  One browser
session is held for the whole call and is always closed.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlsplit

import httpx
from bs4 import BeautifulSoup

from site_archiver.archives.storage import ArchiveStorage
from site_archiver.core.schemas.crawl import CrawlResult, PageRecord
from site_archiver.crawler.assets import (
    AssetLocalizer,
    collect_asset_references,
    rewrite_asset_references,
)
from site_archiver.crawler.browser import BrowserSession
from site_archiver.crawler.config import INDEX_FILENAME, PAGE_EXTENSION, PAGES_DIR
from site_archiver.crawler.links import discover_links, host_of

logger = logging.getLogger(__name__)

#: Factory returning an async context manager that yields an object with
#: ``async render(url) -> RenderedPage``.
BrowserFactory = Callable[[float], Any]


def _default_browser_factory(timeout: float) -> BrowserSession:
    return BrowserSession(timeout=timeout)


def generate_page_filename(url: str, storage: ArchiveStorage) -> str:
    """Return the stored filename for the page at ``url``.

    ``/docs/intro`` becomes ``_docs_intro.html``; the site root becomes
    ``index.html``.
    """
    filename = unquote(urlsplit(url).path).replace("/", "_")
    if filename in ("", "_"):
        filename = INDEX_FILENAME
    if not filename.endswith(PAGE_EXTENSION):
        filename += PAGE_EXTENSION
    return storage.sanitize_filename(filename)


class SiteCrawler:
    """Crawls one site per :meth:`crawl_site` call.

    Args:
        storage: Storage manager used for every page and asset write.
        max_pages: Page cap per crawl.
        timeout: Per-operation timeout in seconds (render, raw fetch, asset).
        max_concurrent_requests: Bound on simultaneous asset downloads.
        browser_factory: Builds the browser session; replaced in tests.
        client_factory: Builds the ``httpx.AsyncClient``; replaced in tests.
    """

    def __init__(
        self,
        *,
        storage: ArchiveStorage,
        max_pages: int,
        timeout: float,
        max_concurrent_requests: int = 5,
        browser_factory: BrowserFactory = _default_browser_factory,
        client_factory: Callable[[], httpx.AsyncClient] = httpx.AsyncClient,
    ) -> None:
        self.storage = storage
        self.max_pages = max_pages
        self.timeout = timeout
        self.max_concurrent_requests = max_concurrent_requests
        self.browser_factory = browser_factory
        self.client_factory = client_factory

    async def crawl_site(self, root_url: str, archive_root: str | Path) -> CrawlResult:
        """Crawl ``root_url`` and store everything under ``archive_root``.

        Returns:
            A :class:`CrawlResult` with at most ``max_pages`` pages.
        """
        archive_root = Path(archive_root)
        root_host = host_of(root_url)
        frontier: deque[str] = deque([root_url])
        queued: set[str] = {root_url}
        visited: set[str] = set()
        pages: list[PageRecord] = []

        async with self.browser_factory(self.timeout) as browser, self.client_factory() as client:
            localizer = AssetLocalizer(
                storage=self.storage,
                client=client,
                timeout=self.timeout,
                max_concurrency=self.max_concurrent_requests,
            )

            while frontier and len(pages) < self.max_pages:
                url = frontier.popleft()
                queued.discard(url)
                if url in visited:
                    continue
                visited.add(url)
                logger.info("crawler: crawling %s", url)

                try:
                    page = await self._crawl_page(browser, localizer, url, archive_root)
                    links = await discover_links(
                        url, root_host=root_host, client=client, timeout=self.timeout
                    )
                except Exception as exc:  # noqa: BLE001
                    logger.warning("crawler: error crawling %s: %s", url, exc)
                    continue

                pages.append(page)
                for link in links:
                    if link not in visited and link not in queued:
                        frontier.append(link)
                        queued.add(link)

        logger.info(
            "crawler: finished %s: %d pages, %d urls left in frontier",
            root_url,
            len(pages),
            len(frontier),
        )
        return CrawlResult.from_pages(pages)

    async def _crawl_page(
        self,
        browser: Any,
        localizer: AssetLocalizer,
        url: str,
        archive_root: Path,
    ) -> PageRecord:
        rendered = await browser.render(url)
        soup = BeautifulSoup(rendered.html, "html.parser")

        references = collect_asset_references(soup, url)
        assets = await localizer.localize(references, archive_root)
        rewrite_asset_references(soup, url, assets)

        relative_path = f"{PAGES_DIR}/{generate_page_filename(url, self.storage)}"
        self.storage.write_file(archive_root / relative_path, str(soup))

        return PageRecord(
            url=url,
            title=rendered.title or None,
            file_path=relative_path,
            links_count=len(soup.find_all("a")),
            assets=assets,
        )
