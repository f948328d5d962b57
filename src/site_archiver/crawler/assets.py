"""Asset discovery, download and localization for rendered pages.

For every ``<img src>``, ``<link rel="stylesheet" href>`` and ``<script src>``
of a rendered page the localizer downloads the referenced bytes, stores them
under ``assets/<kind>/<filename>`` inside the archive root, and rewrites the
reference in the markup to that local path.

A failed download is logged and the asset is dropped from the page; it never
fails the page itself.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlsplit

import httpx
from bs4 import BeautifulSoup, Tag

from site_archiver.archives.storage import ArchiveStorage
from site_archiver.core.models.archive import AssetKind
from site_archiver.core.schemas.crawl import AssetRecord
from site_archiver.crawler.config import ASSETS_DIR, DEFAULT_MIME_TYPES
from site_archiver.crawler.http_fetcher import fetch_url
from site_archiver.crawler.links import resolve_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AssetReference:
    """An asset referenced by a page, resolved to an absolute URL."""

    kind: AssetKind
    url: str


# ---------------------------------------------------------------------------
# Markup helpers
# ---------------------------------------------------------------------------


def _is_stylesheet(tag: Tag) -> bool:
    rel = tag.get("rel") or []
    if isinstance(rel, str):
        rel = rel.split()
    return "stylesheet" in (value.lower() for value in rel)


def _asset_tags(soup: BeautifulSoup) -> list[tuple[Tag, str, AssetKind]]:
    """Return ``(tag, attribute, kind)`` for every asset-bearing tag in document order."""
    found: list[tuple[Tag, str, AssetKind]] = []
    for tag in soup.find_all(["img", "link", "script"]):
        if tag.name == "img" and tag.get("src"):
            found.append((tag, "src", AssetKind.IMAGE))
        elif tag.name == "link" and tag.get("href") and _is_stylesheet(tag):
            found.append((tag, "href", AssetKind.STYLESHEET))
        elif tag.name == "script" and tag.get("src"):
            found.append((tag, "src", AssetKind.SCRIPT))
    return found


def collect_asset_references(soup: BeautifulSoup, page_url: str) -> list[AssetReference]:
    """Return the unique asset references of a page, resolved against ``page_url``.

    ``data:`` URIs and non-http(s) references are skipped.  When the same URL
    is referenced twice the first occurrence decides its kind.
    """
    references: list[AssetReference] = []
    seen: set[str] = set()
    for tag, attribute, kind in _asset_tags(soup):
        resolved = resolve_url(str(tag[attribute]), page_url)
        if resolved is None or resolved in seen:
            continue
        seen.add(resolved)
        references.append(AssetReference(kind=kind, url=resolved))
    return references


def rewrite_asset_references(
    soup: BeautifulSoup,
    page_url: str,
    assets: list[AssetRecord],
) -> None:
    """Point every reference to a localized asset at its local path, in place."""
    local_paths = {asset.original_url: asset.local_path for asset in assets}
    for tag, attribute, _kind in _asset_tags(soup):
        resolved = resolve_url(str(tag[attribute]), page_url)
        if resolved is not None and resolved in local_paths:
            tag[attribute] = local_paths[resolved]


def generate_asset_filename(url: str, storage: ArchiveStorage) -> str:
    """Return a deterministic, sanitized filename for the asset at ``url``.

    Uses the last path segment; URLs without one (``https://cdn.example/``)
    get ``asset_<sha1 prefix>``.
    """
    basename = posixpath.basename(unquote(urlsplit(url).path))
    if not basename:
        basename = "asset_" + hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]
    return storage.sanitize_filename(basename)


# ---------------------------------------------------------------------------
# Localizer
# ---------------------------------------------------------------------------


class AssetLocalizer:
    """Downloads and stores the assets of one page at a time.

    Args:
        storage: Storage manager used for every write.
        client: Shared :class:`httpx.AsyncClient`.
        timeout: Per-download timeout in seconds.
        max_concurrency: Upper bound on simultaneous downloads.
    """

    def __init__(
        self,
        *,
        storage: ArchiveStorage,
        client: httpx.AsyncClient,
        timeout: float,
        max_concurrency: int = 5,
    ) -> None:
        self.storage = storage
        self.client = client
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))

    async def localize(
        self,
        references: list[AssetReference],
        archive_root: str | Path,
    ) -> list[AssetRecord]:
        """Download and store ``references``; return the ones that succeeded.

        Order of the returned records follows the order of ``references``.
        """
        results = await asyncio.gather(
            *(self._localize_one(reference, Path(archive_root)) for reference in references)
        )
        return [record for record in results if record is not None]

    async def _localize_one(
        self,
        reference: AssetReference,
        archive_root: Path,
    ) -> AssetRecord | None:
        async with self._semaphore:
            result = await fetch_url(reference.url, client=self.client, timeout=self.timeout)
        if not result.ok or result.content is None:
            logger.warning(
                "crawler: dropping asset %s: %s", reference.url, result.error
            )
            return None

        filename = generate_asset_filename(reference.url, self.storage)
        local_path = posixpath.join(ASSETS_DIR, reference.kind.value.lower(), filename)
        stored = self.storage.write_file(archive_root / local_path, result.content)

        return AssetRecord(
            kind=reference.kind,
            original_url=reference.url,
            local_path=local_path,
            size=stored.size,
            compressed_size=stored.compressed_size,
            mime_type=result.content_type or DEFAULT_MIME_TYPES[reference.kind],
        )
