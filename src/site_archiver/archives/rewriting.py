"""Serve-time rewriting of links inside stored archive pages.

Stored pages keep the anchors of the live site, relative ones included, and
reference their assets through archive-relative ``assets/...`` paths.  Before a page is returned to a
browser both kinds of reference are pointed at the archive-serving endpoint::

    <public_base_url>/api/archives/<archive_id>/serve/<relative path>

The page lookup is rebuilt from the current page rows on every call.  Links
that already point at the serving endpoint are left untouched, so rewriting
is idempotent.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from urllib.parse import quote, urldefrag, urljoin, urlsplit

from bs4 import BeautifulSoup

from site_archiver.crawler.config import ASSETS_DIR

#: Tags and attributes that may reference a localized asset.
_ASSET_ATTRIBUTES: tuple[tuple[str, str], ...] = (
    ("img", "src"),
    ("script", "src"),
    ("link", "href"),
    ("source", "src"),
)


def serve_url(public_base_url: str, archive_id: uuid.UUID | str, relative_path: str) -> str:
    """Return the absolute serving URL of ``relative_path`` inside an archive.

    The path is percent-encoded, so stored names containing ``#`` or ``%``
    survive the round trip through the browser.
    """
    return (
        f"{public_base_url.rstrip('/')}/api/archives/{archive_id}/serve/"
        f"{quote(relative_path.lstrip('/'))}"
    )


# ---------------------------------------------------------------------------
# Page lookup
# ---------------------------------------------------------------------------


def _normalize_url(url: str) -> str:
    return urldefrag(url.strip()).url.rstrip("/")


def _normalize_path(path: str) -> str:
    return urldefrag(path.strip()).url.strip("/")


def build_page_lookup(pages: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Map every stored page's URL and path variants to its stored file path.

    Keys are normalised by dropping the fragment and the trailing slash, so
    ``https://example.com/about`` and ``https://example.com/about/`` share an
    entry.  Path keys additionally drop the leading slash, so ``/about`` and
    ``about`` share one too.  When two pages normalise to the same key the
    first one wins.

    Args:
        pages: ``(url, file_path)`` pairs in crawl order.
    """
    lookup: dict[str, str] = {}
    for url, file_path in pages:
        lookup.setdefault(_normalize_url(url), file_path)
        lookup.setdefault("path:" + _normalize_path(urlsplit(url).path), file_path)
    return lookup


def lookup_page(lookup: dict[str, str], reference: str) -> str | None:
    """Return the stored file path an anchor target refers to, if any.

    Absolute references match on the full URL; host-less references match on
    their path.
    """
    parts = urlsplit(reference.strip())
    if parts.scheme or parts.netloc:
        return lookup.get(_normalize_url(reference))
    if not parts.path:
        return None
    return lookup.get("path:" + _normalize_path(parts.path))


# ---------------------------------------------------------------------------
# Markup rewriting
# ---------------------------------------------------------------------------


def _is_asset_reference(value: str) -> bool:
    return value.startswith(f"{ASSETS_DIR}/") or value.startswith(f"/{ASSETS_DIR}/")


def rewrite_archived_html(
    html: str,
    *,
    archive_id: uuid.UUID | str,
    pages: Iterable[tuple[str, str]],
    public_base_url: str,
    page_url: str | None = None,
) -> str:
    """Return ``html`` with page anchors and asset references routed to the archive.

    Anchors are resolved against ``page_url`` before the lookup, so
    ``href="about"`` on ``/docs/`` finds ``/docs/about`` and ``href="../"``
    finds the parent page.  Fragments of matched anchors are kept.

    Args:
        html: Stored page markup.
        archive_id: Archive the markup belongs to.
        pages: ``(url, file_path)`` pairs of every stored page of the archive.
        public_base_url: Externally visible base URL of the API.
        page_url: Original URL of the page the markup was captured from.
            When ``None`` relative anchors are matched on their bare path.
    """
    lookup = build_page_lookup(pages)
    prefix = serve_url(public_base_url, archive_id, "")
    soup = BeautifulSoup(html, "html.parser")

    for anchor in soup.find_all("a", href=True):
        href = str(anchor["href"]).strip()
        if not href or href.startswith(("#", prefix)):
            continue
        target = urljoin(page_url, href) if page_url else href
        file_path = lookup_page(lookup, target)
        if file_path is not None:
            fragment = urldefrag(target).fragment
            anchor["href"] = serve_url(public_base_url, archive_id, file_path) + (
                f"#{fragment}" if fragment else ""
            )

    for tag_name, attribute in _ASSET_ATTRIBUTES:
        for tag in soup.find_all(tag_name, attrs={attribute: True}):
            value = str(tag[attribute])
            if _is_asset_reference(value):
                tag[attribute] = serve_url(public_base_url, archive_id, value)

    return str(soup)
