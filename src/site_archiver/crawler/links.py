"""URL resolution and same-host link discovery.

Link discovery deliberately works on the *raw* (unexecuted) markup returned
by a plain HTTP fetch.  Anchors that only exist after client-side script runs
are therefore never discovered.
"""

from __future__ import annotations

import logging
from urllib.parse import urldefrag, urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from site_archiver.crawler.config import FETCHABLE_SCHEMES
from site_archiver.crawler.http_fetcher import fetch_url

logger = logging.getLogger(__name__)


def resolve_url(reference: str, base_url: str) -> str | None:
    """Resolve ``reference`` against ``base_url``.

    Returns ``None`` for empty references, unparsable values and schemes the
    crawler does not fetch (``mailto:``, ``javascript:``, ``data:`` ...).
    """
    reference = (reference or "").strip()
    if not reference:
        return None
    try:
        absolute = urljoin(base_url, reference)
        parts = urlsplit(absolute)
    except ValueError:
        return None
    if parts.scheme.lower() not in FETCHABLE_SCHEMES or not parts.netloc:
        return None
    return absolute


def host_of(url: str) -> str:
    """Return the lower-cased host name of ``url`` (port excluded)."""
    return (urlsplit(url).hostname or "").lower()


def extract_links(html: str, page_url: str, root_host: str) -> list[str]:
    """Return unique same-host anchor targets of ``html`` in document order.

    Targets are resolved against ``page_url`` and stripped of their fragment.
    """
    soup = BeautifulSoup(html, "html.parser")
    seen: set[str] = set()
    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        resolved = resolve_url(anchor["href"], page_url)
        if resolved is None:
            continue
        resolved = urldefrag(resolved).url
        if host_of(resolved) != root_host or resolved in seen:
            continue
        seen.add(resolved)
        links.append(resolved)
    return links


async def discover_links(
    url: str,
    *,
    root_host: str,
    client: httpx.AsyncClient,
    timeout: float,
) -> list[str]:
    """Fetch ``url`` without rendering and return its same-host links.

    Any fetch failure yields an empty list.
    """
    result = await fetch_url(url, client=client, timeout=timeout)
    if not result.ok:
        logger.warning("crawler: link discovery failed for %s: %s", url, result.error)
        return []
    return extract_links(result.text or "", result.final_url or url, root_host)
