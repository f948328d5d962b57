"""Async HTTP fetcher for raw page markup and asset bytes.

Uses ``httpx`` for all plain HTTP requests.  Rendering (JavaScript-executing)
fetches go through :mod:`site_archiver.crawler.browser` instead; this module
serves link discovery and asset downloads.

Neither function raises on network problems: failures are reported through
``FetchResult.error`` so that the caller can drop the one page or asset.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from site_archiver.crawler.config import USER_AGENT

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result dataclass
# ---------------------------------------------------------------------------


@dataclass
class FetchResult:
    """Result of a single HTTP fetch attempt.

    Attributes:
        content: Raw response body, or ``None`` if the fetch failed.
        status_code: HTTP status code, or ``None`` on network error.
        final_url: URL after following redirects.
        content_type: Server-reported ``Content-Type`` without parameters,
            or ``None`` when absent.
        encoding: Charset used to decode :attr:`text`.
        error: Human-readable error description, or ``None`` on success.
    """

    content: bytes | None
    status_code: int | None
    final_url: str | None
    content_type: str | None = None
    encoding: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.content is not None

    @property
    def text(self) -> str | None:
        if self.content is None:
            return None
        return self.content.decode(self.encoding or "utf-8", errors="replace")


def _media_type(content_type: str | None) -> str | None:
    if not content_type:
        return None
    media_type = content_type.split(";")[0].strip().lower()
    return media_type or None


# ---------------------------------------------------------------------------
# Public fetch function
# ---------------------------------------------------------------------------


async def fetch_url(
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout: float,
) -> FetchResult:
    """Fetch a single URL without executing any script.

    Follows redirects, treats HTTP status >= 400 as a failure, and never
    raises for network-level problems.

    Args:
        url: Target URL to fetch.
        client: Shared :class:`httpx.AsyncClient` instance.
        timeout: Request timeout in seconds.

    Returns:
        A :class:`FetchResult` instance.
    """
    try:
        response = await client.get(
            url,
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )
    except httpx.TimeoutException:
        logger.warning("crawler: timeout fetching %s", url)
        return FetchResult(content=None, status_code=None, final_url=url, error="timeout")
    except httpx.TooManyRedirects:
        logger.warning("crawler: too many redirects for %s", url)
        return FetchResult(
            content=None, status_code=None, final_url=url, error="too many redirects"
        )
    except httpx.RequestError as exc:
        logger.warning("crawler: request error for %s: %s", url, exc)
        return FetchResult(
            content=None, status_code=None, final_url=url, error=f"request error: {exc}"
        )

    final_url = str(response.url)

    if response.status_code >= 400:
        logger.info("crawler: HTTP %d for %s", response.status_code, url)
        return FetchResult(
            content=None,
            status_code=response.status_code,
            final_url=final_url,
            error=f"HTTP {response.status_code}",
        )

    return FetchResult(
        content=response.content,
        status_code=response.status_code,
        final_url=final_url,
        content_type=_media_type(response.headers.get("content-type")),
        encoding=response.encoding,
    )
