"""Playwright-based headless browser session for rendering fetches.

One :class:`BrowserSession` is opened per crawl.  Each :meth:`BrowserSession.render`
call opens a fresh tab, navigates to the URL, waits for the network to become
idle, and returns the post-script DOM and title.  The tab is always closed,
and the browser is always closed when the session exits, whether or not the
crawl succeeded.

Install the Chromium binary once per machine::

    playwright install chromium
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import TracebackType
from typing import Any

from playwright.async_api import async_playwright

from site_archiver.crawler.config import BROWSER_USER_AGENT, RENDER_WAIT_UNTIL

logger = logging.getLogger(__name__)


@dataclass
class RenderedPage:
    """Post-script state of a rendered page.

    Attributes:
        html: Serialised DOM after the network went idle.
        title: ``document.title`` (empty string when the page has none).
        final_url: URL after redirects.
        status_code: Status of the main navigation response, if any.
    """

    html: str
    title: str
    final_url: str
    status_code: int | None = None


class BrowserSession:
    """Async context manager owning one headless Chromium instance.

    Args:
        timeout: Navigation timeout in seconds (converted to milliseconds for
            Playwright).

    Usage::

        async with BrowserSession(timeout=30) as browser:
            rendered = await browser.render("https://example.com/")
    """

    def __init__(self, *, timeout: float) -> None:
        self.timeout_ms = int(timeout * 1000)
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None

    async def __aenter__(self) -> "BrowserSession":
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-setuid-sandbox"],
            )
            self._context = await self._browser.new_context(user_agent=BROWSER_USER_AGENT)
        except Exception:
            await self.close()
            raise
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the context, the browser and the Playwright driver."""
        try:
            if self._context is not None:
                await self._context.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            self._context = None
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None

    async def render(self, url: str) -> RenderedPage:
        """Navigate to ``url`` and return the rendered DOM.

        Raises:
            playwright.async_api.Error: On navigation failure or timeout.
            RuntimeError: If the session has not been entered.
        """
        if self._context is None:
            raise RuntimeError("BrowserSession.render() called outside 'async with'")

        page = await self._context.new_page()
        try:
            response = await page.goto(
                url,
                timeout=self.timeout_ms,
                wait_until=RENDER_WAIT_UNTIL,
            )
            html = await page.content()
            title = await page.title()
            return RenderedPage(
                html=html,
                title=title,
                final_url=page.url,
                status_code=response.status if response else None,
            )
        finally:
            await page.close()
