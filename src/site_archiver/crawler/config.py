"""Constants and tuning parameters for the site crawler.

Per-deployment knobs (page cap, timeout, concurrency) live in
:class:`site_archiver.config.settings.Settings`; the values here are fixed.
"""

from __future__ import annotations

from site_archiver.core.models.archive import AssetKind

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: User-agent string sent with raw link-discovery fetches and asset downloads.
USER_AGENT: str = (
    "SiteArchiver/1.0 (+https://github.com/site-archiver; archival crawler)"
)

#: User-agent used by the headless browser for rendering fetches.
BROWSER_USER_AGENT: str = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

#: Playwright ``wait_until`` state for rendering fetches.
RENDER_WAIT_UNTIL: str = "networkidle"

#: Schemes the crawler follows and downloads from.
FETCHABLE_SCHEMES: frozenset[str] = frozenset({"http", "https"})

# ---------------------------------------------------------------------------
# Storage layout
# ---------------------------------------------------------------------------

#: Directory (relative to the archive root) holding rendered pages.
PAGES_DIR: str = "pages"

#: Directory (relative to the archive root) holding localized assets.
ASSETS_DIR: str = "assets"

#: Fallback page filename for the site root.
INDEX_FILENAME: str = "index"

#: Extension appended to page filenames.
PAGE_EXTENSION: str = ".html"

# ---------------------------------------------------------------------------
# Assets
# ---------------------------------------------------------------------------

#: MIME type recorded when the server does not report one.
DEFAULT_MIME_TYPES: dict[AssetKind, str] = {
    AssetKind.IMAGE: "image/*",
    AssetKind.STYLESHEET: "text/css",
    AssetKind.SCRIPT: "application/javascript",
    AssetKind.FONT: "font/*",
    AssetKind.OTHER: "application/octet-stream",
}
