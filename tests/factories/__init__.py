"""Factory Boy factories and test doubles.

Available helpers
-----------------
AssetRecordFactory  validated asset record (PNG by default)
PageRecordFactory   validated page record without assets
build_crawl_result  CrawlResult with a consistent ``total_assets``
FakeBrowser         scripted replacement for the Playwright browser session
"""

from __future__ import annotations

from tests.factories.crawl import (
    AssetRecordFactory,
    FakeBrowser,
    PageRecordFactory,
    build_crawl_result,
)

__all__ = [
    "AssetRecordFactory",
    "FakeBrowser",
    "PageRecordFactory",
    "build_crawl_result",
]
