"""Site crawler: renders pages, localizes assets and discovers links.

Sub-modules:
- ``config``        constants and tuning parameters
- ``http_fetcher``  async httpx fetcher for raw markup and asset bytes
- ``browser``       headless Chromium session (Playwright) for rendering
- ``links``         URL resolution and same-host link discovery
- ``assets``        asset collection, download and reference rewriting
- ``orchestrator``  breadth-first :class:`SiteCrawler`
"""
