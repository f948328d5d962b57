"""Unit tests for the HTTP fetcher module.

Tests successful fetches, HTTP error handling and network failures using
mocked httpx responses.
"""

from __future__ import annotations

import httpx
import pytest
import respx

from site_archiver.crawler.http_fetcher import FetchResult, fetch_url


class TestFetchResult:
    def test_ok_requires_content_and_no_error(self) -> None:
        assert FetchResult(content=b"x", status_code=200, final_url="u").ok is True
        assert FetchResult(content=None, status_code=None, final_url="u", error="timeout").ok is False

    def test_text_uses_encoding(self) -> None:
        result = FetchResult(
            content="æøå".encode("latin-1"), status_code=200, final_url="u", encoding="latin-1"
        )
        assert result.text == "æøå"


@pytest.mark.asyncio
class TestFetchUrl:
    async def test_successful_fetch(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/style.css").mock(
                return_value=httpx.Response(
                    200,
                    content=b"body{}",
                    headers={"content-type": "text/css; charset=utf-8"},
                )
            )
            async with httpx.AsyncClient() as client:
                result = await fetch_url("https://example.com/style.css", client=client, timeout=10)

        assert result.ok
        assert result.content == b"body{}"
        assert result.status_code == 200
        assert result.content_type == "text/css"

    async def test_http_404_returns_error(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/missing").mock(return_value=httpx.Response(404))
            async with httpx.AsyncClient() as client:
                result = await fetch_url("https://example.com/missing", client=client, timeout=10)

        assert result.content is None
        assert result.status_code == 404
        assert "404" in (result.error or "")

    async def test_timeout_returns_error(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/slow").mock(side_effect=httpx.ReadTimeout("timed out"))
            async with httpx.AsyncClient() as client:
                result = await fetch_url("https://example.com/slow", client=client, timeout=1)

        assert not result.ok
        assert result.error == "timeout"

    async def test_connection_error_returns_error(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/down").mock(side_effect=httpx.ConnectError("refused"))
            async with httpx.AsyncClient() as client:
                result = await fetch_url("https://example.com/down", client=client, timeout=1)

        assert not result.ok
        assert result.error is not None
        assert result.error.startswith("request error")

    async def test_redirect_is_followed(self) -> None:
        with respx.mock(base_url="https://example.com") as mock:
            mock.get("/old").mock(
                return_value=httpx.Response(301, headers={"location": "https://example.com/new"})
            )
            mock.get("/new").mock(return_value=httpx.Response(200, text="<html></html>"))
            async with httpx.AsyncClient() as client:
                result = await fetch_url("https://example.com/old", client=client, timeout=10)

        assert result.ok
        assert result.final_url == "https://example.com/new"
