"""Unit tests for serve-time link rewriting of archived pages."""

from __future__ import annotations

import uuid

import pytest

from site_archiver.archives.rewriting import (
    build_page_lookup,
    lookup_page,
    rewrite_archived_html,
    serve_url,
)

_ARCHIVE_ID = uuid.UUID("6f1c2a34-0b7e-4c55-9d0e-2b8f3c1a9e77")
_BASE = "http://archive.test"
_PREFIX = f"{_BASE}/api/archives/{_ARCHIVE_ID}/serve/"

_PAGES = [
    ("https://example.com/", "pages/index.html"),
    ("https://example.com/about", "pages/_about.html"),
    ("https://example.com/docs/intro/", "pages/_docs_intro_.html"),
]


def _rewrite(html: str, pages: list[tuple[str, str]] = _PAGES) -> str:
    return rewrite_archived_html(html, archive_id=_ARCHIVE_ID, pages=pages, public_base_url=_BASE)


class TestServeUrl:
    def test_joins_without_double_slashes(self) -> None:
        assert serve_url("http://archive.test/", _ARCHIVE_ID, "/pages/index.html") == (
            f"{_PREFIX}pages/index.html"
        )


class TestPageLookup:
    @pytest.mark.parametrize(
        ("reference", "expected"),
        [
            ("https://example.com/about", "pages/_about.html"),
            ("https://example.com/about/", "pages/_about.html"),
            ("https://example.com/about#team", "pages/_about.html"),
            ("/about", "pages/_about.html"),
            ("/about/", "pages/_about.html"),
            ("about", "pages/_about.html"),
            ("/docs/intro", "pages/_docs_intro_.html"),
            ("https://example.com/docs/intro", "pages/_docs_intro_.html"),
            ("https://example.com", "pages/index.html"),
            ("/", "pages/index.html"),
        ],
    )
    def test_resolves_variants(self, reference: str, expected: str) -> None:
        assert lookup_page(build_page_lookup(_PAGES), reference) == expected

    @pytest.mark.parametrize(
        "reference",
        ["https://other.org/about", "/contact", "#top", "mailto:info@example.com", ""],
    )
    def test_unknown_references(self, reference: str) -> None:
        assert lookup_page(build_page_lookup(_PAGES), reference) is None

    def test_first_page_wins_on_collision(self) -> None:
        lookup = build_page_lookup(
            [
                ("https://example.com/a/", "pages/_a_.html"),
                ("https://example.com/a", "pages/_a.html"),
            ]
        )
        assert lookup_page(lookup, "/a") == "pages/_a_.html"


class TestRewriteArchivedHtml:
    def test_anchors_to_stored_pages_are_rewritten(self) -> None:
        html = _rewrite('<a href="/about/">About</a><a href="https://example.com/">Home</a>')

        assert f'href="{_PREFIX}pages/_about.html"' in html
        assert f'href="{_PREFIX}pages/index.html"' in html

    def test_unknown_anchors_are_left_alone(self) -> None:
        html = _rewrite('<a href="https://other.org/">Other</a><a href="/contact">C</a>')

        assert 'href="https://other.org/"' in html
        assert 'href="/contact"' in html

    def test_asset_references_are_rewritten(self) -> None:
        html = _rewrite(
            '<img src="assets/image/logo.png">'
            '<link rel="stylesheet" href="/assets/stylesheet/site.css">'
            '<script src="assets/script/app.js"></script>'
            '<video><source src="assets/other/clip.mp4"></video>'
        )

        assert f'src="{_PREFIX}assets/image/logo.png"' in html
        assert f'href="{_PREFIX}assets/stylesheet/site.css"' in html
        assert f'src="{_PREFIX}assets/script/app.js"' in html
        assert f'src="{_PREFIX}assets/other/clip.mp4"' in html

    def test_live_asset_urls_are_left_alone(self) -> None:
        html = _rewrite('<img src="https://cdn.example.com/logo.png">')
        assert 'src="https://cdn.example.com/logo.png"' in html

    def test_rewriting_twice_changes_nothing(self) -> None:
        source = '<a href="/about">About</a><img src="assets/image/logo.png">'
        once = _rewrite(source)
        assert _rewrite(once) == once

    def test_no_pages_only_rewrites_assets(self) -> None:
        html = _rewrite('<a href="/about">About</a><img src="assets/image/x.png">', pages=[])
        assert 'href="/about"' in html
        assert f'src="{_PREFIX}assets/image/x.png"' in html


class TestNestedPages:
    _NESTED = [
        ("https://example.com/", "pages/index.html"),
        ("https://example.com/about", "pages/_about.html"),
        ("https://example.com/docs/", "pages/_docs_.html"),
        ("https://example.com/docs/about", "pages/_docs_about.html"),
    ]

    def _rewrite_from(self, html: str, page_url: str) -> str:
        return rewrite_archived_html(
            html,
            archive_id=_ARCHIVE_ID,
            pages=self._NESTED,
            public_base_url=_BASE,
            page_url=page_url,
        )

    def test_relative_anchor_resolves_against_served_page(self) -> None:
        html = self._rewrite_from('<a href="about">x</a>', "https://example.com/docs/")

        assert f'href="{_PREFIX}pages/_docs_about.html"' in html

    def test_parent_anchor_is_rewritten(self) -> None:
        html = self._rewrite_from('<a href="../">up</a>', "https://example.com/docs/")

        assert f'href="{_PREFIX}pages/index.html"' in html

    def test_root_relative_anchor_ignores_served_page(self) -> None:
        html = self._rewrite_from('<a href="/about">x</a>', "https://example.com/docs/")

        assert f'href="{_PREFIX}pages/_about.html"' in html

    def test_fragment_is_kept(self) -> None:
        html = self._rewrite_from('<a href="about#team">x</a>', "https://example.com/docs/")

        assert f'href="{_PREFIX}pages/_docs_about.html#team"' in html

    def test_fragment_only_anchor_is_left_alone(self) -> None:
        html = self._rewrite_from('<a href="#top">top</a>', "https://example.com/docs/")

        assert 'href="#top"' in html


class TestReservedCharactersInStoredNames:
    def test_hash_and_percent_are_encoded(self) -> None:
        assert serve_url(_BASE, _ARCHIVE_ID, "pages/_a#b%c.html") == (
            f"{_PREFIX}pages/_a%23b%25c.html"
        )

    def test_anchor_to_page_with_hash_in_name(self) -> None:
        pages = [("https://example.com/a%23b", "pages/_a#b.html")]

        html = _rewrite('<a href="https://example.com/a%23b">x</a>', pages=pages)

        assert f'href="{_PREFIX}pages/_a%23b.html"' in html
