"""Unit tests for the archive storage manager.

Covers the path layout, filename sanitation, and transparent compression of
text-like payloads.
"""

from __future__ import annotations

import gzip
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from site_archiver.archives.storage import (
    COMPRESSED_SUFFIX,
    ArchiveStorage,
    is_text_like,
    sanitize_filename,
)
from site_archiver.core.exceptions import ArchivedFileNotFoundError

_PNG_BYTES = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4
_HTML = "<!DOCTYPE html><html><head><title>Forside</title></head><body>Æ ø å</body></html>"


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class TestGenerateArchivePath:
    def test_layout_is_base_domain_timestamp(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        ts = datetime(2024, 3, 9, 14, 5, 7, tzinfo=timezone.utc)
        path = storage.generate_archive_path("example.com", ts)
        assert path == tmp_path / "example.com" / "2024-03-09-14-05-07"

    def test_aware_timestamps_are_converted_to_utc(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        cet = timezone(timedelta(hours=1))
        path = storage.generate_archive_path("example.com", datetime(2024, 1, 1, 1, 0, 0, tzinfo=cet))
        assert path.name == "2024-01-01-00-00-00"

    def test_timestamps_sort_lexicographically(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        earlier = storage.generate_archive_path(
            "example.com", datetime(2024, 9, 30, 23, 59, 59, tzinfo=timezone.utc)
        )
        later = storage.generate_archive_path(
            "example.com", datetime(2024, 10, 1, 0, 0, 0, tzinfo=timezone.utc)
        )
        assert earlier.name < later.name

    def test_domain_is_sanitized(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        path = storage.generate_archive_path("exa:mple.com", datetime(2024, 1, 1, tzinfo=timezone.utc))
        assert path.parent.name == "exa_mple.com"


# ---------------------------------------------------------------------------
# Sanitation
# ---------------------------------------------------------------------------


class TestSanitizeFilename:
    @pytest.mark.parametrize(
        "name",
        [
            'report<2024>:final?.pdf',
            "my   holiday photo.jpg",
            "tab\tand\nnewline.css",
            "a/b\\c|d*e.js",
            "x" * 400 + ".png",
        ],
    )
    def test_idempotent_and_bounded(self, name: str) -> None:
        once = sanitize_filename(name, max_length=100)
        assert sanitize_filename(once, max_length=100) == once
        assert len(once) <= 100
        assert not any(ch in once for ch in '<>:"/\\|?*')
        assert not any(ch.isspace() for ch in once)

    def test_whitespace_runs_collapse_to_one_underscore(self) -> None:
        assert sanitize_filename("my   holiday photo.jpg") == "my_holiday_photo.jpg"

    def test_control_characters_replaced(self) -> None:
        assert sanitize_filename("bad\x00name.txt") == "bad_name.txt"

    def test_storage_uses_configured_length(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path, filename_max_length=20)
        assert len(storage.sanitize_filename("a" * 50)) == 20


# ---------------------------------------------------------------------------
# Read / write
# ---------------------------------------------------------------------------


class TestWriteAndRead:
    def test_markup_round_trip_is_compressed(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        target = tmp_path / "site" / "pages" / "index.html"

        stored = storage.write_file(target, _HTML)

        assert stored.is_compressed
        assert stored.path.name == "index.html" + COMPRESSED_SUFFIX
        assert not target.exists()
        assert gzip.decompress(stored.path.read_bytes()) == _HTML.encode("utf-8")
        assert storage.read_file(target) == _HTML.encode("utf-8")

    def test_binary_round_trip_is_uncompressed(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        target = tmp_path / "site" / "assets" / "image" / "logo.png"

        stored = storage.write_file(target, _PNG_BYTES)

        assert not stored.is_compressed
        assert stored.size == len(_PNG_BYTES)
        assert target.read_bytes() == _PNG_BYTES
        assert storage.read_file(target) == _PNG_BYTES

    def test_write_creates_parent_directories(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        target = tmp_path / "a" / "b" / "c" / "style.css"
        storage.write_file(target, "body { color: red; }")
        assert storage.file_exists(target)

    def test_read_prefers_compressed_variant(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        target = tmp_path / "data.bin"
        target.write_bytes(b"plain")
        target.with_name("data.bin" + COMPRESSED_SUFFIX).write_bytes(gzip.compress(b"packed"))
        assert storage.read_file(target) == b"packed"

    def test_missing_file_raises_not_found(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        with pytest.raises(ArchivedFileNotFoundError):
            storage.read_file(tmp_path / "nothing.html")

    def test_size_reports_logical_length(self, tmp_path: Path) -> None:
        storage = ArchiveStorage(tmp_path)
        stored = storage.write_file(tmp_path / "app.js", "console.log('x');" * 100)
        assert stored.size == len("console.log('x');" * 100)
        assert stored.compressed_size is not None
        assert stored.compressed_size < stored.size


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("index.html", True),
        ("style.CSS", True),
        ("app.js", True),
        ("data.json", True),
        ("logo.svg", True),
        ("notes.txt", True),
        ("photo.png", False),
        ("photo.jpg", False),
        ("font.woff2", False),
        ("noextension", False),
    ],
)
def test_is_text_like(name: str, expected: bool) -> None:
    assert is_text_like(name) is expected
