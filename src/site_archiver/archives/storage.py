"""On-disk layout and transparent compression for archived snapshots.

Every archive lives under ``<base>/<domain>/<YYYY-MM-DD-HH-MM-SS>``.  Text-like
payloads (markup, stylesheets, scripts, JSON/XML, SVG, plain text) are stored
gzip-compressed under ``<name>.gz``; everything else is written as-is.  Callers
always pass and receive the logical (uncompressed) path and bytes.
"""

from __future__ import annotations

import gzip
import logging
import os
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from site_archiver.core.exceptions import ArchivedFileNotFoundError

logger = logging.getLogger(__name__)

#: Suffix appended to compressed payloads.
COMPRESSED_SUFFIX: str = ".gz"

#: Extensions stored compressed.
TEXT_LIKE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".html",
        ".htm",
        ".css",
        ".js",
        ".mjs",
        ".json",
        ".xml",
        ".svg",
        ".txt",
    }
)

#: Default upper bound for generated filenames.
DEFAULT_FILENAME_MAX_LENGTH: int = 255

_RESERVED_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class StoredFile:
    """Outcome of :meth:`ArchiveStorage.write_file`.

    Attributes:
        path: The path actually written (``.gz`` suffixed when compressed).
        size: Byte length of the logical content.
        compressed_size: Byte length on disk when compressed, else ``None``.
    """

    path: Path
    size: int
    compressed_size: int | None = None

    @property
    def is_compressed(self) -> bool:
        return self.compressed_size is not None


def sanitize_filename(name: str, max_length: int = DEFAULT_FILENAME_MAX_LENGTH) -> str:
    """Return ``name`` with reserved characters and whitespace replaced by ``_``.

    Truncates to ``max_length``.  Sanitizing an already-sanitized name
    returns it unchanged.  Distinct inputs may collapse to the same output;
    no collision detection is attempted.
    """
    cleaned = _RESERVED_CHARS_RE.sub("_", name)
    cleaned = _WHITESPACE_RE.sub("_", cleaned)
    return cleaned[:max_length]


def is_text_like(path: str | Path) -> bool:
    """Return ``True`` if ``path`` has an extension that is stored compressed."""
    return Path(path).suffix.lower() in TEXT_LIKE_EXTENSIONS


def _format_timestamp(timestamp: datetime) -> str:
    if timestamp.tzinfo is not None:
        timestamp = timestamp.astimezone(timezone.utc)
    return timestamp.strftime("%Y-%m-%d-%H-%M-%S")


class ArchiveStorage:
    """Filesystem-backed storage for archive snapshots.

    Args:
        base_path: Root directory for all archives.
        filename_max_length: Bound applied by :meth:`sanitize_filename`.
    """

    def __init__(
        self,
        base_path: str | Path,
        filename_max_length: int = DEFAULT_FILENAME_MAX_LENGTH,
    ) -> None:
        self.base_path = Path(base_path)
        self.filename_max_length = filename_max_length

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def generate_archive_path(self, domain: str, timestamp: datetime) -> Path:
        """Return ``<base>/<domain>/<YYYY-MM-DD-HH-MM-SS>`` for a new archive.

        Aware timestamps are converted to UTC; naive ones are taken as UTC.
        """
        safe_domain = sanitize_filename(domain, self.filename_max_length)
        return self.base_path / safe_domain / _format_timestamp(timestamp)

    def sanitize_filename(self, name: str) -> str:
        return sanitize_filename(name, self.filename_max_length)

    @staticmethod
    def relative_path(full_path: str | Path, root: str | Path) -> str:
        """Return ``full_path`` relative to ``root`` using forward slashes."""
        return Path(os.path.relpath(full_path, root)).as_posix()

    @staticmethod
    def create_directory(path: str | Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Read / write
    # ------------------------------------------------------------------

    def write_file(self, path: str | Path, content: str | bytes) -> StoredFile:
        """Persist ``content`` at ``path``, compressing text-like payloads.

        The parent directory is created when missing.  A stale variant of the
        other form (plain vs. compressed) is removed so that reads always see
        the latest write.

        Args:
            path: Logical destination path.
            content: Text (encoded as UTF-8) or raw bytes.

        Returns:
            A :class:`StoredFile` describing what was written.
        """
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        compressed_target = target.with_name(target.name + COMPRESSED_SUFFIX)

        if is_text_like(target):
            payload = gzip.compress(data)
            compressed_target.write_bytes(payload)
            target.unlink(missing_ok=True)
            logger.debug(
                "storage: wrote %s (%d -> %d bytes)", compressed_target, len(data), len(payload)
            )
            return StoredFile(path=compressed_target, size=len(data), compressed_size=len(payload))

        target.write_bytes(data)
        compressed_target.unlink(missing_ok=True)
        logger.debug("storage: wrote %s (%d bytes)", target, len(data))
        return StoredFile(path=target, size=len(data))

    def read_file(self, path: str | Path) -> bytes:
        """Return the logical content stored at ``path``.

        The compressed variant is checked first.

        Raises:
            ArchivedFileNotFoundError: If neither variant exists.
        """
        target = Path(path)
        compressed_target = target.with_name(target.name + COMPRESSED_SUFFIX)
        if compressed_target.is_file():
            return gzip.decompress(compressed_target.read_bytes())
        if target.is_file():
            return target.read_bytes()
        raise ArchivedFileNotFoundError(target)

    def file_exists(self, path: str | Path) -> bool:
        target = Path(path)
        return target.is_file() or target.with_name(target.name + COMPRESSED_SUFFIX).is_file()
