"""Validated record types passed from the crawler to the archive service.

The crawler produces one :class:`CrawlResult` per call; the archive service
turns every :class:`PageRecord` into a ``pages`` row and every
:class:`AssetRecord` into an ``assets`` row.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from site_archiver.core.models.archive import AssetKind


class AssetRecord(BaseModel):
    """A downloaded and stored asset.

    Attributes:
        kind: Classification derived from the referencing tag.
        original_url: Absolute URL the bytes were downloaded from.
        local_path: Storage path relative to the archive root
            (``assets/<kind>/<filename>``).
        size: Byte length of the downloaded payload.
        compressed_size: Byte length on disk when the storage layer
            compressed the payload, else ``None``.
        mime_type: Server-reported ``Content-Type`` or a kind default.
    """

    model_config = ConfigDict(frozen=True)

    kind: AssetKind
    original_url: str
    local_path: str
    size: int = Field(ge=0)
    compressed_size: Optional[int] = Field(default=None, ge=0)
    mime_type: str

    @property
    def is_compressed(self) -> bool:
        return self.compressed_size is not None


class PageRecord(BaseModel):
    """A rendered page stored by the crawler, with the assets it localized."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: Optional[str] = None
    file_path: str
    links_count: int = Field(default=0, ge=0)
    assets: List[AssetRecord] = Field(default_factory=list)


class CrawlResult(BaseModel):
    """Outcome of one ``crawl_site`` call.

    ``total_assets`` must equal the number of assets across all pages.
    """

    pages: List[PageRecord] = Field(default_factory=list)
    total_assets: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_total_assets(self) -> "CrawlResult":
        expected = sum(len(page.assets) for page in self.pages)
        if self.total_assets != expected:
            raise ValueError(
                f"total_assets={self.total_assets} does not match the "
                f"{expected} assets recorded on the pages"
            )
        return self

    @classmethod
    def from_pages(cls, pages: List[PageRecord]) -> "CrawlResult":
        return cls(pages=pages, total_assets=sum(len(page.assets) for page in pages))
