"""Pydantic schemas for request/response validation and crawl payloads.

Sub-modules:
    archive  : ArchiveCreate/Read/Detail, PageRead, DomainGroup
    schedule : ScheduledArchiveCreate/Update/Read, JobStatus, SchedulerStatus
    crawl    : AssetRecord, PageRecord, CrawlResult
"""

from __future__ import annotations
