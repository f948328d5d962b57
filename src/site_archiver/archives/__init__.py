"""Archive storage, lifecycle service and background crawl task.

Sub-modules:
- ``storage``    on-disk layout and transparent compression
- ``rewriting``  serve-time link rewriting for stored pages
- ``service``    :class:`ArchiveService` (create, crawl, persist, serve, list)
- ``tasks``      Celery task ``run_archive_task``
"""
