"""Configuration package for Site Archiver.

Re-exports the settings symbols so that callers can write::

    from site_archiver.config import get_settings
"""

from __future__ import annotations

from site_archiver.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
