"""Time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def from_ns(timestamp_ns: int) -> datetime:
    """Convert an ``st_mtime_ns`` value into a timezone-aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_ns / 1_000_000_000, tz=timezone.utc)
