"""Datetime helpers: UTC clock and HTTP date formatting."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def from_timestamp(timestamp: float) -> datetime:
    """Convert a POSIX timestamp (e.g. ``st_mtime``) into an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def format_http_date(dt: datetime) -> str:
    """Format a datetime as an RFC 9110 HTTP date (``Sun, 06 Nov 1994 08:49:37 GMT``)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return format_datetime(dt.astimezone(timezone.utc).replace(microsecond=0), usegmt=True)
