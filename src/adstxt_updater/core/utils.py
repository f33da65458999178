from __future__ import annotations

from datetime import datetime, timezone
from email.utils import format_datetime


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_http_date(dt: datetime) -> str:
    """Format a datetime like `Sun, 18 Oct 2026 09:30:00 GMT`."""
    return format_datetime(dt.astimezone(timezone.utc), usegmt=True)
