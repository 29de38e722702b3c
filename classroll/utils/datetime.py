"""DateTime helpers.

All timestamps are stored in UTC and all Python datetimes handled by the
services are timezone-aware. Drivers that hand back naive values (SQLite)
are normalized with ``ensure_utc``.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Naive datetimes are assumed to already be UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)
