from datetime import datetime, timedelta, timezone
from typing import Optional

def utc_now() -> datetime:
    return datetime.now(timezone.utc)

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes. SQLite hands back naive values even for
    timezone-aware columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def next_utc_midnight(now: Optional[datetime] = None) -> datetime:
    """Start of the next UTC day; daily quotas reset here."""
    now = as_utc(now) or utc_now()
    tomorrow = (now + timedelta(days=1)).date()
    return datetime(tomorrow.year, tomorrow.month, tomorrow.day, tzinfo=timezone.utc)
