"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def window_start(reference: datetime, minutes: int) -> datetime:
    """Start of a trailing window ending at reference"""
    return as_utc(reference) - timedelta(minutes=minutes)
