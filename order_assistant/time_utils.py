from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .config import DEFAULT_TIMEZONE

DAY_NAMES = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_zone(name: str = None) -> ZoneInfo:
    """Resolve an IANA timezone name, falling back to DEFAULT_TIMEZONE."""
    try:
        return ZoneInfo(name or DEFAULT_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(DEFAULT_TIMEZONE)


def ensure_aware(value: datetime, tz_name: str = None) -> datetime:
    """Attach the business timezone to a naive datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=get_zone(tz_name))
    return value


def day_name(value: datetime) -> str:
    return DAY_NAMES[value.weekday()]


def parse_hhmm(value: str) -> int:
    """Convert an "HH:MM" (or "HH:MM:SS") string into minutes after midnight."""
    parts = value.strip().split(":")
    return int(parts[0]) * 60 + int(parts[1])


def as_utc(value: datetime) -> datetime:
    """
    Normalize a stored instant to UTC.

    SQLite drops tzinfo on DateTime(timezone=True) columns; values are always
    written in UTC, so a naive value read back is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
