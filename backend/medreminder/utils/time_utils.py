"""Helpers for keeping every stored instant in UTC."""
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return value as aware UTC; naive values are assumed to already be UTC.

    SQLite drops tzinfo on the way back out, so rows read from it come back naive.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_zone(name: Optional[str], fallback: str) -> ZoneInfo:
    """Look up an IANA zone, falling back when name is empty or unknown."""
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            pass
    return ZoneInfo(fallback)


def isoformat_utc(value: datetime) -> str:
    """Render an instant the way the queue stores it (ISO-8601, millisecond Z)."""
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"
