"""Timestamp helpers shared by the store, sources and segmentation code.

All timestamps handled by the engine are timezone-aware UTC datetimes.
Naive datetimes are assumed to already be UTC.
"""

from datetime import datetime, timezone
from typing import Optional


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize for SQLite. Fixed-width so that text ordering is time ordering."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def parse_timestamp(value) -> datetime:
    """Accept datetime or ISO string (``Z`` suffix allowed)."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def minutes_between(earlier: datetime, later: datetime) -> float:
    return (later - earlier).total_seconds() / 60.0


def epoch_millis(value: datetime) -> float:
    return ensure_utc(value).timestamp() * 1000.0
