"""Time utilities: timezone-aware helpers used for sessions and audit rows."""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Optional

__all__ = ["utc_now", "iso_utc", "normalize_iso", "parse_iso", "seconds_between"]


def utc_now() -> datetime:
    """Return an aware UTC datetime."""
    return datetime.now(timezone.utc)


def iso_utc(dt: Optional[datetime] = None) -> str:
    """Return ISO8601 string with Z suffix for given datetime (defaults to now).

    Always fixed width (microseconds included) so stored values sort and
    compare correctly as text.
    """
    if dt is None:
        dt = utc_now()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds").replace('+00:00', 'Z')


def normalize_iso(value: str) -> str:
    """Re-render any ISO8601 string in the fixed-width iso_utc form."""
    return iso_utc(parse_iso(value))


def parse_iso(value: str) -> datetime:
    """Parse an ISO8601 string (trailing Z accepted) into an aware UTC datetime."""
    dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def seconds_between(earlier: datetime, later: datetime) -> float:
    if earlier.tzinfo is None:
        earlier = earlier.replace(tzinfo=timezone.utc)
    if later.tzinfo is None:
        later = later.replace(tzinfo=timezone.utc)
    return (later - earlier).total_seconds()
