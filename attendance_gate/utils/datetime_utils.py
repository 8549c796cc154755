"""
Timezone-aware datetime helpers.
- Store and compute in UTC in DB.
- API responses expose ISO-8601 UTC with a Z suffix.
"""
from datetime import datetime, date, time, timezone
from typing import Optional

UTC = timezone.utc
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def now_utc() -> datetime:
    """Current time in UTC (timezone-aware). Use for mark timestamps, reviewed_at, bound_at, etc."""
    return datetime.now(UTC)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """If dt is naive, treat as UTC and return timezone-aware UTC. If already aware, convert to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def iso_8601_utc(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with Z for UTC."""
    if dt is None:
        return None
    s = ensure_utc(dt).isoformat()
    if s.endswith("+00:00"):
        s = s[:-6] + "Z"
    return s


def parse_datetime_lenient(value: Optional[str], fallback: datetime, *, end_of_day: bool = False) -> datetime:
    """
    Parse a query-string date/datetime, returning ``fallback`` for missing or invalid input.

    Accepts ISO-8601 datetimes (a trailing Z is allowed) and plain YYYY-MM-DD dates.
    A plain date used as an upper bound (``end_of_day=True``) covers the whole day.
    """
    if not value:
        return fallback
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return fallback
    if len(raw) == 10:
        # Date only
        day = date.fromisoformat(raw)
        parsed = datetime.combine(day, time.max if end_of_day else time.min)
    return ensure_utc(parsed)
