"""
Timestamp helpers.

All timestamps inside the pipeline are timezone-aware UTC so that records,
reference values and as-of boundaries compare without surprises.
"""

from datetime import date, datetime, time, timezone


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value) -> datetime:
    """
    Parse an ISO-8601 string, date or datetime into an aware UTC datetime.

    Raises:
        ValueError: If the value cannot be interpreted as a point in time
    """
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty timestamp")
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return ensure_utc(datetime.fromisoformat(text))
    raise ValueError(f"cannot interpret {type(value).__name__} as a timestamp")


def parse_date(value) -> date:
    """
    Parse an ISO-8601 date string, date or datetime into a date.

    Raises:
        ValueError: If the value is not a calendar date
    """
    if isinstance(value, datetime):
        return ensure_utc(value).date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValueError("empty date")
        if "T" in text or " " in text:
            return parse_timestamp(text).date()
        return date.fromisoformat(text)
    raise ValueError(f"cannot interpret {type(value).__name__} as a date")


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
