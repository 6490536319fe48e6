"""
ISO-8601 timestamp helpers for the persisted rotation state.

Timestamps are written in UTC with millisecond precision and a trailing
``Z`` (e.g. ``2026-01-05T10:00:00.000Z``), and any ISO-8601 string with an
offset is accepted on read.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """
    Format a datetime for storage.

    Naive datetimes are assumed to be UTC.

    Examples:
        >>> format_timestamp(datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc))
        "2026-01-05T10:00:00.000Z"
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a stored timestamp.

    Returns None for None or an empty string. Raises ValueError for any other
    value that is not an ISO-8601 string.
    """
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ValueError(f"Expected ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
