"""Timestamp utilities for UTC handling.

All persisted timestamps are UTC. Columns store them as fixed-width ISO 8601
strings so that lexical comparison in SQL matches chronological order.
"""

from datetime import datetime, timezone
from typing import Optional

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware datetimes are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_storage(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime for a string timestamp column.

    Args:
        dt: Datetime to format (naive values are treated as UTC)

    Returns:
        Fixed-width ISO 8601 string with microseconds and 'Z' suffix, or None
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return None
    return dt_utc.strftime(STORAGE_FORMAT)


def from_storage(value: Optional[str]) -> Optional[datetime]:
    """Parse a string timestamp column back to an aware UTC datetime.

    Accepts values with or without microseconds.

    Args:
        value: Stored timestamp string

    Returns:
        Timezone-aware UTC datetime, or None for empty values
    """
    if not value:
        return None

    raw = value.rstrip("Z")
    try:
        dt = datetime.strptime(raw, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(raw, "%Y-%m-%dT%H:%M:%S")

    return dt.replace(tzinfo=timezone.utc)


def format_timestamp_for_log(dt: Optional[datetime]) -> str:
    """Format a datetime for structured logging (second precision).

    Args:
        dt: Datetime to format

    Returns:
        ISO 8601 string with 'Z' suffix, or empty string for None
    """
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")
