"""
Datetime utilities for consistent timestamp handling.

Signals arrive from heterogeneous feeds, so timestamps may be ISO strings,
epoch seconds/milliseconds, aware or naive datetimes. Everything inside the
pipeline is a naive UTC datetime.
"""

from datetime import datetime, timezone
from typing import Any, Optional


def utc_now() -> datetime:
    """
    Get current UTC time as a naive datetime (for JSON serialization compatibility).

    Returns:
        Current UTC time as a naive datetime object
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse a loosely typed timestamp into a naive UTC datetime.

    Accepts datetimes, ISO-8601 strings (a trailing ``Z`` is allowed) and
    epoch numbers. Values above 1e11 are treated as milliseconds.

    Args:
        value: Raw timestamp from a signal feed

    Returns:
        Naive UTC datetime, or None if the value cannot be interpreted
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return to_naive_utc(value)

    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return to_naive_utc(datetime.fromisoformat(text))
        except ValueError:
            return None

    return None
