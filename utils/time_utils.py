"""Centralized timestamp conversion utilities.

All functions in this module operate on timezone-aware UTC datetimes or UNIX
timestamps in seconds, which is the unit Midgard uses for every time field.
"""

from __future__ import annotations

from datetime import datetime, timezone

__all__ = [
    "datetime_to_unix",
    "format_timestamp",
    "get_current_unix_utc",
    "parse_unix_seconds",
]


def datetime_to_unix(dt_object: datetime) -> int:
    """Convert a datetime to an integer UNIX timestamp in seconds (UTC).

    If ``dt_object`` is naive (no tzinfo), it is assumed to be in UTC.
    """
    if dt_object.tzinfo is None:
        dt_utc = dt_object.replace(tzinfo=timezone.utc)
    else:
        dt_utc = dt_object.astimezone(timezone.utc)
    return int(dt_utc.timestamp())


def get_current_unix_utc() -> int:
    """Return the current UTC time as an integer UNIX timestamp (seconds)."""
    return int(datetime.now(timezone.utc).timestamp())


def format_timestamp(timestamp: int) -> str:
    """Render UNIX seconds as ``YYYY-MM-DD HH:MM:SS UTC`` for log lines."""
    return datetime.fromtimestamp(int(timestamp), tz=timezone.utc).strftime(
        "%Y-%m-%d %H:%M:%S UTC"
    )


def parse_unix_seconds(value: object) -> int:
    """Parse an upstream time field (decimal string or number) into seconds.

    Raises:
        ValueError: If the value is empty, fractional, or not numeric.
    """
    if isinstance(value, bool):
        raise ValueError(f"Unsupported timestamp value: {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValueError("Empty timestamp value")
    return int(text)
