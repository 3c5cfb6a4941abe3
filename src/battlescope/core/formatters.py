"""
BattleScope Formatters

Datetime helpers shared by the store, the feeds and the CLI.
Every timestamp in the package is a timezone-aware UTC datetime.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

# =============================================================================
# DateTime Parsing and Formatting
# =============================================================================


def parse_datetime(dt_str: str) -> Optional[datetime]:
    """
    Parse an ESI/zKillboard datetime string to a UTC datetime.

    Handles ``Z`` suffixed strings with and without microseconds, and
    falls back to ISO 8601 with an explicit offset.

    Args:
        dt_str: ISO format datetime string

    Returns:
        datetime object with UTC timezone, or None if parsing fails

    Examples:
        >>> parse_datetime("2026-01-15T12:30:00Z")
        datetime.datetime(2026, 1, 15, 12, 30, tzinfo=datetime.timezone.utc)
    """
    if not dt_str:
        return None

    for fmt in ["%Y-%m-%dT%H:%M:%SZ", "%Y-%m-%dT%H:%M:%S.%fZ"]:
        try:
            return datetime.strptime(dt_str, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue

    try:
        parsed = datetime.fromisoformat(dt_str)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """
    Format datetime as ISO string.

    Args:
        dt: datetime object

    Returns:
        ISO format string like "2026-01-15T12:30:00Z"
    """
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime with UTC timezone
    """
    return datetime.now(timezone.utc)


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp string.

    Returns:
        ISO format timestamp like "2026-01-15T12:30:00Z"
    """
    return format_datetime(get_utc_now())


# =============================================================================
# Epoch Conversion (storage representation)
# =============================================================================


def to_epoch(dt: datetime) -> int:
    """Convert a datetime to Unix epoch seconds."""
    return int(dt.timestamp())


def from_epoch(value: int) -> datetime:
    """Convert Unix epoch seconds to a UTC datetime."""
    return datetime.fromtimestamp(value, tz=timezone.utc)


def optional_from_epoch(value: Optional[int]) -> Optional[datetime]:
    return from_epoch(value) if value is not None else None


def format_history_date(day: date) -> str:
    """Format a calendar date the way the zKillboard history endpoint expects (YYYYMMDD)."""
    return day.strftime("%Y%m%d")
