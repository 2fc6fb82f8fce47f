"""ISO-8601 timestamp helpers.

All timestamps produced by the engine use the same millisecond-precision UTC
form (``2026-01-26T00:38:34.590Z``) so they sort correctly as plain strings.
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import TypeVar

T = TypeVar("T")


def to_iso(dt: datetime) -> str:
    """Format a datetime as a UTC ISO-8601 string with millisecond precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    dt = dt.astimezone(UTC)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def epoch_seconds_to_iso(seconds: float) -> str:
    try:
        return to_iso(datetime.fromtimestamp(seconds, tz=UTC))
    except (OverflowError, OSError, ValueError):
        return ""


def epoch_ms_to_iso(milliseconds: float) -> str:
    return epoch_seconds_to_iso(milliseconds / 1000)


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string, accepting a trailing ``Z``.

    Returns:
        Aware datetime, or None when the value is empty or malformed
    """
    if not value:
        return None
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=UTC)


def max_iso(values: Iterable[str]) -> str:
    latest = ""
    for value in values:
        if value > latest:
            latest = value
    return latest


def sort_by_iso_desc(items: list[T], select: Callable[[T], str]) -> None:
    """Sort items in place, newest first."""
    items.sort(key=select, reverse=True)
