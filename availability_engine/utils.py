"""Shared time-of-day and date utilities used across the scheduling engine."""

import re
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Union

TIME_OF_DAY_RE = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")

WEEKDAY_KEYS = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


def is_time_of_day(value: str) -> bool:
    """Check a value is a 24h ``H:MM`` / ``HH:MM`` string."""
    return isinstance(value, str) and TIME_OF_DAY_RE.match(value.strip()) is not None


def time_to_minutes(value: str) -> int:
    """Convert ``HH:MM`` to minutes since midnight.

    Examples:
        >>> time_to_minutes("09:30")
        570
        >>> time_to_minutes("6:00")
        360
    """
    match = TIME_OF_DAY_RE.match(value.strip())
    if match is None:
        raise ValueError(f"Invalid time of day: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def minutes_to_time(minutes: int) -> str:
    """Convert minutes since midnight to zero-padded ``HH:MM``."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Zero-pad a valid time of day, e.g. ``"9:00"`` -> ``"09:00"``."""
    return minutes_to_time(time_to_minutes(value))


def intervals_overlap(start1: int, end1: int, start2: int, end2: int) -> bool:
    """Half-open overlap test: ``[s1, e1)`` and ``[s2, e2)`` intersect."""
    return start1 < end2 and start2 < end1


def parse_date(value: Union[str, date]) -> date:
    """Parse an ISO ``YYYY-MM-DD`` string (datetimes are truncated to their date)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value.strip()[:10])


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def weekday_key(day: date) -> str:
    """Lowercase English weekday name used as a schedule key."""
    return WEEKDAY_KEYS[day.weekday()]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id(prefix: str) -> str:
    """Short prefixed identifier, e.g. ``BK-1A2B3C4D``."""
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"
