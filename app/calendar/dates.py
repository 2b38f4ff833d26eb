"""Calendar-day normalization and day arithmetic.

Every comparison in the engine happens between plain ``date`` values observed
in a single reference timezone (UTC unless configured otherwise). Timestamps
are converted here and nowhere else.

Weekdays use 0=Sunday .. 6=Saturday, matching the persisted calendar config.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo

from loguru import logger

from app.calendar.errors import InvalidDateError

REFERENCE_TZ: tzinfo = timezone.utc
DAYS_PER_WEEK = 7


def normalize_day(value: date | datetime | str | None, tz: tzinfo = REFERENCE_TZ) -> date | None:
    """Map a timestamp to the calendar day it falls on in the reference timezone.

    Args:
        value: date, datetime (naive values are taken as UTC) or ISO string
            (``YYYY-MM-DD`` or a full ISO-8601 timestamp, ``Z`` accepted)
        tz: Reference timezone

    Returns:
        The calendar day, or None when the value cannot be interpreted
    """
    if value is None:
        return None

    if isinstance(value, str):
        text = value.strip()
        try:
            if "T" in text or " " in text:
                value = datetime.fromisoformat(text.replace("Z", "+00:00"))
            else:
                return date.fromisoformat(text)
        except ValueError:
            logger.warning(f"Unparseable calendar day: {value!r}")
            return None

    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(tz).date()

    if isinstance(value, date):
        return value

    logger.warning(f"Unsupported calendar day type: {type(value).__name__}")
    return None


def require_day(value: date | datetime | str | None, tz: tzinfo = REFERENCE_TZ) -> date:
    """Normalize a value, raising InvalidDateError when it is not a day."""
    day = normalize_day(value, tz)
    if day is None:
        raise InvalidDateError(value)
    return day


def add_days(day: date, days: int) -> date:
    return day + timedelta(days=days)


def js_weekday(day: date) -> int:
    """Weekday with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % DAYS_PER_WEEK


def days_until_weekday(day: date, weekday: int) -> int:
    """Days from ``day`` to the next occurrence of ``weekday`` (0 if already on it)."""
    return (weekday - js_weekday(day)) % DAYS_PER_WEEK


def next_weekday_on_or_after(day: date, weekday: int) -> date:
    return add_days(day, days_until_weekday(day, weekday))


def intervals_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive interval intersection test."""
    return a_start <= b_end and b_start <= a_end


def length_in_days(start: date, end: date) -> int:
    """Inclusive length of [start, end]."""
    return (end - start).days + 1


def format_week_range(start: date, end: date) -> str:
    """Short display range, e.g. ``Mar 8 - Mar 20``."""
    return f"{start:%b} {start.day} - {end:%b} {end.day}"


def local_now(now: datetime, tz: tzinfo = REFERENCE_TZ) -> datetime:
    """Express ``now`` in the reference timezone (naive values are taken as UTC)."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)
