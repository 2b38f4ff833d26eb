"""Standard week generation from the recurring check-in/check-out cadence."""

from __future__ import annotations

from datetime import date

from app.calendar.dates import DAYS_PER_WEEK, add_days, days_until_weekday, length_in_days, next_weekday_on_or_after
from app.calendar.types import CalendarConfig

MIN_WEEK_LENGTH_DAYS = 3


def standard_week_end(start: date, config: CalendarConfig) -> date:
    """First check-out day on/after ``start``, one cycle later if that is under 3 days away."""
    end = add_days(start, days_until_weekday(start, config.check_out_weekday))
    if length_in_days(start, end) < MIN_WEEK_LENGTH_DAYS:
        end = add_days(end, DAYS_PER_WEEK)
    return end


def generate_standard_week(day: date, config: CalendarConfig) -> tuple[date, date]:
    """Compute the standard week starting on the first check-in day on/after ``day``.

    The week ends on the first check-out weekday on/after its start. When
    check-in and check-out weekdays are adjacent (or equal) that would give a
    1-2 day week, so the end is pushed one full cycle later.

    Args:
        day: Any calendar day
        config: Cadence to apply

    Returns:
        (start, end) inclusive, never shorter than MIN_WEEK_LENGTH_DAYS
    """
    start = next_weekday_on_or_after(day, config.check_in_weekday)
    return start, standard_week_end(start, config)


# A Sunday; phases two-week cycles so every window agrees on week boundaries
CYCLE_ANCHOR = date(1970, 1, 4)


def cycle_length_days(config: CalendarConfig) -> int:
    """Days between consecutive standard week starts: 7, or 14 when a week runs past the next check-in day."""
    start, end = generate_standard_week(CYCLE_ANCHOR, config)
    weeks = -(-length_in_days(start, end) // DAYS_PER_WEEK)
    return weeks * DAYS_PER_WEEK


def cycle_start_on_or_after(day: date, config: CalendarConfig) -> date:
    """First check-in day on/after ``day`` that opens a standard week."""
    anchor = next_weekday_on_or_after(CYCLE_ANCHOR, config.check_in_weekday)
    return add_days(day, (anchor - day).days % cycle_length_days(config))


def cycle_end(start: date, config: CalendarConfig) -> date:
    """Last day of the standard week opened at ``start``.

    The week runs to the day before the next cycle starts, so a check-out day
    that is not adjacent to the check-in day leaves no unassigned days.
    """
    return add_days(start, cycle_length_days(config) - 1)
