"""Timeline composition: standard weeks merged with persisted customizations.

The composed timeline is ordered and non-overlapping, and has no gaps from its
first week to the end of the requested range. Days before the first check-in
day (or first customization) of the range belong to the previous cycle and are
not emitted.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime

from loguru import logger
from pydantic import ValidationError

from app.calendar.dates import add_days, intervals_overlap, length_in_days, normalize_day
from app.calendar.standard_week import MIN_WEEK_LENGTH_DAYS, cycle_end, cycle_start_on_or_after
from app.calendar.types import DEFAULT_CALENDAR_CONFIG, CalendarConfig, Week, WeekCustomization, WeekStatus


def coerce_config(config: CalendarConfig | Mapping[str, object] | None) -> CalendarConfig:
    """Return a usable cadence, substituting the default for missing or malformed input."""
    if isinstance(config, CalendarConfig):
        return config
    if config is None:
        logger.warning("[TIMELINE] Calendar config missing, using default cadence")
        return DEFAULT_CALENDAR_CONFIG
    try:
        return CalendarConfig.model_validate(config)
    except ValidationError as e:
        logger.warning(f"[TIMELINE] Malformed calendar config, using default cadence: {e.error_count()} error(s)")
        return DEFAULT_CALENDAR_CONFIG


def relevant_customizations(
    customizations: Iterable[WeekCustomization],
    start: date,
    end: date,
) -> list[WeekCustomization]:
    """Customizations intersecting [start, end], ordered by start then end."""
    relevant = [c for c in customizations if intervals_overlap(c.start_date, c.end_date, start, end)]
    return sorted(relevant, key=lambda c: (c.start_date.toordinal(), c.end_date.toordinal()))


def _next_customization(cursor: date, ordered: list[WeekCustomization]) -> WeekCustomization | None:
    """First customization (by start) that has not ended before ``cursor``.

    If it starts on or before the cursor it contains the cursor.
    """
    for customization in ordered:
        if customization.end_date >= cursor:
            return customization
    return None


def _standard_weeks(
    range_start: date,
    range_end: date,
    config: CalendarConfig,
    customizations: list[WeekCustomization],
) -> list[Week]:
    weeks: list[Week] = []
    cursor = range_start

    while cursor <= range_end:
        upcoming = _next_customization(cursor, customizations)

        if upcoming is not None and upcoming.start_date <= cursor:
            cursor = add_days(upcoming.end_date, 1)
            continue

        next_cycle = cycle_start_on_or_after(cursor, config)

        if cursor == range_start:
            # Leading days before the first check-in day belong to the previous cycle
            if upcoming is not None and upcoming.start_date <= next_cycle:
                cursor = add_days(upcoming.end_date, 1)
                continue
            week_start = next_cycle
            week_end = cycle_end(next_cycle, config)
        else:
            # Days left after a customization up to the next check-in day; a
            # fragment shorter than a minimal week joins the following cycle
            week_start = cursor
            week_end = add_days(next_cycle, -1)
            if length_in_days(week_start, week_end) < MIN_WEEK_LENGTH_DAYS:
                week_end = cycle_end(next_cycle, config)

        if week_start > range_end:
            break

        is_partial = week_start != next_cycle
        if upcoming is not None and upcoming.start_date <= week_end:
            week_end = add_days(upcoming.start_date, -1)
            is_partial = True
        if week_end > range_end:
            week_end = range_end
            is_partial = True

        weeks.append(Week.standard(week_start, week_end, is_partial_week=is_partial))
        cursor = add_days(week_end, 1)

    return weeks


def _disambiguate_ids(weeks: list[Week]) -> list[Week]:
    """Suffix ids of weeks that repeat an earlier start day. Nothing is dropped."""
    seen: dict[int, int] = {}
    result: list[Week] = []
    for week in weeks:
        key = week.start_date.toordinal()
        count = seen.get(key, 0)
        seen[key] = count + 1
        if count:
            logger.warning(
                "[TIMELINE] Duplicate week start, disambiguating id",
                week_id=week.id,
                start_date=week.start_date.isoformat(),
            )
            week = week.model_copy(update={"id": f"{week.id}~{count}"})
        result.append(week)
    return result


def compose_timeline(
    start: date | datetime | str,
    end: date | datetime | str,
    config: CalendarConfig | Mapping[str, object] | None,
    customizations: Iterable[WeekCustomization],
    *,
    include_deleted: bool = False,
) -> list[Week]:
    """Compose the ordered list of weeks covering [start, end].

    Args:
        start: First day of the range
        end: Last day of the range (inclusive)
        config: Cadence; missing or malformed values fall back to Sun-Sat
        customizations: Persisted overrides (any range; irrelevant ones are ignored)
        include_deleted: Emit customizations with status "deleted" (admin view)

    Returns:
        Weeks sorted by start date, first and last flagged as edge weeks.
        An empty list when the range is inverted or unparseable.
    """
    range_start = normalize_day(start)
    range_end = normalize_day(end)
    if range_start is None or range_end is None:
        logger.warning("[TIMELINE] Unparseable range, returning no weeks", start=str(start), end=str(end))
        return []
    if range_start > range_end:
        logger.debug("[TIMELINE] Inverted range, returning no weeks", start=str(range_start), end=str(range_end))
        return []

    cadence = coerce_config(config)
    relevant = relevant_customizations(customizations, range_start, range_end)

    standard = _standard_weeks(range_start, range_end, cadence, relevant)
    custom = [c.to_week() for c in relevant if include_deleted or c.status != WeekStatus.DELETED]

    weeks = sorted(standard + custom, key=lambda w: (w.start_date.toordinal(), w.end_date.toordinal()))
    if weeks:
        weeks[0] = weeks[0].model_copy(update={"is_edge_week": True})
        weeks[-1] = weeks[-1].model_copy(update={"is_edge_week": True})

    weeks = _disambiguate_ids(weeks)

    logger.debug(
        "[TIMELINE] Composed weeks",
        start=str(range_start),
        end=str(range_end),
        standard_count=len(standard),
        custom_count=len(custom),
        include_deleted=include_deleted,
    )
    return weeks
