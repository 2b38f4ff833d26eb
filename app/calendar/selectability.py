"""Rules deciding whether a week may be picked as an arrival or departure.

Pure functions: the clock and the reference timezone are parameters, and the
evaluator never raises. An unselectable week simply yields False.
"""

from __future__ import annotations

import calendar
from collections.abc import Sequence
from datetime import date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from app.calendar.dates import add_days, local_now
from app.calendar.types import Actor, DateInterval, Week, WeekStatus

ARRIVAL_STATUSES = frozenset({WeekStatus.VISIBLE, WeekStatus.DEFAULT})


class SelectionPolicy(BaseModel):
    """Business policy for end-user week selection.

    Attributes:
        reference_timezone: Timezone in which "today" and the cutoff hour are observed
        cutoff_hour: Before this local hour a week starting today can still be booked
        season_close_month: Month of the seasonal booking close
        season_close_day: Day of the seasonal booking close (clamped to the month)
        always_open_months: Start months whose weeks are arrival-eligible regardless of status
        blackouts: Ranges closed to non-admin booking
        max_selection_weeks: Longest contiguous selection
    """

    model_config = ConfigDict(frozen=True)

    reference_timezone: str = "UTC"
    cutoff_hour: int = Field(default=8, ge=0, le=23)
    season_close_month: int = Field(default=11, ge=1, le=12)
    season_close_day: int = Field(default=1, ge=1, le=31)
    always_open_months: tuple[int, ...] = (5, 6)
    blackouts: tuple[DateInterval, ...] = ()
    max_selection_weeks: int = Field(default=12, ge=1)

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.reference_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning(f"Unknown reference timezone '{self.reference_timezone}', using UTC")
            return ZoneInfo("UTC")


DEFAULT_SELECTION_POLICY = SelectionPolicy()


def booking_cutoff_day(now: datetime, policy: SelectionPolicy = DEFAULT_SELECTION_POLICY) -> date:
    """Earliest start day a non-admin may still book.

    Before the cutoff hour that is today; from the cutoff hour on it is tomorrow.
    """
    local = local_now(now, policy.tz)
    today = local.date()
    return today if local.hour < policy.cutoff_hour else add_days(today, 1)


def season_close_date(now: datetime, policy: SelectionPolicy = DEFAULT_SELECTION_POLICY) -> date:
    """First day of the current year on which bookings are closed."""
    year = local_now(now, policy.tz).year
    last_day = calendar.monthrange(year, policy.season_close_month)[1]
    return date(year, policy.season_close_month, min(policy.season_close_day, last_day))


def blackout_between(start: date, end: date, policy: SelectionPolicy = DEFAULT_SELECTION_POLICY) -> bool:
    """Whether any blackout intersects [start, end]."""
    return any(blackout.overlaps(start, end) for blackout in policy.blackouts)


def is_same_week(a: Week, b: Week) -> bool:
    return a.id == b.id or (a.start_date == b.start_date and a.end_date == b.end_date)


def _is_arrival_candidate(week: Week, policy: SelectionPolicy) -> bool:
    if week.start_date.month in policy.always_open_months:
        return not blackout_between(week.start_date, week.end_date, policy)
    if week.status not in ARRIVAL_STATUSES:
        return False
    return not blackout_between(week.start_date, week.end_date, policy)


def is_selectable(
    week: Week,
    actor: Actor,
    selection: Sequence[Week],
    now: datetime,
    policy: SelectionPolicy = DEFAULT_SELECTION_POLICY,
) -> bool:
    """Decide whether ``week`` may be clicked given the current selection.

    Rules, first match wins:
        1. Admins may select anything.
        2. The current arrival week stays selectable so it can be deselected.
        3. Weeks starting before the booking cutoff day are closed.
        4. Weeks starting on/after the seasonal close are closed.
        5. With an empty selection (or a week before the arrival) the week is a
           prospective arrival: May/June weeks are always eligible, otherwise
           the status must be visible/default. Blackouts exclude it either way,
           and a week before the arrival also needs no blackout up to the
           current departure.
        6. After the arrival the week is a departure candidate, eligible whatever
           its status unless a blackout lies between arrival and candidate.
    """
    if actor.is_admin:
        return True

    arrival = min(selection, key=lambda w: w.start_date) if selection else None
    if arrival is not None and is_same_week(week, arrival):
        return True

    if week.start_date < booking_cutoff_day(now, policy):
        return False

    if week.start_date >= season_close_date(now, policy):
        return False

    if arrival is None:
        return _is_arrival_candidate(week, policy)

    if week.start_date < arrival.start_date:
        # An earlier arrival keeps the current departure
        departure = max(selection, key=lambda w: w.end_date)
        return _is_arrival_candidate(week, policy) and not blackout_between(
            week.start_date, departure.end_date, policy
        )

    return not blackout_between(arrival.start_date, week.end_date, policy)
