"""Selection reducer: the new week selection after a user clicks a week."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import Literal

from loguru import logger
from pydantic import BaseModel, Field

from app.calendar.dates import intervals_overlap
from app.calendar.selectability import (
    DEFAULT_SELECTION_POLICY,
    SelectionPolicy,
    blackout_between,
    is_same_week,
    is_selectable,
)
from app.calendar.types import Actor, Week

SelectionOutcome = Literal[
    "selected",
    "extended",
    "deselected",
    "refused",
    "too_many_weeks",
    "unchanged",
    "admin_edit",
]


class SelectionResult(BaseModel):
    """New selection plus what happened to it.

    ``weeks`` equals the previous selection for every outcome except
    selected, extended and deselected.
    """

    weeks: list[Week] = Field(default_factory=list)
    outcome: SelectionOutcome

    @property
    def changed(self) -> bool:
        return self.outcome in {"selected", "extended", "deselected"}


def _run_between(timeline: Sequence[Week], first: Week, last: Week) -> list[Week]:
    """Timeline weeks whose start lies between the two boundary starts, inclusive."""
    low = min(first.start_date, last.start_date)
    high = max(first.start_date, last.start_date)
    return [w for w in sorted(timeline, key=lambda w: w.start_date) if low <= w.start_date <= high]


def _overlapping(a: Week, b: Week) -> bool:
    return intervals_overlap(a.start_date, a.end_date, b.start_date, b.end_date)


def _deselect(
    clicked: Week,
    selection: list[Week],
    now: datetime,
    policy: SelectionPolicy,
) -> SelectionResult:
    remaining = [w for w in selection if not is_same_week(w, clicked)]
    if not remaining:
        return SelectionResult(weeks=[], outcome="deselected")

    # The new arrival must stand on its own, as if nothing else were selected
    non_admin = Actor(is_admin=False)
    for index, candidate in enumerate(remaining):
        if is_selectable(candidate, non_admin, [], now, policy):
            return SelectionResult(weeks=remaining[index:], outcome="deselected")

    logger.debug("[SELECTION] Deselection refused, no remaining week can be an arrival", week_id=clicked.id)
    return SelectionResult(weeks=selection, outcome="refused")


def reduce_selection(
    week: Week,
    selection: Sequence[Week],
    actor: Actor,
    timeline: Sequence[Week],
    now: datetime,
    policy: SelectionPolicy = DEFAULT_SELECTION_POLICY,
) -> SelectionResult:
    """Apply a click on ``week`` to ``selection``.

    Args:
        week: Clicked week
        selection: Current selection
        actor: Acting user; admins open an edit flow instead of selecting
        timeline: Composed weeks the contiguous runs are taken from
        now: Current time
        policy: Selection policy

    Returns:
        SelectionResult. Never raises.
    """
    current = sorted(selection, key=lambda w: w.start_date)

    if actor.is_admin:
        return SelectionResult(weeks=current, outcome="admin_edit")

    if not current:
        if is_selectable(week, actor, current, now, policy):
            return SelectionResult(weeks=[week], outcome="selected")
        return SelectionResult(weeks=current, outcome="refused")

    earliest = current[0]
    latest = current[-1]

    if any(is_same_week(week, w) for w in current):
        if is_same_week(week, earliest) or is_same_week(week, latest):
            return _deselect(week, current, now, policy)
        return SelectionResult(weeks=current, outcome="unchanged")

    if earliest.start_date <= week.start_date <= latest.start_date:
        return SelectionResult(weeks=current, outcome="unchanged")

    if not is_selectable(week, actor, current, now, policy):
        return SelectionResult(weeks=current, outcome="refused")

    anchor = latest if week.start_date < earliest.start_date else earliest
    run = _run_between(timeline, week, anchor)
    for boundary in (week, anchor):
        if not any(is_same_week(boundary, w) for w in run):
            # The boundary replaces timeline weeks composed with other edges
            run = [w for w in run if not _overlapping(w, boundary)]
            run.append(boundary)
    run.sort(key=lambda w: w.start_date)

    if blackout_between(run[0].start_date, run[-1].end_date, policy):
        logger.debug("[SELECTION] Blackout inside the requested stay", week_id=week.id)
        return SelectionResult(weeks=current, outcome="refused")

    if len(run) > policy.max_selection_weeks:
        logger.debug(
            "[SELECTION] Selection too long",
            requested_weeks=len(run),
            max_weeks=policy.max_selection_weeks,
        )
        return SelectionResult(weeks=current, outcome="too_many_weeks")

    return SelectionResult(weeks=run, outcome="extended")
