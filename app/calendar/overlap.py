"""Overlap resolution for week customizations.

Creating or re-dating a customization must leave stored customizations
pairwise non-overlapping. Every existing customization that intersects the
target interval [S, E] falls into exactly one case:

    contained        S <= s and e <= E      delete it
    extends_before   s < S <= e <= E        trim its end to S-1
    extends_after    S <= s <= E < e        trim its start to E+1
    split            s < S and E < e        keep [s, S-1], add [E+1, e]

Flexible check-in dates follow the days they fall on; dates now covered by
the target are dropped.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from enum import Enum

from loguru import logger

from app.calendar.dates import add_days, intervals_overlap
from app.calendar.errors import InvalidFlexibleDateError, InvalidRangeError
from app.calendar.types import (
    CreateOperation,
    CustomizationDraft,
    DeleteOperation,
    Operation,
    UpdateOperation,
    WeekCustomization,
)

# Deletes free their span first, trims next, inserts last
_APPLY_RANK = {"delete": 0, "update": 1, "create": 2}


class OverlapCase(str, Enum):
    """How an existing customization intersects the target interval."""

    CONTAINED = "contained"
    EXTENDS_BEFORE = "extends_before"
    EXTENDS_AFTER = "extends_after"
    SPLIT = "split"


def classify_overlap(
    target_start: date,
    target_end: date,
    existing_start: date,
    existing_end: date,
) -> OverlapCase | None:
    """Classify an existing interval against the target, or None if they do not intersect."""
    if not intervals_overlap(target_start, target_end, existing_start, existing_end):
        return None
    if existing_start < target_start and existing_end > target_end:
        return OverlapCase.SPLIT
    if existing_start < target_start:
        return OverlapCase.EXTENDS_BEFORE
    if existing_end > target_end:
        return OverlapCase.EXTENDS_AFTER
    return OverlapCase.CONTAINED


def validate_draft(draft: CustomizationDraft) -> None:
    """Reject inverted intervals and flexible dates outside the interval.

    Raises:
        InvalidRangeError: end_date before start_date
        InvalidFlexibleDateError: a flexible check-in date outside [start_date, end_date]
    """
    if draft.start_date > draft.end_date:
        raise InvalidRangeError(draft.start_date, draft.end_date)

    outside = [d for d in draft.flexible_checkin_dates if not draft.start_date <= d <= draft.end_date]
    if outside:
        raise InvalidFlexibleDateError(
            f"Flexible check-in dates {[d.isoformat() for d in sorted(outside)]} are outside "
            f"{draft.start_date.isoformat()}..{draft.end_date.isoformat()}"
        )


def _adjustments(draft: CustomizationDraft, existing: WeekCustomization, case: OverlapCase) -> list[Operation]:
    target_start = draft.start_date
    target_end = draft.end_date
    flexible = sorted(existing.flexible_checkin_dates)

    if case is OverlapCase.CONTAINED:
        return [DeleteOperation(reason=case.value, customization_id=existing.id)]

    if case is OverlapCase.EXTENDS_BEFORE:
        return [
            UpdateOperation(
                reason=case.value,
                customization_id=existing.id,
                end_date=add_days(target_start, -1),
                flexible_checkin_dates=[d for d in flexible if d < target_start],
            )
        ]

    if case is OverlapCase.EXTENDS_AFTER:
        return [
            UpdateOperation(
                reason=case.value,
                customization_id=existing.id,
                start_date=add_days(target_end, 1),
                flexible_checkin_dates=[d for d in flexible if d > target_end],
            )
        ]

    return [
        UpdateOperation(
            reason=case.value,
            customization_id=existing.id,
            end_date=add_days(target_start, -1),
            flexible_checkin_dates=[d for d in flexible if d < target_start],
        ),
        CreateOperation(
            reason=case.value,
            start_date=add_days(target_end, 1),
            end_date=existing.end_date,
            status=existing.status,
            name=existing.name,
            link=existing.link,
            flexible_checkin_dates=[d for d in flexible if d > target_end],
        ),
    ]


def plan_overlap_resolution(
    draft: CustomizationDraft,
    existing: Iterable[WeekCustomization],
    *,
    customization_id: str | None = None,
) -> list[Operation]:
    """Compute the operations that store ``draft`` without any overlap.

    Args:
        draft: Requested interval and fields
        existing: Stored customizations (non-intersecting ones are ignored)
        customization_id: Id of the customization being edited, None when creating.
            The edited customization is never treated as an overlap of itself.

    Returns:
        The target create (or update, when editing) first, then one or two
        operations per overlapping customization in start-date order.

    Raises:
        InvalidRangeError: end_date before start_date
        InvalidFlexibleDateError: a flexible date outside the interval
    """
    validate_draft(draft)

    operations: list[Operation] = []
    flexible = sorted(set(draft.flexible_checkin_dates))
    if customization_id is None:
        operations.append(
            CreateOperation(
                reason="target",
                start_date=draft.start_date,
                end_date=draft.end_date,
                status=draft.status,
                name=draft.name,
                link=draft.link,
                flexible_checkin_dates=flexible,
            )
        )
    else:
        operations.append(
            UpdateOperation(
                reason="target",
                customization_id=customization_id,
                start_date=draft.start_date,
                end_date=draft.end_date,
                status=draft.status,
                name=draft.name,
                link=draft.link,
                flexible_checkin_dates=flexible,
            )
        )

    for customization in sorted(existing, key=lambda c: (c.start_date, c.end_date)):
        if customization.id == customization_id:
            continue
        case = classify_overlap(draft.start_date, draft.end_date, customization.start_date, customization.end_date)
        if case is None:
            continue
        logger.debug(
            "[OVERLAP] Classified overlap",
            customization_id=customization.id,
            case=case.value,
            existing_start=customization.start_date.isoformat(),
            existing_end=customization.end_date.isoformat(),
        )
        operations.extend(_adjustments(draft, customization, case))

    logger.info(
        "[OVERLAP] Planned resolution",
        target_start=draft.start_date.isoformat(),
        target_end=draft.end_date.isoformat(),
        editing=customization_id,
        operations_count=len(operations),
    )
    return operations


def order_for_apply(operations: Iterable[Operation]) -> list[Operation]:
    """Stable reorder so deletes and trims run before the target is written."""
    return sorted(operations, key=lambda op: (_APPLY_RANK[op.kind], op.reason == "target"))
