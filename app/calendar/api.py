"""Calendar API endpoints: week timeline, customizations and selection."""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from datetime import date

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from loguru import logger

from app.calendar.errors import (
    ConfigMissingError,
    CustomizationNotFoundError,
    InvalidDateError,
    InvalidFlexibleDateError,
    InvalidRangeError,
    OverlapResolutionPartialFailureError,
    RepositoryUnavailableError,
)
from app.calendar.schemas import (
    ConfigUpdateRequest,
    CustomizationRequest,
    DeleteResponse,
    ResolutionResponse,
    SelectableRequest,
    SelectableResponse,
    SelectionRequest,
    WeeksResponse,
)
from app.calendar.selection import SelectionResult
from app.calendar.service import CalendarEngine
from app.calendar.types import Actor, CalendarConfig, CustomizationDraft, CustomizationUpdate
from app.config.settings import settings

router = APIRouter(prefix="/calendar", tags=["calendar"])

_calendar_engine: CalendarEngine | None = None


def get_calendar_engine() -> CalendarEngine:
    """Shared engine so the calendar config cache survives across requests."""
    global _calendar_engine
    if _calendar_engine is None:
        _calendar_engine = CalendarEngine()
    return _calendar_engine


def get_actor(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> Actor:
    """Acting user from the X-User-Id header; identity is established upstream."""
    return Actor(user_id=x_user_id, is_admin=bool(x_user_id) and x_user_id in settings.admin_ids)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        logger.warning("[CALENDAR] Admin operation refused", user_id=actor.user_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")


@contextmanager
def _calendar_errors() -> Generator[None, None, None]:
    """Map calendar errors to HTTP responses."""
    try:
        yield
    except CustomizationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except (InvalidRangeError, InvalidDateError, InvalidFlexibleDateError, ConfigMissingError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except OverlapResolutionPartialFailureError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "message": str(e),
                "failed_operation": e.failed_operation.model_dump(mode="json"),
                "applied_count": len(e.applied),
            },
        ) from e
    except RepositoryUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e)) from e


@router.get("/weeks", response_model=WeeksResponse)
def get_weeks(
    start: date = Query(..., description="First day of the range (YYYY-MM-DD)"),
    end: date = Query(..., description="Last day of the range (YYYY-MM-DD)"),
    include_deleted: bool = Query(default=False, description="Admins only: include withdrawn weeks"),
    actor: Actor = Depends(get_actor),
    engine: CalendarEngine = Depends(get_calendar_engine),
):
    """Composed week timeline for a date range.

    An inverted range returns no weeks rather than an error.
    """
    with _calendar_errors():
        weeks = engine.get_weeks(start, end, include_deleted=include_deleted and actor.is_admin)
    return WeeksResponse(start_date=start, end_date=end, weeks=weeks)


@router.get("/config", response_model=CalendarConfig)
def get_config(engine: CalendarEngine = Depends(get_calendar_engine)):
    with _calendar_errors():
        return engine.get_config()


@router.put("/config", response_model=CalendarConfig)
def update_config(
    request: ConfigUpdateRequest,
    actor: Actor = Depends(get_actor),
    engine: CalendarEngine = Depends(get_calendar_engine),
):
    """Change the check-in/check-out cadence (admin only)."""
    _require_admin(actor)
    logger.info("[CALENDAR] Config update requested", user_id=actor.user_id)
    with _calendar_errors():
        return engine.update_config(
            check_in_weekday=request.check_in_weekday,
            check_out_weekday=request.check_out_weekday,
        )


@router.post("/customizations", response_model=ResolutionResponse, status_code=status.HTTP_201_CREATED)
def create_customization(
    request: CustomizationRequest,
    actor: Actor = Depends(get_actor),
    engine: CalendarEngine = Depends(get_calendar_engine),
):
    """Create a customization, trimming or removing the customizations it overlaps.

    Args:
        request: Interval and fields of the new customization
        actor: Acting admin
        engine: Calendar engine

    Returns:
        Applied operations, target first

    Raises:
        HTTPException: 403 for non-admins, 422 for invalid intervals, 409 when
            the resolution was rolled back, 503 when the store is unreachable
    """
    _require_admin(actor)
    with _calendar_errors():
        operations = engine.create_customization(CustomizationDraft(**request.model_dump()), actor=actor)
    return ResolutionResponse(operations=operations)


@router.patch("/customizations/{customization_id}", response_model=ResolutionResponse)
def update_customization(
    customization_id: str,
    request: CustomizationUpdate,
    actor: Actor = Depends(get_actor),
    engine: CalendarEngine = Depends(get_calendar_engine),
):
    _require_admin(actor)
    with _calendar_errors():
        operations = engine.update_customization(customization_id, request, actor=actor)
    return ResolutionResponse(operations=operations)


@router.delete("/customizations/{customization_id}", response_model=DeleteResponse)
def delete_customization(
    customization_id: str,
    actor: Actor = Depends(get_actor),
    engine: CalendarEngine = Depends(get_calendar_engine),
):
    """Hard-delete a customization; its span reverts to standard weeks."""
    _require_admin(actor)
    with _calendar_errors():
        deleted = engine.delete_customization(customization_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Week customization {customization_id} not found",
        )
    return DeleteResponse(customization_id=customization_id, deleted=True)


@router.post("/selectable", response_model=SelectableResponse)
def check_selectable(
    request: SelectableRequest,
    actor: Actor = Depends(get_actor),
    engine: CalendarEngine = Depends(get_calendar_engine),
):
    with _calendar_errors():
        selectable = engine.is_selectable(request.week, actor, request.selection, now=request.now)
    return SelectableResponse(week_id=request.week.id, selectable=selectable)


@router.post("/selection", response_model=SelectionResult)
def apply_selection(
    request: SelectionRequest,
    actor: Actor = Depends(get_actor),
    engine: CalendarEngine = Depends(get_calendar_engine),
):
    """Apply a click on a week to the current selection."""
    with _calendar_errors():
        return engine.apply_selection(
            request.week,
            request.selection,
            actor,
            now=request.now,
            timeline=request.timeline,
        )
