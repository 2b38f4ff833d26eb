"""Request and response bodies for the calendar API. Dates are YYYY-MM-DD."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from app.calendar.types import Operation, Week, WeekStatus


class WeeksResponse(BaseModel):
    """Response for GET /calendar/weeks."""

    start_date: date
    end_date: date
    weeks: list[Week] = Field(default_factory=list)


class ConfigUpdateRequest(BaseModel):
    """Body for PUT /calendar/config. Omitted weekdays keep their stored value."""

    check_in_weekday: int | None = Field(default=None, description="0=Sunday .. 6=Saturday")
    check_out_weekday: int | None = Field(default=None, description="0=Sunday .. 6=Saturday")


class CustomizationRequest(BaseModel):
    """Body for POST /calendar/customizations."""

    start_date: date
    end_date: date
    status: WeekStatus = WeekStatus.VISIBLE
    name: str | None = None
    link: str | None = None
    flexible_checkin_dates: list[date] = Field(default_factory=list)


class ResolutionResponse(BaseModel):
    """Operations applied to store a customization, target first."""

    operations: list[Operation] = Field(default_factory=list)


class DeleteResponse(BaseModel):
    customization_id: str
    deleted: bool


class SelectableRequest(BaseModel):
    """Body for POST /calendar/selectable."""

    week: Week
    selection: list[Week] = Field(default_factory=list)
    now: datetime | None = Field(default=None, description="Defaults to the server clock")


class SelectableResponse(BaseModel):
    week_id: str
    selectable: bool


class SelectionRequest(BaseModel):
    """Body for POST /calendar/selection.

    ``timeline`` is optional; without it the weeks between the click and the
    current selection are composed server-side.
    """

    week: Week
    selection: list[Week] = Field(default_factory=list)
    timeline: list[Week] | None = None
    now: datetime | None = None
