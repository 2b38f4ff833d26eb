"""Domain types for the week timeline engine."""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.calendar.dates import format_week_range, length_in_days


class WeekStatus(str, Enum):
    """Visibility of a week."""

    DEFAULT = "default"
    VISIBLE = "visible"
    HIDDEN = "hidden"
    DELETED = "deleted"


class CalendarConfig(BaseModel):
    """Recurring cadence of standard weeks (0=Sunday .. 6=Saturday)."""

    model_config = ConfigDict(frozen=True)

    check_in_weekday: int = Field(default=0, ge=0, le=6)
    check_out_weekday: int = Field(default=6, ge=0, le=6)


DEFAULT_CALENDAR_CONFIG = CalendarConfig()


class DateInterval(BaseModel):
    """Inclusive range of calendar days."""

    model_config = ConfigDict(frozen=True)

    start_date: date
    end_date: date

    def overlaps(self, start: date, end: date) -> bool:
        return self.start_date <= end and start <= self.end_date


def standard_week_id(start: date, end: date) -> str:
    """Deterministic id for a generated week."""
    return f"week-{start:%Y%m%d}-{end:%Y%m%d}"


class Week(BaseModel):
    """A bookable week interval, generated fresh on every timeline read.

    Attributes:
        id: Customization id for custom weeks, otherwise derived from the dates
        is_partial_week: Week was clipped by the range end or by a customization,
            or covers the days between a customization and the next check-in day
        is_edge_week: First or last week of a composed timeline
        flexible_checkin_dates: Extra permitted arrival days (custom weeks only)
    """

    id: str
    start_date: date
    end_date: date
    status: WeekStatus = WeekStatus.DEFAULT
    name: str | None = None
    link: str | None = None
    is_custom: bool = False
    is_partial_week: bool = False
    is_edge_week: bool = False
    flexible_checkin_dates: list[date] = Field(default_factory=list)

    @classmethod
    def standard(cls, start: date, end: date, *, is_partial_week: bool = False) -> Week:
        return cls(
            id=standard_week_id(start, end),
            start_date=start,
            end_date=end,
            status=WeekStatus.DEFAULT,
            is_partial_week=is_partial_week,
        )

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    @property
    def length_days(self) -> int:
        return length_in_days(self.start_date, self.end_date)

    @property
    def display_name(self) -> str:
        return self.name or format_week_range(self.start_date, self.end_date)


class WeekCustomization(BaseModel):
    """Persisted override for a date span."""

    id: str
    start_date: date
    end_date: date
    name: str | None = None
    link: str | None = None
    status: WeekStatus = WeekStatus.VISIBLE
    flexible_checkin_dates: list[date] = Field(default_factory=list)
    created_by: str | None = None
    created_at: datetime | None = None

    def to_week(self) -> Week:
        return Week(
            id=self.id,
            start_date=self.start_date,
            end_date=self.end_date,
            status=self.status,
            name=self.name,
            link=self.link,
            is_custom=True,
            flexible_checkin_dates=sorted(self.flexible_checkin_dates),
        )


class CustomizationDraft(BaseModel):
    """Requested state of a customization being created or edited."""

    start_date: date
    end_date: date
    status: WeekStatus = WeekStatus.VISIBLE
    name: str | None = None
    link: str | None = None
    flexible_checkin_dates: list[date] = Field(default_factory=list)


class CustomizationUpdate(BaseModel):
    """Partial edit of a customization; only explicitly passed fields change."""

    start_date: date | None = None
    end_date: date | None = None
    status: WeekStatus | None = None
    name: str | None = None
    link: str | None = None
    flexible_checkin_dates: list[date] | None = None

    @property
    def changes_dates(self) -> bool:
        return bool({"start_date", "end_date"} & self.model_fields_set)


class Actor(BaseModel):
    """Who is acting on the calendar."""

    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    is_admin: bool = False


OperationReason = Literal["target", "contained", "extends_before", "extends_after", "split"]


class CreateOperation(BaseModel):
    """Insert a new customization."""

    kind: Literal["create"] = "create"
    reason: OperationReason
    start_date: date
    end_date: date
    status: WeekStatus
    name: str | None = None
    link: str | None = None
    flexible_checkin_dates: list[date] = Field(default_factory=list)


class UpdateOperation(BaseModel):
    """Change fields of an existing customization.

    Only fields explicitly passed at construction are written.
    """

    kind: Literal["update"] = "update"
    reason: OperationReason
    customization_id: str
    start_date: date | None = None
    end_date: date | None = None
    status: WeekStatus | None = None
    name: str | None = None
    link: str | None = None
    flexible_checkin_dates: list[date] | None = None

    def changes(self) -> dict[str, object]:
        """Fields to write, keyed by column name."""
        return {
            field: getattr(self, field)
            for field in sorted(self.model_fields_set)
            if field not in {"kind", "reason", "customization_id"}
        }


class DeleteOperation(BaseModel):
    """Hard-delete a customization (its span reverts to standard weeks)."""

    kind: Literal["delete"] = "delete"
    reason: OperationReason
    customization_id: str


Operation = Annotated[CreateOperation | UpdateOperation | DeleteOperation, Field(discriminator="kind")]
