"""Customization store.

``CustomizationRepository`` is the narrow interface the engine depends on;
``SqlCustomizationRepository`` implements it on a SQLAlchemy session. The
repository never commits: the caller owns the transaction (see
``app.db.session.get_session``).
"""

from __future__ import annotations

from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import date
from typing import Protocol

from loguru import logger
from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import DisconnectionError, OperationalError
from sqlalchemy.orm import Session

from app.calendar.errors import (
    ConfigMissingError,
    CustomizationNotFoundError,
    InvalidRangeError,
    RepositoryUnavailableError,
)
from app.calendar.types import DEFAULT_CALENDAR_CONFIG, CalendarConfig, DateInterval, WeekCustomization, WeekStatus
from app.db.models import BlackoutWeekRow, CalendarConfigRow, FlexibleCheckinRow, WeekCustomizationRow

UPDATABLE_FIELDS = frozenset({"start_date", "end_date", "status", "name", "link", "flexible_checkin_dates"})


class CustomizationRepository(Protocol):
    """Persistence operations the calendar engine relies on."""

    def list_customizations(
        self,
        start: date,
        end: date,
        *,
        exclude_id: str | None = None,
        include_deleted: bool = True,
    ) -> list[WeekCustomization]: ...

    def get_customization(self, customization_id: str) -> WeekCustomization | None: ...

    def create_customization(
        self,
        start: date,
        end: date,
        status: WeekStatus,
        name: str | None = None,
        link: str | None = None,
        flexible_dates: Iterable[date] = (),
        created_by: str | None = None,
    ) -> WeekCustomization: ...

    def update_customization(self, customization_id: str, **fields: object) -> WeekCustomization: ...

    def delete_customization(self, customization_id: str) -> bool: ...

    def get_config(self) -> CalendarConfig | None: ...

    def update_config(
        self,
        check_in_weekday: int | None = None,
        check_out_weekday: int | None = None,
    ) -> CalendarConfig: ...

    def list_blackouts(self, start: date, end: date) -> list[DateInterval]: ...

    def add_blackout(self, start: date, end: date, reason: str | None = None) -> DateInterval: ...


@contextmanager
def _store_errors(operation: str) -> Generator[None, None, None]:
    """Translate connectivity failures into RepositoryUnavailableError."""
    try:
        yield
    except (OperationalError, DisconnectionError) as e:
        logger.error(f"[CALENDAR] Customization store unavailable during {operation}: {e}")
        raise RepositoryUnavailableError(f"Customization store unavailable during {operation}") from e


def _to_customization(row: WeekCustomizationRow) -> WeekCustomization:
    return WeekCustomization(
        id=row.id,
        start_date=row.start_date,
        end_date=row.end_date,
        name=row.name,
        link=row.link,
        status=WeekStatus(row.status),
        flexible_checkin_dates=sorted(f.allowed_checkin_date for f in row.flexible_checkins),
        created_by=row.created_by,
        created_at=row.created_at,
    )


def _flexible_rows(dates: Iterable[date], created_by: str | None) -> list[FlexibleCheckinRow]:
    return [FlexibleCheckinRow(allowed_checkin_date=d, created_by=created_by) for d in sorted(set(dates))]


class SqlCustomizationRepository:
    """SQLAlchemy-backed customization repository bound to one session."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def _get_row(self, customization_id: str) -> WeekCustomizationRow:
        row = self.session.get(WeekCustomizationRow, customization_id)
        if row is None:
            raise CustomizationNotFoundError(customization_id)
        return row

    def list_customizations(
        self,
        start: date,
        end: date,
        *,
        exclude_id: str | None = None,
        include_deleted: bool = True,
    ) -> list[WeekCustomization]:
        """Customizations intersecting [start, end], ordered by start date."""
        query = select(WeekCustomizationRow).where(
            WeekCustomizationRow.start_date <= end,
            WeekCustomizationRow.end_date >= start,
        )
        if exclude_id:
            query = query.where(WeekCustomizationRow.id != exclude_id)
        if not include_deleted:
            query = query.where(WeekCustomizationRow.status != WeekStatus.DELETED.value)
        query = query.order_by(WeekCustomizationRow.start_date, WeekCustomizationRow.end_date)

        with _store_errors("list_customizations"):
            rows = list(self.session.execute(query).scalars().all())

        logger.debug(f"Found {len(rows)} customizations in range {start} to {end}")
        return [_to_customization(row) for row in rows]

    def get_customization(self, customization_id: str) -> WeekCustomization | None:
        with _store_errors("get_customization"):
            row = self.session.get(WeekCustomizationRow, customization_id)
        return _to_customization(row) if row is not None else None

    def create_customization(
        self,
        start: date,
        end: date,
        status: WeekStatus,
        name: str | None = None,
        link: str | None = None,
        flexible_dates: Iterable[date] = (),
        created_by: str | None = None,
    ) -> WeekCustomization:
        if start > end:
            raise InvalidRangeError(start, end)

        row = WeekCustomizationRow(
            start_date=start,
            end_date=end,
            status=WeekStatus(status).value,
            name=name,
            link=link,
            created_by=created_by,
        )
        row.flexible_checkins = _flexible_rows(flexible_dates, created_by)

        with _store_errors("create_customization"):
            self.session.add(row)
            self.session.flush()

        logger.info(
            "[CALENDAR] Customization created",
            customization_id=row.id,
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            status=row.status,
        )
        return _to_customization(row)

    def update_customization(self, customization_id: str, **fields: object) -> WeekCustomization:
        """Write the given fields.

        ``flexible_checkin_dates`` replaces the full set of flexible dates.

        Raises:
            CustomizationNotFoundError: Unknown id
            InvalidRangeError: The update would invert the interval
            ValueError: Unknown field name
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update customization fields: {sorted(unknown)}")

        with _store_errors("update_customization"):
            row = self._get_row(customization_id)

            new_start = fields.get("start_date", row.start_date)
            new_end = fields.get("end_date", row.end_date)
            if new_start > new_end:
                raise InvalidRangeError(new_start, new_end)

            for field in ("start_date", "end_date", "name", "link"):
                if field in fields:
                    setattr(row, field, fields[field])
            if "status" in fields and fields["status"] is not None:
                row.status = WeekStatus(fields["status"]).value
            if "flexible_checkin_dates" in fields and fields["flexible_checkin_dates"] is not None:
                row.flexible_checkins = _flexible_rows(fields["flexible_checkin_dates"], row.created_by)

            self.session.flush()

        logger.info(
            "[CALENDAR] Customization updated",
            customization_id=customization_id,
            fields=sorted(fields),
        )
        return _to_customization(row)

    def delete_customization(self, customization_id: str) -> bool:
        """Hard-delete a customization and its flexible check-ins."""
        with _store_errors("delete_customization"):
            row = self.session.get(WeekCustomizationRow, customization_id)
            if row is None:
                logger.warning("[CALENDAR] Customization to delete not found", customization_id=customization_id)
                return False
            self.session.delete(row)
            self.session.flush()

        logger.info("[CALENDAR] Customization deleted", customization_id=customization_id)
        return True

    def get_config(self) -> CalendarConfig | None:
        """Stored cadence, or None when no config row exists.

        Raises:
            ConfigMissingError: The stored row holds invalid weekdays
        """
        with _store_errors("get_config"):
            row = self.session.execute(
                select(CalendarConfigRow).order_by(CalendarConfigRow.created_at).limit(1)
            ).scalar_one_or_none()

        if row is None:
            return None
        try:
            return CalendarConfig(check_in_weekday=row.check_in_day, check_out_weekday=row.check_out_day)
        except ValidationError as e:
            raise ConfigMissingError(f"Stored calendar config is malformed: {e.error_count()} error(s)") from e

    def update_config(
        self,
        check_in_weekday: int | None = None,
        check_out_weekday: int | None = None,
    ) -> CalendarConfig:
        """Change the cadence, creating the config row on first use."""
        with _store_errors("update_config"):
            row = self.session.execute(
                select(CalendarConfigRow).order_by(CalendarConfigRow.created_at).limit(1)
            ).scalar_one_or_none()

            if check_in_weekday is None:
                check_in_weekday = row.check_in_day if row is not None else DEFAULT_CALENDAR_CONFIG.check_in_weekday
            if check_out_weekday is None:
                check_out_weekday = row.check_out_day if row is not None else DEFAULT_CALENDAR_CONFIG.check_out_weekday
            try:
                config = CalendarConfig(check_in_weekday=check_in_weekday, check_out_weekday=check_out_weekday)
            except ValidationError as e:
                raise ConfigMissingError(f"Invalid calendar config: {e.error_count()} error(s)") from e

            if row is None:
                row = CalendarConfigRow()
                self.session.add(row)
            row.check_in_day = config.check_in_weekday
            row.check_out_day = config.check_out_weekday
            self.session.flush()

        logger.info(
            "[CALENDAR] Calendar config updated",
            check_in_weekday=config.check_in_weekday,
            check_out_weekday=config.check_out_weekday,
        )
        return config

    def list_blackouts(self, start: date, end: date) -> list[DateInterval]:
        """Blackout ranges intersecting [start, end]."""
        query = (
            select(BlackoutWeekRow)
            .where(BlackoutWeekRow.start_date <= end, BlackoutWeekRow.end_date >= start)
            .order_by(BlackoutWeekRow.start_date)
        )
        with _store_errors("list_blackouts"):
            rows = list(self.session.execute(query).scalars().all())
        return [DateInterval(start_date=row.start_date, end_date=row.end_date) for row in rows]

    def add_blackout(self, start: date, end: date, reason: str | None = None) -> DateInterval:
        if start > end:
            raise InvalidRangeError(start, end)
        row = BlackoutWeekRow(start_date=start, end_date=end, reason=reason or "Maintenance")
        with _store_errors("add_blackout"):
            self.session.add(row)
            self.session.flush()
        logger.info("[CALENDAR] Blackout added", start_date=start.isoformat(), end_date=end.isoformat())
        return DateInterval(start_date=start, end_date=end)
