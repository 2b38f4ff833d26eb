from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""


class CalendarConfigRow(Base):
    """Recurring weekly cadence for standard weeks.

    A single row is expected. Weekdays use 0=Sunday .. 6=Saturday.
    """

    __tablename__ = "calendar_config"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    check_in_day: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    check_out_day: Mapped[int] = mapped_column(Integer, nullable=False, default=6)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


class WeekCustomizationRow(Base):
    """Persisted override replacing the standard week for a date span.

    Rows never overlap each other: every write goes through overlap resolution.
    """

    __tablename__ = "week_customizations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(String, nullable=True)
    link: Mapped[str | None] = mapped_column(String, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="visible")  # default, visible, hidden, deleted
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    flexible_checkins: Mapped[list[FlexibleCheckinRow]] = relationship(
        back_populates="week_customization",
        cascade="all, delete-orphan",
        order_by="FlexibleCheckinRow.allowed_checkin_date",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_week_customizations_range", "start_date", "end_date"),
    )


class FlexibleCheckinRow(Base):
    """Additional permitted check-in date inside a customized week."""

    __tablename__ = "flexible_checkins"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    week_customization_id: Mapped[str] = mapped_column(
        String,
        ForeignKey("week_customizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    allowed_checkin_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    week_customization: Mapped[WeekCustomizationRow] = relationship(back_populates="flexible_checkins")


class BlackoutWeekRow(Base):
    """Date range closed to non-admin booking."""

    __tablename__ = "blackout_weeks"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    start_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))
