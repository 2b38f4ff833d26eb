"""Tests for the SQLAlchemy customization repository."""

import inspect
from datetime import date

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from app.calendar.errors import (
    ConfigMissingError,
    CustomizationNotFoundError,
    InvalidRangeError,
    RepositoryUnavailableError,
)
from app.calendar.repository import CustomizationRepository, SqlCustomizationRepository
from app.calendar.types import CalendarConfig, WeekStatus
from app.db.models import CalendarConfigRow, FlexibleCheckinRow


@pytest.fixture
def repo(db_session):
    return SqlCustomizationRepository(db_session)


class TestCustomizationCrud:
    """Test create/read/update/delete of customizations."""

    def test_create_and_get(self, repo):
        created = repo.create_customization(
            date(2025, 3, 8),
            date(2025, 3, 20),
            WeekStatus.VISIBLE,
            name="Spring Gathering",
            link="https://example.org/spring",
            flexible_dates=[date(2025, 3, 12), date(2025, 3, 10), date(2025, 3, 12)],
            created_by="admin-1",
        )

        assert created.id
        assert created.created_at is not None
        fetched = repo.get_customization(created.id)
        assert fetched is not None
        assert fetched.name == "Spring Gathering"
        assert fetched.status == WeekStatus.VISIBLE
        assert fetched.flexible_checkin_dates == [date(2025, 3, 10), date(2025, 3, 12)]
        assert fetched.created_by == "admin-1"

    def test_create_inverted_range_rejected(self, repo):
        with pytest.raises(InvalidRangeError):
            repo.create_customization(date(2025, 3, 20), date(2025, 3, 8), WeekStatus.VISIBLE)

    def test_get_unknown_returns_none(self, repo):
        assert repo.get_customization("missing") is None

    def test_list_by_overlap(self, repo):
        repo.create_customization(date(2025, 3, 1), date(2025, 3, 7), WeekStatus.VISIBLE)
        middle = repo.create_customization(date(2025, 3, 10), date(2025, 3, 16), WeekStatus.HIDDEN)
        repo.create_customization(date(2025, 4, 1), date(2025, 4, 7), WeekStatus.VISIBLE)

        listed = repo.list_customizations(date(2025, 3, 7), date(2025, 3, 10))
        assert [(c.start_date, c.end_date) for c in listed] == [
            (date(2025, 3, 1), date(2025, 3, 7)),
            (date(2025, 3, 10), date(2025, 3, 16)),
        ]

        excluded = repo.list_customizations(date(2025, 3, 1), date(2025, 3, 31), exclude_id=middle.id)
        assert middle.id not in [c.id for c in excluded]

    def test_list_excluding_deleted(self, repo):
        repo.create_customization(date(2025, 3, 1), date(2025, 3, 7), WeekStatus.DELETED)
        assert len(repo.list_customizations(date(2025, 3, 1), date(2025, 3, 31))) == 1
        assert repo.list_customizations(date(2025, 3, 1), date(2025, 3, 31), include_deleted=False) == []

    def test_update_fields(self, repo):
        created = repo.create_customization(
            date(2025, 3, 1),
            date(2025, 3, 14),
            WeekStatus.VISIBLE,
            flexible_dates=[date(2025, 3, 3), date(2025, 3, 10)],
        )

        updated = repo.update_customization(
            created.id,
            end_date=date(2025, 3, 7),
            status=WeekStatus.HIDDEN,
            name="Short",
            flexible_checkin_dates=[date(2025, 3, 3)],
        )

        assert updated.end_date == date(2025, 3, 7)
        assert updated.status == WeekStatus.HIDDEN
        assert updated.name == "Short"
        assert updated.flexible_checkin_dates == [date(2025, 3, 3)]

    def test_update_replaces_flexible_rows(self, repo, db_session):
        created = repo.create_customization(
            date(2025, 3, 1),
            date(2025, 3, 14),
            WeekStatus.VISIBLE,
            flexible_dates=[date(2025, 3, 3), date(2025, 3, 10)],
        )
        repo.update_customization(created.id, flexible_checkin_dates=[date(2025, 3, 5)])

        count = db_session.execute(select(func.count()).select_from(FlexibleCheckinRow)).scalar_one()
        assert count == 1

    def test_update_unknown_raises(self, repo):
        with pytest.raises(CustomizationNotFoundError):
            repo.update_customization("missing", name="x")

    def test_update_inverting_range_raises(self, repo):
        created = repo.create_customization(date(2025, 3, 1), date(2025, 3, 7), WeekStatus.VISIBLE)
        with pytest.raises(InvalidRangeError):
            repo.update_customization(created.id, start_date=date(2025, 3, 9))

    def test_update_unknown_field_raises(self, repo):
        created = repo.create_customization(date(2025, 3, 1), date(2025, 3, 7), WeekStatus.VISIBLE)
        with pytest.raises(ValueError):
            repo.update_customization(created.id, price=100)

    def test_delete_cascades_flexible_dates(self, repo, db_session):
        created = repo.create_customization(
            date(2025, 3, 1),
            date(2025, 3, 7),
            WeekStatus.VISIBLE,
            flexible_dates=[date(2025, 3, 3)],
        )

        assert repo.delete_customization(created.id) is True
        assert repo.get_customization(created.id) is None
        count = db_session.execute(select(func.count()).select_from(FlexibleCheckinRow)).scalar_one()
        assert count == 0

    def test_delete_unknown_returns_false(self, repo):
        assert repo.delete_customization("missing") is False


class TestConfig:
    """Test the stored cadence."""

    def test_no_config_row(self, repo):
        assert repo.get_config() is None

    def test_update_creates_row(self, repo):
        config = repo.update_config(check_in_weekday=6, check_out_weekday=5)
        assert config == CalendarConfig(check_in_weekday=6, check_out_weekday=5)
        assert repo.get_config() == config

    def test_partial_update_keeps_other_weekday(self, repo):
        repo.update_config(check_in_weekday=6, check_out_weekday=5)
        config = repo.update_config(check_out_weekday=4)
        assert config == CalendarConfig(check_in_weekday=6, check_out_weekday=4)

    def test_invalid_weekday_rejected(self, repo):
        with pytest.raises(ConfigMissingError):
            repo.update_config(check_in_weekday=7)

    def test_malformed_stored_row(self, repo, db_session):
        db_session.add(CalendarConfigRow(check_in_day=9, check_out_day=6))
        db_session.flush()
        with pytest.raises(ConfigMissingError):
            repo.get_config()


class TestBlackouts:
    def test_add_and_list(self, repo):
        repo.add_blackout(date(2025, 7, 14), date(2025, 7, 20), reason="Repairs")
        repo.add_blackout(date(2025, 9, 1), date(2025, 9, 7))

        blackouts = repo.list_blackouts(date(2025, 7, 1), date(2025, 7, 31))
        assert [(b.start_date, b.end_date) for b in blackouts] == [(date(2025, 7, 14), date(2025, 7, 20))]

    def test_inverted_blackout_rejected(self, repo):
        with pytest.raises(InvalidRangeError):
            repo.add_blackout(date(2025, 7, 20), date(2025, 7, 14))


class TestStoreUnavailable:
    """Test connectivity failures surface as RepositoryUnavailableError."""

    def test_operational_error_wrapped(self, repo, monkeypatch):
        def fail(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        monkeypatch.setattr(repo.session, "execute", fail)
        with pytest.raises(RepositoryUnavailableError):
            repo.list_customizations(date(2025, 1, 1), date(2025, 1, 31))


class TestRepositoryInterface:
    """Test the SQL repository provides every operation the engine relies on."""

    @pytest.mark.parametrize(
        "name",
        [
            name
            for name, member in vars(CustomizationRepository).items()
            if callable(member) and not name.startswith("_")
        ],
    )
    def test_operation_signature_matches(self, name):
        expected = inspect.signature(getattr(CustomizationRepository, name))
        actual = inspect.signature(getattr(SqlCustomizationRepository, name))
        assert list(actual.parameters) == list(expected.parameters)
