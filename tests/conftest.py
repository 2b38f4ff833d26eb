"""Root conftest for all tests.

This file makes shared fixtures available across all test modules.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from app.calendar.selectability import SelectionPolicy
from app.calendar.service import CalendarEngine
from app.db.models import Base


# Enable foreign key constraints for SQLite
@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    """Enable foreign key constraints in SQLite connections."""
    try:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
    except Exception:
        pass


@pytest.fixture(scope="function")
def db_engine(tmp_path, monkeypatch):
    """
    Provides an isolated SQLite database per test.

    This fixture:
    - Creates a fresh SQLite database file under tmp_path
    - Creates all tables from Base.metadata
    - Patches the lazy engine in app.db.session so get_session() runs real
      commit/rollback against it
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'calendar.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)

    import app.db.session as session_module

    monkeypatch.setattr(session_module, "_engine", engine)
    monkeypatch.setattr(session_module, "_SessionLocal", None)

    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture(scope="function")
def db_session(db_engine):
    """Session for seeding and inspecting the test database.

    Usage:
        def test_something(db_session):
            db_session.add(WeekCustomizationRow(...))
            db_session.commit()
    """
    session = sessionmaker(bind=db_engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def fixed_now() -> datetime:
    """Early morning on a spring day, before the booking cutoff hour."""
    return datetime(2025, 3, 1, 6, 0, tzinfo=timezone.utc)


@pytest.fixture
def calendar_engine(db_engine, fixed_now) -> CalendarEngine:
    """Calendar engine on the test database with default policy and a frozen clock."""
    return CalendarEngine(policy=SelectionPolicy(), clock=lambda: fixed_now)
