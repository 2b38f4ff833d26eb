from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from fastapi import HTTPException
from loguru import logger
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, sessionmaker

from app.config.settings import settings


def _validate_postgresql_driver() -> None:
    """Validate PostgreSQL driver is installed when using PostgreSQL.

    Must actually import psycopg2 (not just find_spec) because SQLAlchemy
    will try to import it when creating the engine.
    """
    try:
        import psycopg2  # noqa: F401

        logger.info("PostgreSQL driver (psycopg2) is available")
    except ImportError as e:
        logger.error("PostgreSQL driver (psycopg2) is not installed. Install it with: pip install psycopg2-binary")
        raise ImportError("PostgreSQL driver required. Install with: pip install psycopg2-binary") from e


def test_database_connection() -> None:
    """Test database connection on startup."""
    try:
        with _get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection test successful")
    except Exception as e:
        logger.error(f"Database connection test failed: {e}")
        raise


# Lazy initialization to avoid import-time database connections
_engine = None
_SessionLocal = None


def _get_engine():
    """Get or create the database engine (lazy initialization)."""
    global _engine
    if _engine is None:
        logger.info(f"Initializing database engine: {settings.database_url}")

        is_postgresql = "postgres" in settings.database_url.lower()
        if is_postgresql:
            _validate_postgresql_driver()
        else:
            logger.warning("Using SQLite database (local development only)")

        connect_args = {}
        if "sqlite" in settings.database_url.lower():
            connect_args = {"check_same_thread": False}
        elif is_postgresql:
            connect_args = {
                "connect_timeout": 10,
                "application_name": "week-timeline",
            }

        _engine = create_engine(
            settings.database_url,
            connect_args=connect_args,
            echo=False,
            pool_pre_ping=True,
            pool_recycle=3600,
        )
        logger.info("Database engine initialized")
    return _engine


def get_engine():
    """Get or create the database engine (public API)."""
    return _get_engine()


def _get_session_local():
    """Get or create the session factory (lazy initialization)."""
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_get_engine())
        logger.info("Database session factory initialized")
    return _SessionLocal


@contextmanager
def get_session() -> Generator[Session, None, None]:
    """Get a transactional database session.

    Everything done inside the block is committed together on exit, or rolled
    back together if the block raises.

    - HTTPException and calendar business errors: rolled back and re-raised quietly
    - Other exceptions: logged as database errors, rolled back and re-raised
    """
    session = _get_session_local()()
    try:
        yield session
        # Flushed work leaves dirty/new empty but the transaction still needs committing
        session.commit()
        logger.debug("Database session committed")
    except HTTPException:
        session.rollback()
        raise
    except Exception as e:
        # Import here to avoid circular imports
        from app.calendar.errors import CalendarError

        if isinstance(e, CalendarError):
            logger.debug(f"{type(e).__name__} in session, rolling back")
            session.rollback()
            raise
        logger.error(f"Database session error, rolling back: {e}. Error type: {type(e).__name__}")
        session.rollback()
        raise
    finally:
        session.close()
