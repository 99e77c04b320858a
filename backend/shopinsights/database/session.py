"""
Database session management with connection pooling.

Two kinds of sessions:
- Request sessions via the get_db_session FastAPI dependency
- Out-of-request sessions via session_scope(), used by background sync
  runs, the scheduled sync job and the health probe

A background sync run holds its own connection for the whole run, so the
pool is sized by DB_POOL_SIZE / DB_MAX_OVERFLOW rather than fixed.

Usage:
    from shopinsights.database.session import get_db_session, session_scope

    @router.get("/stores")
    async def list_stores(db: Session = Depends(get_db_session)):
        ...

    with session_scope() as session:
        ...
"""

import os
import logging
from contextlib import contextmanager
from typing import AsyncGenerator, Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from fastapi import HTTPException, status

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 5
DEFAULT_MAX_OVERFLOW = 10

# Module-level engine singleton
_engine = None
_SessionLocal = None


def _get_database_url() -> str:
    """
    Get and normalize the database URL from environment.

    postgres:// and postgresql:// URLs are pinned to the psycopg (v3) driver.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ValueError("DATABASE_URL environment variable is not set")

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg://", 1)
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)

    return database_url


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return max(int(raw), 0)
    except ValueError:
        logger.warning("Ignoring invalid integer setting", extra={"setting": name, "value": raw})
        return default


def get_engine():
    """
    Get or create the database engine singleton.

    SQLite (local runs) gets a thread-shareable connection; PostgreSQL
    gets a pre-pinged, recycled pool sized from the environment.
    """
    global _engine
    if _engine is None:
        try:
            database_url = _get_database_url()
            if database_url.startswith("sqlite"):
                _engine = create_engine(
                    database_url,
                    connect_args={"check_same_thread": False},
                )
            else:
                _engine = create_engine(
                    database_url,
                    pool_size=_int_env("DB_POOL_SIZE", DEFAULT_POOL_SIZE),
                    max_overflow=_int_env("DB_MAX_OVERFLOW", DEFAULT_MAX_OVERFLOW),
                    pool_pre_ping=True,  # Verify connection health
                    pool_recycle=1800,   # Recycle connections after 30 minutes
                )
            logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
        except ValueError as e:
            logger.error("Failed to create database engine", extra={"error": str(e)})
            raise
    return _engine


def get_session_factory() -> sessionmaker:
    """Get or create the session factory singleton."""
    global _SessionLocal
    if _SessionLocal is None:
        engine = get_engine()
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=engine
        )
    return _SessionLocal


def reset_engine() -> None:
    """Dispose the engine and forget the singletons (tests, config reload)."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


async def get_db_session() -> AsyncGenerator[Session, None]:
    """
    FastAPI dependency for database sessions.

    Creates a new session for each request and ensures proper cleanup.
    Raises HTTP 503 if database is not configured.
    """
    try:
        SessionLocal = get_session_factory()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured"
        )

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@contextmanager
def session_scope(factory: sessionmaker = None) -> Iterator[Session]:
    """
    Session for work outside a request.

    Rolls back on error and always closes. Committing is left to the
    caller, since sync runs commit page by page.

    Args:
        factory: Session factory (default: the application's)

    Raises:
        ValueError: If DATABASE_URL is not set and no factory is given
    """
    session = (factory or get_session_factory())()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
