"""Engine and session plumbing for the project store."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import Session, sessionmaker

logger = logging.getLogger(__name__)

DEFAULT_DB_FILENAME = "budget_engine.db"
DB_URL_ENV_VAR = "BUDGET_DB_URL"

_engine: Engine | None = None


def default_db_path() -> Path:
    return Path.cwd() / "data" / DEFAULT_DB_FILENAME


def get_database_url() -> str:
    """Return `BUDGET_DB_URL`, or a SQLite file under ./data when unset."""
    env_url = os.getenv(DB_URL_ENV_VAR)
    if env_url:
        return env_url
    return f"sqlite:///{default_db_path()}"


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for `database_url`.

    SQLite engines get their parent directory created, are shareable across
    FastAPI's worker threads, and enforce foreign keys so cost-memory rows
    disappear with their project even outside the ORM cascade.
    """
    parsed_url = make_url(database_url)
    if not parsed_url.drivername.startswith("sqlite"):
        return create_engine(database_url, future=True)

    _ensure_sqlite_directory(parsed_url)
    engine = create_engine(database_url, future=True, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def get_engine() -> Engine:
    """Create (or return) the process-wide engine."""
    global _engine
    if _engine is None:
        _engine = build_engine(get_database_url())
        logger.info({"event": "database_engine_created", "driver": _engine.url.drivername})
    return _engine


def reset_engine() -> None:
    """Dispose the process-wide engine so the next call re-reads `BUDGET_DB_URL`."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    future=True,
)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency for DB sessions (yield pattern)."""
    session = SessionLocal(bind=get_engine())
    try:
        yield session
    finally:
        session.close()


def init_db() -> None:
    """Create the project and cost-memory tables if they are missing."""
    from .models import Base  # noqa: WPS433 (import inside function)

    Base.metadata.create_all(bind=get_engine())


def _ensure_sqlite_directory(url: URL) -> None:
    database = url.database
    if not database or database == ":memory:":
        return

    db_path = Path(database)
    if not db_path.is_absolute():
        db_path = (Path.cwd() / db_path).resolve()
    db_path.parent.mkdir(parents=True, exist_ok=True)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()
