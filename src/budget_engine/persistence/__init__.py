"""Persistence primitives for saved projects and the cost memory."""

from .database import (
    DB_URL_ENV_VAR,
    DEFAULT_DB_FILENAME,
    SessionLocal,
    build_engine,
    get_database_url,
    get_engine,
    get_session,
    init_db,
    reset_engine,
)
from .models import Base, CostMemoryEntry, ProjectRecord
from .repository import ProjectRepository

__all__ = [
    "Base",
    "CostMemoryEntry",
    "DB_URL_ENV_VAR",
    "DEFAULT_DB_FILENAME",
    "ProjectRecord",
    "ProjectRepository",
    "SessionLocal",
    "build_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "init_db",
    "reset_engine",
]
