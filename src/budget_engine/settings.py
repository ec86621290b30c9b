from __future__ import annotations

"""
Environment-driven configuration for the budget engine and its service.

The editor, the HTTP layer and the persistence store all read the same
settings object so nesting limits, snapshot history and search limits stay
consistent without each caller re-parsing environment variables.
"""

import os
from dataclasses import dataclass
from typing import Optional

MAX_DEPTH_ENV = "BUDGET_MAX_DEPTH"
SNAPSHOT_LIMIT_ENV = "BUDGET_SNAPSHOT_LIMIT"
DEFAULT_UNIT_ENV = "BUDGET_DEFAULT_UNIT"
SEARCH_LIMIT_ENV = "BUDGET_SEARCH_LIMIT"
DEFAULT_CURRENCY_ENV = "BUDGET_DEFAULT_CURRENCY"

DEFAULT_MAX_DEPTH = 3
DEFAULT_SNAPSHOT_LIMIT = 4
DEFAULT_SEARCH_LIMIT = 10


class SettingsError(RuntimeError):
    """Raised when engine configuration cannot be constructed."""


@dataclass(frozen=True, slots=True)
class EngineSettings:
    max_depth: int = DEFAULT_MAX_DEPTH
    snapshot_limit: int = DEFAULT_SNAPSHOT_LIMIT
    default_unit: str = "Unid"
    search_limit: int = DEFAULT_SEARCH_LIMIT
    default_currency: str = "PEN"


def load_engine_settings() -> EngineSettings:
    """
    Construct EngineSettings from the environment.

    Unset or blank variables fall back to the defaults; values that do not
    parse, or limits below 1, raise SettingsError.
    """

    max_depth = _parse_positive_int(os.getenv(MAX_DEPTH_ENV), DEFAULT_MAX_DEPTH, MAX_DEPTH_ENV)
    snapshot_limit = _parse_positive_int(os.getenv(SNAPSHOT_LIMIT_ENV), DEFAULT_SNAPSHOT_LIMIT, SNAPSHOT_LIMIT_ENV)
    search_limit = _parse_positive_int(os.getenv(SEARCH_LIMIT_ENV), DEFAULT_SEARCH_LIMIT, SEARCH_LIMIT_ENV)
    default_unit = _parse_text(os.getenv(DEFAULT_UNIT_ENV), "Unid")
    default_currency = _parse_text(os.getenv(DEFAULT_CURRENCY_ENV), "PEN").upper()

    return EngineSettings(
        max_depth=max_depth,
        snapshot_limit=snapshot_limit,
        default_unit=default_unit,
        search_limit=search_limit,
        default_currency=default_currency,
    )


def _parse_positive_int(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        value = int(raw_value)
    except ValueError as exc:
        raise SettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc

    if value < 1:
        raise SettingsError(f"{env_key} must be at least 1 (received '{raw_value}')")
    return value


def _parse_text(raw_value: Optional[str], default: str) -> str:
    candidate = (raw_value or "").strip()
    return candidate or default
