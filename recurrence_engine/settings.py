from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping

from recurrence_engine.calendar_math import MONDAY

WEEKDAY_NAMES = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}
DEFAULT_MAX_PREVIEW_DAYS = 3660


@dataclass(frozen=True)
class CalendarSettings:
    first_weekday: int = MONDAY

    def __post_init__(self) -> None:
        if not 0 <= self.first_weekday <= 6:
            raise ValueError("first_weekday must be between 0 (Monday) and 6 (Sunday).")


@dataclass(frozen=True)
class AppSettings:
    calendar: CalendarSettings = field(default_factory=CalendarSettings)
    database_url: str = "sqlite:///./recurrence.db"
    frontend_origin: str = "http://localhost:3000"
    max_preview_days: int = DEFAULT_MAX_PREVIEW_DAYS
    log_level: int = logging.INFO


def parse_first_weekday(value: str | None) -> int:
    if value is None:
        return MONDAY
    normalized = value.strip().lower()
    if normalized.isdigit():
        number = int(normalized)
        if 0 <= number <= 6:
            return number
        raise ValueError("First weekday must be between 0 and 6.")
    for name, number in WEEKDAY_NAMES.items():
        if normalized and name.startswith(normalized) and len(normalized) >= 3:
            return number
    raise ValueError(f"Unknown weekday: {value}")


def _first_weekday_or_default(value: str | None) -> int:
    try:
        return parse_first_weekday(value)
    except ValueError:
        return MONDAY


def _positive_int_or_default(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value.strip())
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _log_level_or_default(value: str | None) -> int:
    if not value:
        return logging.INFO
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def load_settings(environ: Mapping[str, str] | None = None) -> AppSettings:
    env = os.environ if environ is None else environ
    return AppSettings(
        calendar=CalendarSettings(
            first_weekday=_first_weekday_or_default(env.get("RECURRENCE_FIRST_WEEKDAY")),
        ),
        database_url=env.get("DATABASE_URL", "sqlite:///./recurrence.db"),
        frontend_origin=env.get("FRONTEND_ORIGIN", "http://localhost:3000"),
        max_preview_days=_positive_int_or_default(
            env.get("RECURRENCE_MAX_PREVIEW_DAYS"), DEFAULT_MAX_PREVIEW_DAYS
        ),
        log_level=_log_level_or_default(env.get("LOG_LEVEL")),
    )
