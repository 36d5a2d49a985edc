"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None or not raw_value.strip():
        return default
    try:
        return int(raw_value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw_value!r}") from exc


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    house_timezone: str
    max_bedrooms: int
    default_buffer_days: int
    default_min_nights: int
    max_gap_window_days: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests derive copies via `replace`."""
    return Settings(
        app_name=os.getenv("APP_NAME", "Holiday Home Availability"),
        app_version=os.getenv("APP_VERSION", "1.0.0"),
        database_path=Path(os.getenv("DATABASE_PATH", "data/holiday_home.db")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        house_timezone=os.getenv("HOUSE_TIMEZONE", "Europe/London"),
        max_bedrooms=_env_int("MAX_BEDROOMS", 4),
        default_buffer_days=_env_int("DEFAULT_BUFFER_DAYS", 0),
        default_min_nights=_env_int("DEFAULT_MIN_NIGHTS", 1),
        max_gap_window_days=_env_int("MAX_GAP_WINDOW_DAYS", 730),
    )
