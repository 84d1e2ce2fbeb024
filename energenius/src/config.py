"""
Tracker configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import field_validator
from pydantic_settings import BaseSettings

from energenius.src.conversion import ENERGY_UNITS


class TrackerSettings(BaseSettings):
    """Energy tracker configuration.

    Attributes:
        store_url: SQLAlchemy URL of the consumption store.
        preferences_path: SQLite file holding key/value preferences.
        user_id: Signed-in user. Falls back to the ``current_user_id``
            preference when empty.
        backend: Background execution facility: ``foreground`` (worker
            thread), ``timer`` (best-effort timers) or ``auto``.
        foreground_interval_s: Tick interval of the foreground backend.
        fallback_interval_s: Tick interval of the best-effort backend.
        resume_catchup_threshold_s: Minimum time away before a resume
            triggers backfill and missed-reset catch-up.
        timezone: IANA zone that defines the local calendar day.
        storage_energy_unit: Unit in which consumption is persisted.
        update_check_url: URL of the latest-version document, if any.
        app_version: Running app version (``major.minor.patch``).
        build_number: Running build number.
        platform: Platform key used to pick the download URL.
        health_file_path: JSON health file for container healthchecks.
        backfill_lookback_days: Days scanned when filling missing records.
    """

    store_url: str = "sqlite:////data/energenius.db"
    preferences_path: str = "/data/preferences.db"
    user_id: str = ""
    backend: Literal["foreground", "timer", "auto"] = "auto"
    foreground_interval_s: int = 300
    fallback_interval_s: int = 120
    resume_catchup_threshold_s: int = 120
    timezone: str = "UTC"
    storage_energy_unit: str = "kWh"
    update_check_url: str = ""
    app_version: str = "1.0.0"
    build_number: int = 1
    platform: str = "android"
    health_file_path: str = "/data/health.json"
    backfill_lookback_days: int = 30

    @field_validator(
        "foreground_interval_s",
        "fallback_interval_s",
        "backfill_lookback_days",
    )
    @classmethod
    def interval_must_be_positive(cls, v: int) -> int:
        """Validate intervals and lookbacks are at least 1."""
        if v < 1:
            raise ValueError("value must be >= 1")
        return v

    @field_validator("resume_catchup_threshold_s")
    @classmethod
    def threshold_must_not_be_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("RESUME_CATCHUP_THRESHOLD_S must be >= 0")
        return v

    @field_validator("timezone")
    @classmethod
    def timezone_must_exist(cls, v: str) -> str:
        """Validate the zone name resolves through zoneinfo."""
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown TIMEZONE: {v!r}") from exc
        return v

    @field_validator("storage_energy_unit")
    @classmethod
    def storage_unit_must_be_known(cls, v: str) -> str:
        if v not in ENERGY_UNITS:
            raise ValueError(
                f"STORAGE_ENERGY_UNIT must be one of {sorted(ENERGY_UNITS)}"
            )
        return v

    @property
    def tz(self) -> ZoneInfo:
        """The configured zone as a ``ZoneInfo``."""
        return ZoneInfo(self.timezone)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


def get_settings() -> TrackerSettings:
    """Create and return a TrackerSettings instance."""
    return TrackerSettings()
