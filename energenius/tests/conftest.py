"""
Shared test fixtures for tracker tests.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime as dt
from collections.abc import Iterator
from pathlib import Path

import pytest

from energenius.src.db.session import create_engine, init_schema
from energenius.src.models import Device
from energenius.src.preferences import Preferences
from energenius.src.store import SqlConsumptionStore

# All TrackerSettings environment variable names, used for cleanup.
_ALL_TRACKER_ENV_VARS = (
    "STORE_URL",
    "PREFERENCES_PATH",
    "USER_ID",
    "BACKEND",
    "FOREGROUND_INTERVAL_S",
    "FALLBACK_INTERVAL_S",
    "RESUME_CATCHUP_THRESHOLD_S",
    "TIMEZONE",
    "STORAGE_ENERGY_UNIT",
    "UPDATE_CHECK_URL",
    "APP_VERSION",
    "BUILD_NUMBER",
    "PLATFORM",
    "HEALTH_FILE_PATH",
    "BACKFILL_LOOKBACK_DAYS",
)

USER_ID = "user-1"


@pytest.fixture(autouse=True)
def _clean_tracker_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Remove all tracker env vars and isolate from .env files before each test."""
    for var in _ALL_TRACKER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def store() -> SqlConsumptionStore:
    """A consumption store on a fresh in-memory SQLite database."""
    engine = create_engine("sqlite://")
    init_schema(engine)
    return SqlConsumptionStore(engine)


@pytest.fixture()
def prefs(tmp_path: Path) -> Iterator[Preferences]:
    """Preferences backed by a temporary SQLite file."""
    preferences = Preferences(tmp_path / "prefs.db")
    yield preferences
    preferences.close()


def at(hour: int, minute: int = 0, day: int = 13, month: int = 2) -> dt.datetime:
    """UTC timestamp on 2026-<month>-<day> at hour:minute."""
    return dt.datetime(2026, month, day, hour, minute, tzinfo=dt.UTC)


def make_device(
    device_id: str = "dev-1",
    user_id: str = USER_ID,
    power_rating_w: float = 100.0,
    last_active: dt.datetime | None = None,
    last_reset: dt.date | None = None,
    **fields,
) -> Device:
    """Return a Device with sensible defaults for tests."""
    return Device(
        id=device_id,
        user_id=user_id,
        model=f"Model {device_id}",
        power_rating_w=power_rating_w,
        last_active=last_active,
        last_reset=last_reset,
        **fields,
    )
