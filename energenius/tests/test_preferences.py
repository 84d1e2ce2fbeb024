"""
Unit tests for the SQLite-backed preferences.

Tests verify:
- String/bool/datetime values round-trip and persist across instances.
- Missing keys return the caller's default.
- Invalid timestamps read as absent.
- SQLite failures are logged and reported as defaults, never raised.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime as dt
import logging
import sqlite3
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from energenius.src.preferences import (
    CURRENT_USER_ID,
    NEXT_MIDNIGHT_RESET,
    Preferences,
)


class TestRoundTrip:
    def test_set_and_get_str(self, prefs: Preferences) -> None:
        assert prefs.set_str(CURRENT_USER_ID, "u-1") is True
        assert prefs.get_str(CURRENT_USER_ID) == "u-1"

    def test_overwrite(self, prefs: Preferences) -> None:
        prefs.set_str("energyUnit", "kWh")
        prefs.set_str("energyUnit", "J")
        assert prefs.get_str("energyUnit") == "J"

    def test_default_for_missing(self, prefs: Preferences) -> None:
        assert prefs.get_str("currency", "EGP") == "EGP"
        assert prefs.get_bool("realTimeSync", True) is True

    def test_bool(self, prefs: Preferences) -> None:
        prefs.set_bool("has_pending_update", True)
        assert prefs.get_bool("has_pending_update") is True
        prefs.set_bool("has_pending_update", False)
        assert prefs.get_bool("has_pending_update", True) is False

    def test_datetime(self, prefs: Preferences) -> None:
        value = dt.datetime(2026, 2, 14, 0, 0, tzinfo=dt.UTC)
        prefs.set_datetime(NEXT_MIDNIGHT_RESET, value)
        assert prefs.get_datetime(NEXT_MIDNIGHT_RESET) == value

    def test_invalid_datetime_is_none(
        self, prefs: Preferences, caplog: pytest.LogCaptureFixture,
    ) -> None:
        prefs.set_str(NEXT_MIDNIGHT_RESET, "tomorrow")
        with caplog.at_level(logging.WARNING):
            assert prefs.get_datetime(NEXT_MIDNIGHT_RESET) is None
        assert "invalid timestamp" in caplog.text

    def test_remove(self, prefs: Preferences) -> None:
        prefs.set_str(CURRENT_USER_ID, "u-1")
        prefs.remove(CURRENT_USER_ID)
        assert prefs.get_str(CURRENT_USER_ID) is None

    def test_remove_absent_key(self, prefs: Preferences) -> None:
        assert prefs.remove("never-set") is True

    def test_persists_across_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "persist.db"
        first = Preferences(path)
        first.set_str(CURRENT_USER_ID, "u-9")
        first.close()

        second = Preferences(path)
        assert second.get_str(CURRENT_USER_ID) == "u-9"
        second.close()


class TestFailures:
    @pytest.fixture()
    def broken(self, prefs: Preferences) -> Preferences:
        conn = MagicMock()
        conn.execute.side_effect = sqlite3.OperationalError("disk I/O error")
        prefs._conn = conn
        return prefs

    def test_read_failure_returns_default(
        self, broken: Preferences, caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING):
            assert broken.get_str(CURRENT_USER_ID, "fallback") == "fallback"
        assert "Failed to read preference" in caplog.text

    def test_write_failure_returns_false(self, broken: Preferences) -> None:
        assert broken.set_str(CURRENT_USER_ID, "u-1") is False

    def test_remove_failure_returns_false(self, broken: Preferences) -> None:
        assert broken.remove(CURRENT_USER_ID) is False
