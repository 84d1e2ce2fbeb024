"""
Persisted key/value preferences backed by SQLite.

Holds small session values that must survive process restarts: the
signed-in user, the next scheduled midnight reset, last-update timestamps,
and the user's display unit and currency. Read and write failures are
logged at WARNING and never raised; readers fall back to their default.

Operations:
- get_str / set_str, get_bool / set_bool, get_datetime / set_datetime
- remove(key), close()

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime as dt
import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

# Well-known preference keys.
CURRENT_USER_ID = "current_user_id"
NEXT_MIDNIGHT_RESET = "next_midnight_reset"
LAST_BACKGROUND_UPDATE = "last_background_update"
LAST_CONSUMPTION_UPDATE = "last_consumption_update"
APP_LAST_ACTIVE = "app_last_active"
APP_STATE = "app_state"
ENERGY_UNIT = "energyUnit"
CURRENCY = "currency"
SKIPPED_UPDATE_VERSION = "skipped_update_version"
PENDING_UPDATE = "pending_update"

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS preferences (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);
"""

_UPSERT_SQL = """\
INSERT INTO preferences (key, value) VALUES (:key, :value)
ON CONFLICT(key) DO UPDATE SET value = excluded.value,
    updated_at = datetime('now');
"""

_SELECT_SQL = "SELECT value FROM preferences WHERE key = :key;"

_DELETE_SQL = "DELETE FROM preferences WHERE key = :key;"


class Preferences:
    """Durable string key/value store backed by a SQLite database.

    Uses WAL journal mode so the timer threads and the main thread can
    read and write concurrently. A lock serializes use of the shared
    connection.

    Args:
        path: Filesystem path for the SQLite database file, or
              ``":memory:"``.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = str(path)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute(_CREATE_TABLE_SQL)
        self._conn.commit()

    # ------------------------------------------------------------------
    # Strings
    # ------------------------------------------------------------------

    def get_str(self, key: str, default: str | None = None) -> str | None:
        """Return the value stored under *key*, or *default*."""
        try:
            with self._lock:
                row = self._conn.execute(_SELECT_SQL, {"key": key}).fetchone()
        except sqlite3.Error:
            logger.warning("Failed to read preference %s", key, exc_info=True)
            return default
        return row[0] if row is not None else default

    def set_str(self, key: str, value: str) -> bool:
        """Store *value* under *key*.

        Returns:
            ``True`` when the write was committed, ``False`` on failure.
        """
        try:
            with self._lock:
                self._conn.execute(_UPSERT_SQL, {"key": key, "value": value})
                self._conn.commit()
        except sqlite3.Error:
            logger.warning("Failed to write preference %s", key, exc_info=True)
            return False
        return True

    def remove(self, key: str) -> bool:
        """Delete *key*. Removing an absent key is a no-op."""
        try:
            with self._lock:
                self._conn.execute(_DELETE_SQL, {"key": key})
                self._conn.commit()
        except sqlite3.Error:
            logger.warning("Failed to remove preference %s", key, exc_info=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Typed helpers
    # ------------------------------------------------------------------

    def get_bool(self, key: str, default: bool = False) -> bool:
        raw = self.get_str(key)
        if raw is None:
            return default
        return raw == "true"

    def set_bool(self, key: str, value: bool) -> bool:
        return self.set_str(key, "true" if value else "false")

    def get_datetime(self, key: str) -> dt.datetime | None:
        """Return the ISO-8601 timestamp under *key*.

        Unparseable values are logged and treated as absent.
        """
        raw = self.get_str(key)
        if raw is None:
            return None
        try:
            return dt.datetime.fromisoformat(raw)
        except ValueError:
            logger.warning("Preference %s holds an invalid timestamp: %r", key, raw)
            return None

    def set_datetime(self, key: str, value: dt.datetime) -> bool:
        return self.set_str(key, value.isoformat())

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        with self._lock:
            self._conn.close()
