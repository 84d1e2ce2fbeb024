"""
Tracker health reporting: last tick outcome, reset checkpoint, session.

``TickHealth`` records the outcome of each aggregation tick.
``get_health_status()`` combines it with the persisted reset checkpoint
and the signed-in user into a dict, and ``write_health_file()`` writes
that dict as JSON for container healthchecks.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import datetime as dt
import json
import logging
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

from energenius.src.preferences import (
    CURRENT_USER_ID,
    LAST_CONSUMPTION_UPDATE,
    NEXT_MIDNIGHT_RESET,
    Preferences,
)

if TYPE_CHECKING:
    from energenius.src.aggregator import TickResult

logger = logging.getLogger(__name__)

# Default health file path (inside the Docker volume).
HEALTH_FILE_PATH = "/data/health.json"


class TickHealth:
    """Thread-safe record of the most recent aggregation tick."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last_ok: bool | None = None
        self._last_monotonic: float | None = None
        self._last_at: dt.datetime | None = None
        self._consecutive_failures = 0

    def record(self, result: TickResult, now: dt.datetime) -> None:
        """Record *result* as the latest tick, finished at *now*."""
        with self._lock:
            self._last_ok = result.ok
            self._last_monotonic = time.monotonic()
            self._last_at = now
            if result.ok:
                self._consecutive_failures = 0
            else:
                self._consecutive_failures += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            elapsed = None
            if self._last_monotonic is not None:
                elapsed = round(time.monotonic() - self._last_monotonic, 1)
            return {
                "last_tick_ok": self._last_ok,
                "last_tick_at": self._last_at.isoformat() if self._last_at else None,
                "last_tick_elapsed_s": elapsed,
                "consecutive_failures": self._consecutive_failures,
            }


def get_health_status(
    health: TickHealth,
    prefs: Preferences,
    backend_name: str | None = None,
) -> dict[str, Any]:
    """Build a health status dict for the tracker.

    Checks:
    - **last_tick_ok** / **last_tick_elapsed_s**: outcome and age of the
      most recent tick (``None`` before the first tick).
    - **consecutive_failures**: ticks in a row that reported errors.
    - **next_midnight_reset**: the persisted reset checkpoint.
    - **user_id**: the signed-in user, if any.

    Args:
        health: Tick recorder shared with the scheduler.
        prefs: Session preferences.
        backend_name: Name of the active background backend.

    Returns:
        Dict with health status fields.
    """
    status = health.snapshot()
    status.update(
        {
            "backend": backend_name,
            "user_id": prefs.get_str(CURRENT_USER_ID),
            "next_midnight_reset": prefs.get_str(NEXT_MIDNIGHT_RESET),
            "last_consumption_update": prefs.get_str(LAST_CONSUMPTION_UPDATE),
            "checked_at": dt.datetime.now(tz=dt.UTC).isoformat(),
        }
    )
    return status


def write_health_file(
    health: TickHealth,
    prefs: Preferences,
    path: str = HEALTH_FILE_PATH,
    backend_name: str | None = None,
) -> None:
    """Write health status to a JSON file for Docker healthcheck.

    Errors during write are logged but not raised.
    """
    try:
        status = get_health_status(health, prefs, backend_name)
        Path(path).write_text(json.dumps(status), encoding="utf-8")
    except Exception:
        logger.warning(
            "Health check: failed to write health file",
            exc_info=True,
        )
