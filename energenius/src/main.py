"""
Tracker daemon entry point.

Wires the consumption store, preferences, reset reconciler, uptime
tracker and aggregator into a ``TrackerScheduler`` driven by the
background backend selected for this platform, then blocks until
SIGTERM/SIGINT.

Startup order:
1. Structured logging and settings.
2. Optional update check (never blocks on failure).
3. Resolve the user (``USER_ID`` or the ``current_user_id`` preference).
4. Backfill missing history days, start the scheduler.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging
import signal
import threading
from dataclasses import dataclass
from datetime import datetime
from types import FrameType

from energenius.src.aggregator import PeriodicAggregator
from energenius.src.config import TrackerSettings
from energenius.src.db.session import create_engine, init_schema
from energenius.src.health import TickHealth, write_health_file
from energenius.src.history import backfill_missing_days
from energenius.src.logging_config import setup_logging
from energenius.src.preferences import CURRENT_USER_ID, Preferences
from energenius.src.reset import DailyResetReconciler
from energenius.src.scheduler import (
    BackgroundCapability,
    TrackerScheduler,
    select_backend,
)
from energenius.src.store import SqlConsumptionStore, StoreError
from energenius.src.update_check import UpdateChecker
from energenius.src.uptime import DeviceUptimeTracker

logger = logging.getLogger(__name__)

# Module-level shutdown event shared between signal handlers and the main loop.
shutdown_event = threading.Event()

# Seconds between health file writes while idle.
_HEALTH_INTERVAL_S = 30


@dataclass
class TrackerApp:
    """Everything the daemon builds at startup."""

    settings: TrackerSettings
    store: SqlConsumptionStore
    prefs: Preferences
    backend: BackgroundCapability
    health: TickHealth
    scheduler: TrackerScheduler


def build_app(settings: TrackerSettings) -> TrackerApp:
    """Construct the tracker components from *settings*."""
    engine = create_engine(settings.store_url)
    init_schema(engine)
    store = SqlConsumptionStore(engine)
    prefs = Preferences(settings.preferences_path)
    tz = settings.tz

    reconciler = DailyResetReconciler(store, prefs, tz=tz)
    tracker = DeviceUptimeTracker(store, tz=tz, storage_unit=settings.storage_energy_unit)
    aggregator = PeriodicAggregator(store, prefs, reconciler, tracker, tz=tz)
    backend = select_backend(settings, prefs)
    health = TickHealth()
    scheduler = TrackerScheduler(
        backend,
        aggregator,
        reconciler,
        store,
        prefs,
        tz=tz,
        resume_threshold_s=settings.resume_catchup_threshold_s,
        backfill_lookback_days=settings.backfill_lookback_days,
        health=health,
    )
    return TrackerApp(settings, store, prefs, backend, health, scheduler)


def _check_for_updates(app: TrackerApp) -> None:
    if not app.settings.update_check_url:
        return
    checker = UpdateChecker(
        app.prefs,
        app.settings.update_check_url,
        app.settings.app_version,
        app.settings.build_number,
        platform=app.settings.platform,
    )
    checker.refresh()


def start_session(app: TrackerApp, user_id: str) -> None:
    """Backfill history for *user_id* and start its scheduler."""
    try:
        backfill_missing_days(
            app.store,
            user_id,
            datetime.now(tz=app.settings.tz).date(),
            app.settings.backfill_lookback_days,
        )
    except StoreError as exc:
        logger.warning("Startup backfill failed: %s", exc, extra={"user_id": user_id})
    app.scheduler.start(user_id)


def _signal_handler(
    signum: int,
    _frame: FrameType | None,
) -> None:
    """Handle SIGTERM/SIGINT by signalling shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, shutting down", sig_name)
    shutdown_event.set()


def main() -> None:
    """Tracker daemon entry point.

    Loads configuration from environment variables, builds the
    components and starts tracking for the configured user. The main
    thread refreshes the health file until ``shutdown_event`` is set.
    """
    setup_logging()
    settings = TrackerSettings()
    app = build_app(settings)

    signal.signal(signal.SIGTERM, _signal_handler)
    signal.signal(signal.SIGINT, _signal_handler)

    _check_for_updates(app)

    user_id = settings.user_id or app.prefs.get_str(CURRENT_USER_ID)
    if user_id:
        start_session(app, user_id)
    else:
        logger.warning("No signed-in user; tracker idle until USER_ID is set")

    try:
        while not shutdown_event.is_set():
            write_health_file(
                app.health,
                app.prefs,
                settings.health_file_path,
                backend_name=app.backend.name,
            )
            shutdown_event.wait(_HEALTH_INTERVAL_S)
    finally:
        # Leave current_user_id in place so the next start resumes the session.
        app.backend.cancel_all()
        app.prefs.close()
        logger.info("Tracker stopped")


if __name__ == "__main__":
    main()
