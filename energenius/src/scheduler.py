"""
Background execution backends and the per-session tracker scheduler.

``BackgroundCapability`` is the one interface the tracker needs from the
host: a repeating callback and a single-shot delayed callback. Two
implementations exist and one is chosen at startup by ``select_backend``:

1. **ForegroundServiceBackend**: a dedicated worker thread that keeps
   running while the app is in the background. Ticks every 5 minutes.
2. **BestEffortTimerBackend**: chained ``threading.Timer``s for runtimes
   without a background service. Ticks every 2 minutes; ticks missed
   while suspended are compensated by ``TrackerScheduler.on_resume``.

``TrackerScheduler`` owns every timer for one signed-in user. It is
created once at startup, started on sign-in and stopped on sign-out.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import abc
import datetime as dt
import logging
import threading
from collections.abc import Callable
from typing import Protocol
from zoneinfo import ZoneInfo

from energenius.src.aggregator import PeriodicAggregator, TickResult
from energenius.src.config import TrackerSettings
from energenius.src.health import TickHealth
from energenius.src.history import backfill_missing_days
from energenius.src.preferences import (
    APP_LAST_ACTIVE,
    APP_STATE,
    CURRENT_USER_ID,
    LAST_BACKGROUND_UPDATE,
    Preferences,
)
from energenius.src.reset import DailyResetReconciler
from energenius.src.store import ConsumptionStore, StoreError

logger = logging.getLogger(__name__)

# Platforms that can keep a foreground service alive in the background.
FOREGROUND_PLATFORMS = frozenset({"android"})


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


def _guarded(callback: Callable[[], None], name: str) -> Callable[[], None]:
    """Wrap *callback* so an exception is logged instead of killing the timer."""

    def run() -> None:
        try:
            callback()
        except Exception:
            logger.exception("Unexpected error in %s", name)

    return run


class BackgroundCapability(abc.ABC):
    """Host facility for repeating and delayed callbacks.

    Attributes:
        name: Short backend name for logs and health output.
        interval_s: Tick interval the backend is configured for.
    """

    name: str = "abstract"

    def __init__(self, interval_s: float) -> None:
        self.interval_s = interval_s
        self._lock = threading.Lock()
        self._timers: list[threading.Timer] = []

    @abc.abstractmethod
    def start_periodic(self, interval_s: float, callback: Callable[[], None]) -> None:
        """Invoke *callback* every *interval_s* seconds until cancelled."""

    def schedule_once(
        self, delay_s: float, callback: Callable[[], None],
    ) -> TimerHandle:
        """Invoke *callback* once after *delay_s* seconds.

        Returns:
            A handle whose ``cancel()`` disarms the callback.
        """
        timer = threading.Timer(max(delay_s, 0.0), _guarded(callback, "delayed callback"))
        timer.daemon = True
        timer.name = f"{self.name}-once"
        with self._lock:
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()
        return timer

    def cancel_all(self) -> None:
        """Disarm every pending callback owned by this backend."""
        with self._lock:
            timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()


class ForegroundServiceBackend(BackgroundCapability):
    """Worker-thread backend that survives app backgrounding.

    After each periodic tick the time is recorded under
    ``last_background_update``.

    Args:
        interval_s: Tick interval, 300 s by default.
        prefs: Preferences for the last-update timestamp.
        tz: Zone of the recorded timestamp.
    """

    name = "foreground"

    def __init__(
        self,
        interval_s: float = 300,
        prefs: Preferences | None = None,
        tz: ZoneInfo | dt.tzinfo = dt.UTC,
    ) -> None:
        super().__init__(interval_s)
        self._prefs = prefs
        self._tz = tz
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def _loop(self, interval_s: float, callback: Callable[[], None], stop: threading.Event) -> None:
        while not stop.wait(interval_s):
            try:
                callback()
            except Exception:
                logger.exception("Unexpected error in foreground service tick")
                continue
            if self._prefs is not None:
                self._prefs.set_datetime(
                    LAST_BACKGROUND_UPDATE, dt.datetime.now(tz=self._tz),
                )

    def start_periodic(self, interval_s: float, callback: Callable[[], None]) -> None:
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._loop,
            args=(interval_s, callback, self._stop),
            daemon=True,
            name="foreground-service",
        )
        self._thread.start()

    def cancel_all(self) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        super().cancel_all()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5)


class BestEffortTimerBackend(BackgroundCapability):
    """Chained-timer backend for runtimes without a background service.

    Timers stop while the process is suspended; the scheduler's resume
    handler catches up.
    """

    name = "timer"

    def __init__(self, interval_s: float = 120) -> None:
        super().__init__(interval_s)
        self._active = False

    def _arm(self, interval_s: float, callback: Callable[[], None]) -> None:
        def fire() -> None:
            try:
                callback()
            except Exception:
                logger.exception("Unexpected error in periodic timer tick")
            with self._lock:
                active = self._active
            if active:
                self._arm(interval_s, callback)

        timer = threading.Timer(interval_s, fire)
        timer.daemon = True
        timer.name = "timer-periodic"
        with self._lock:
            if not self._active:
                return
            self._timers = [t for t in self._timers if t.is_alive()]
            self._timers.append(timer)
        timer.start()

    def start_periodic(self, interval_s: float, callback: Callable[[], None]) -> None:
        with self._lock:
            self._active = True
        self._arm(interval_s, callback)

    def cancel_all(self) -> None:
        with self._lock:
            self._active = False
        super().cancel_all()


def select_backend(
    settings: TrackerSettings, prefs: Preferences | None = None,
) -> BackgroundCapability:
    """Pick the background backend for this runtime.

    ``auto`` uses the foreground service on platforms that support one
    and best-effort timers everywhere else.
    """
    backend = settings.backend
    if backend == "auto":
        backend = "foreground" if settings.platform in FOREGROUND_PLATFORMS else "timer"
    if backend == "foreground":
        return ForegroundServiceBackend(
            interval_s=settings.foreground_interval_s, prefs=prefs, tz=settings.tz,
        )
    return BestEffortTimerBackend(interval_s=settings.fallback_interval_s)


class TrackerScheduler:
    """Owns the periodic tick and midnight alarm of one user session.

    Args:
        backend: Background execution facility.
        aggregator: Runs one aggregation tick.
        reconciler: Daily reset reconciler and checkpoint owner.
        store: Consumption store, used for resume backfill.
        prefs: Session preferences.
        tz: Zone defining the local calendar day.
        resume_threshold_s: Time away after which a resume catches up.
        backfill_lookback_days: Days scanned by the resume backfill.
        health: Optional tick health recorder.
        clock: Returns the current time; defaults to the wall clock.
    """

    def __init__(
        self,
        backend: BackgroundCapability,
        aggregator: PeriodicAggregator,
        reconciler: DailyResetReconciler,
        store: ConsumptionStore,
        prefs: Preferences,
        tz: ZoneInfo | dt.tzinfo = dt.UTC,
        resume_threshold_s: float = 120,
        backfill_lookback_days: int = 30,
        health: TickHealth | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._aggregator = aggregator
        self._reconciler = reconciler
        self._store = store
        self._prefs = prefs
        self._tz = tz
        self._resume_threshold_s = resume_threshold_s
        self._backfill_lookback_days = backfill_lookback_days
        self._health = health
        self._clock = clock or (lambda: dt.datetime.now(tz=self._tz))
        self._lock = threading.RLock()
        self._user_id: str | None = None
        self._midnight: TimerHandle | None = None

    @property
    def user_id(self) -> str | None:
        return self._user_id

    @property
    def running(self) -> bool:
        return self._user_id is not None

    def _now(self, now: dt.datetime | None = None) -> dt.datetime:
        return (now or self._clock()).astimezone(self._tz)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def start(self, user_id: str) -> None:
        """Start tracking for *user_id*.

        Catches up a missed midnight first, then arms the periodic tick
        and the midnight alarm.
        """
        if self.running:
            self.stop()
        now = self._now()
        with self._lock:
            self._user_id = user_id
        self._prefs.set_str(CURRENT_USER_ID, user_id)
        self._prefs.set_datetime(APP_LAST_ACTIVE, now)

        try:
            self._reconciler.check_missed_reset(user_id, now)
        except StoreError as exc:
            logger.warning("Startup missed-reset check failed: %s", exc)

        self._backend.start_periodic(self._backend.interval_s, self.tick)
        self._arm_midnight()
        logger.info(
            "Tracking started with %s backend, tick every %ss",
            self._backend.name,
            self._backend.interval_s,
            extra={"user_id": user_id},
        )

    def stop(self) -> None:
        """Cancel every timer and forget the signed-in user."""
        with self._lock:
            user_id, self._user_id = self._user_id, None
            self._midnight = None
        self._backend.cancel_all()
        self._prefs.remove(CURRENT_USER_ID)
        if user_id is not None:
            logger.info("Tracking stopped", extra={"user_id": user_id})

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _arm_midnight(self, now: dt.datetime | None = None) -> None:
        now = self._now(now)
        with self._lock:
            if not self.running:
                return
            if self._midnight is not None:
                self._midnight.cancel()
            boundary = self._reconciler.arm_checkpoint(now)
            delay = (
                boundary.astimezone(dt.UTC) - now.astimezone(dt.UTC)
            ).total_seconds()
            self._midnight = self._backend.schedule_once(delay, self._on_midnight)
        hours, rem = divmod(int(delay), 3600)
        logger.info(
            "Midnight reset timer set for %d hours and %d minutes from now",
            hours,
            rem // 60,
        )

    def _on_midnight(self) -> None:
        user_id = self._user_id
        if user_id is None:
            return
        now = self._now()
        try:
            self._reconciler.check_and_reset_daily_usage(user_id, today=now.date())
            logger.info("Midnight reset performed", extra={"user_id": user_id})
        except StoreError as exc:
            logger.warning("Midnight reset failed: %s", exc, extra={"user_id": user_id})
        self._arm_midnight(now)

    def tick(self, now: dt.datetime | None = None) -> TickResult | None:
        """Run one aggregation tick for the signed-in user.

        Returns:
            The tick result, or ``None`` when nobody is signed in.
        """
        user_id = self._user_id
        if user_id is None:
            return None
        now = self._now(now)
        result = self._aggregator.run_once(user_id, now)
        if self._health is not None:
            self._health.record(result, now)
        if result.missed_reset:
            self._arm_midnight(now)
        return result

    # ------------------------------------------------------------------
    # App lifecycle
    # ------------------------------------------------------------------

    def on_pause(self, now: dt.datetime | None = None) -> None:
        """Record when the app went to the background."""
        if not self.running:
            return
        self._prefs.set_datetime(APP_LAST_ACTIVE, self._now(now))
        self._prefs.set_str(APP_STATE, "paused")

    def on_resume(self, now: dt.datetime | None = None) -> TickResult | None:
        """Catch up after the app returns from the background.

        When the app was away longer than the resume threshold, missing
        history days are backfilled and a missed midnight is reset before
        anything else. A tick always follows.
        """
        user_id = self._user_id
        if user_id is None:
            return None
        now = self._now(now)
        self._prefs.set_str(APP_STATE, "resumed")

        last_active = self._prefs.get_datetime(APP_LAST_ACTIVE)
        if last_active is not None and last_active.tzinfo is None:
            last_active = last_active.replace(tzinfo=self._tz)
        away_s = 0.0
        if last_active is not None:
            away_s = (
                now.astimezone(dt.UTC) - last_active.astimezone(dt.UTC)
            ).total_seconds()

        if away_s > self._resume_threshold_s:
            try:
                backfill_missing_days(
                    self._store, user_id, now.date(), self._backfill_lookback_days,
                )
                if self._reconciler.check_missed_reset(user_id, now):
                    self._arm_midnight(now)
                    logger.info(
                        "App resume: performed missed midnight reset",
                        extra={"user_id": user_id},
                    )
            except StoreError as exc:
                logger.warning("Resume catch-up failed: %s", exc, extra={"user_id": user_id})

        result = self.tick(now)
        self._prefs.set_datetime(APP_LAST_ACTIVE, now)
        return result
