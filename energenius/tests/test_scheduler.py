"""
Unit tests for the background backends and the tracker scheduler.

Tests verify:
- select_backend picks the foreground service on Android, timers
  elsewhere, and honours an explicit BACKEND.
- The scheduler arms the periodic tick and the midnight alarm on start,
  persists the checkpoint, and cancels everything on stop.
- The midnight alarm resets and re-arms itself, and its delay counts real
  time across a daylight-saving change.
- Resume after a suspension across midnight resets once before
  accumulating new-day uptime; short absences skip the catch-up.
- Real threading backends fire and cancel callbacks.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime as dt
import threading
from collections.abc import Callable
from zoneinfo import ZoneInfo

import pytest
from conftest import USER_ID, at, make_device

from energenius.src.aggregator import PeriodicAggregator
from energenius.src.config import TrackerSettings
from energenius.src.health import TickHealth
from energenius.src.preferences import (
    APP_LAST_ACTIVE,
    APP_STATE,
    CURRENT_USER_ID,
    LAST_BACKGROUND_UPDATE,
    NEXT_MIDNIGHT_RESET,
    Preferences,
)
from energenius.src.reset import DailyResetReconciler
from energenius.src.scheduler import (
    BackgroundCapability,
    BestEffortTimerBackend,
    ForegroundServiceBackend,
    TrackerScheduler,
    select_backend,
)
from energenius.src.store import SqlConsumptionStore
from energenius.src.uptime import DeviceUptimeTracker

_TODAY = dt.date(2026, 2, 13)


class FakeHandle:
    def __init__(self, delay_s: float, callback: Callable[[], None]) -> None:
        self.delay_s = delay_s
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeBackend(BackgroundCapability):
    """Records arm/cancel calls instead of starting threads."""

    name = "fake"

    def __init__(self, interval_s: float = 300) -> None:
        super().__init__(interval_s)
        self.periodic: list[tuple[float, Callable[[], None]]] = []
        self.once: list[FakeHandle] = []
        self.cancelled_all = 0

    def start_periodic(self, interval_s: float, callback: Callable[[], None]) -> None:
        self.periodic.append((interval_s, callback))

    def schedule_once(self, delay_s: float, callback: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(delay_s, callback)
        self.once.append(handle)
        return handle

    def cancel_all(self) -> None:
        self.cancelled_all += 1
        for handle in self.once:
            handle.cancel()


class Clock:
    def __init__(self, now: dt.datetime) -> None:
        self.now = now

    def __call__(self) -> dt.datetime:
        return self.now


@pytest.fixture()
def clock() -> Clock:
    return Clock(at(15, 0))


@pytest.fixture()
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture()
def scheduler(
    store: SqlConsumptionStore, prefs: Preferences, backend: FakeBackend, clock: Clock,
) -> TrackerScheduler:
    reconciler = DailyResetReconciler(store, prefs)
    aggregator = PeriodicAggregator(
        store, prefs, reconciler, DeviceUptimeTracker(store),
    )
    return TrackerScheduler(
        backend,
        aggregator,
        reconciler,
        store,
        prefs,
        resume_threshold_s=120,
        backfill_lookback_days=3,
        health=TickHealth(),
        clock=clock,
    )


class TestSelectBackend:
    def test_auto_on_android_is_foreground(self) -> None:
        backend = select_backend(TrackerSettings(platform="android"))
        assert isinstance(backend, ForegroundServiceBackend)
        assert backend.interval_s == 300

    def test_auto_on_web_is_timer(self) -> None:
        backend = select_backend(TrackerSettings(platform="web"))
        assert isinstance(backend, BestEffortTimerBackend)
        assert backend.interval_s == 120

    def test_explicit_backend_wins(self) -> None:
        backend = select_backend(
            TrackerSettings(platform="android", backend="timer", fallback_interval_s=60),
        )
        assert isinstance(backend, BestEffortTimerBackend)
        assert backend.interval_s == 60


class TestSessionLifecycle:
    def test_start_arms_tick_and_midnight(
        self, scheduler: TrackerScheduler, backend: FakeBackend, prefs: Preferences,
    ) -> None:
        scheduler.start(USER_ID)

        assert scheduler.running
        assert prefs.get_str(CURRENT_USER_ID) == USER_ID
        assert backend.periodic[0][0] == 300
        assert len(backend.once) == 1
        assert backend.once[0].delay_s == pytest.approx(9 * 3600)
        assert prefs.get_datetime(NEXT_MIDNIGHT_RESET) == at(0, 0, day=14)

    def test_stop_cancels_and_forgets_user(
        self, scheduler: TrackerScheduler, backend: FakeBackend, prefs: Preferences,
    ) -> None:
        scheduler.start(USER_ID)
        scheduler.stop()

        assert not scheduler.running
        assert backend.cancelled_all == 1
        assert backend.once[0].cancelled
        assert prefs.get_str(CURRENT_USER_ID) is None
        assert scheduler.tick() is None

    def test_restart_for_other_user_stops_first(
        self, scheduler: TrackerScheduler, backend: FakeBackend,
    ) -> None:
        scheduler.start(USER_ID)
        scheduler.start("user-2")

        assert backend.cancelled_all == 1
        assert scheduler.user_id == "user-2"

    def test_start_catches_up_missed_midnight(
        self,
        scheduler: TrackerScheduler,
        store: SqlConsumptionStore,
        prefs: Preferences,
        clock: Clock,
    ) -> None:
        store.add_device(make_device("d1", last_reset=dt.date(2026, 2, 12), daily_uptime_s=99.0))
        prefs.set_datetime(NEXT_MIDNIGHT_RESET, at(0, 0))

        scheduler.start(USER_ID)

        assert store.get_device("d1").daily_uptime_s == 0.0


class TestMidnightAlarm:
    def test_delay_is_real_time_across_dst(
        self, store: SqlConsumptionStore, prefs: Preferences, backend: FakeBackend,
    ) -> None:
        """From 01:00 EST on 2026-03-08 the next midnight is 22 real hours away."""
        new_york = ZoneInfo("America/New_York")
        reconciler = DailyResetReconciler(store, prefs, tz=new_york)
        scheduler = TrackerScheduler(
            backend,
            PeriodicAggregator(store, prefs, reconciler, DeviceUptimeTracker(store)),
            reconciler,
            store,
            prefs,
            tz=new_york,
            clock=lambda: dt.datetime(2026, 3, 8, 6, 0, tzinfo=dt.UTC),
        )

        scheduler.start(USER_ID)

        assert backend.once[0].delay_s == pytest.approx(22 * 3600)

    def test_alarm_resets_and_rearms(
        self,
        scheduler: TrackerScheduler,
        backend: FakeBackend,
        store: SqlConsumptionStore,
        prefs: Preferences,
        clock: Clock,
    ) -> None:
        store.add_device(make_device("d1", last_reset=_TODAY, daily_uptime_s=500.0))
        scheduler.start(USER_ID)

        clock.now = at(0, 0, day=14)
        backend.once[0].callback()

        assert store.get_device("d1").daily_uptime_s == 0.0
        assert store.get_device("d1").last_reset == dt.date(2026, 2, 14)
        assert len(backend.once) == 2
        assert backend.once[1].delay_s == pytest.approx(24 * 3600)
        assert prefs.get_datetime(NEXT_MIDNIGHT_RESET) == at(0, 0, day=15)

    def test_alarm_after_stop_does_nothing(
        self, scheduler: TrackerScheduler, backend: FakeBackend,
    ) -> None:
        scheduler.start(USER_ID)
        callback = backend.once[0].callback
        scheduler.stop()

        callback()

        assert len(backend.once) == 1


class TestTick:
    def test_tick_runs_aggregation_and_records_health(
        self,
        scheduler: TrackerScheduler,
        backend: FakeBackend,
        store: SqlConsumptionStore,
        clock: Clock,
    ) -> None:
        store.add_device(make_device("d1", last_active=at(15, 0), last_reset=_TODAY))
        scheduler.start(USER_ID)

        clock.now = at(15, 30)
        backend.periodic[0][1]()

        assert store.get_device("d1").daily_uptime_s == pytest.approx(1800.0)
        assert scheduler._health.snapshot()["last_tick_ok"] is True

    def test_tick_rearms_after_missed_reset(
        self,
        scheduler: TrackerScheduler,
        backend: FakeBackend,
        clock: Clock,
    ) -> None:
        scheduler.start(USER_ID)
        first_alarm = backend.once[0]

        clock.now = at(0, 30, day=14)
        result = scheduler.tick()

        assert result.missed_reset is True
        assert first_alarm.cancelled
        assert backend.once[-1].delay_s == pytest.approx(23.5 * 3600)


class TestAppLifecycle:
    def test_pause_records_state(
        self, scheduler: TrackerScheduler, prefs: Preferences, clock: Clock,
    ) -> None:
        scheduler.start(USER_ID)
        clock.now = at(23, 58)

        scheduler.on_pause()

        assert prefs.get_datetime(APP_LAST_ACTIVE) == at(23, 58)
        assert prefs.get_str(APP_STATE) == "paused"

    def test_resume_across_midnight_resets_once_first(
        self,
        scheduler: TrackerScheduler,
        store: SqlConsumptionStore,
        prefs: Preferences,
        clock: Clock,
    ) -> None:
        store.add_device(
            make_device(
                "d1",
                last_active=at(15, 0),
                last_reset=_TODAY,
                daily_uptime_s=3000.0,
            )
        )
        scheduler.start(USER_ID)
        clock.now = at(23, 58)
        scheduler.tick()
        scheduler.on_pause()

        clock.now = at(0, 10, day=14)
        result = scheduler.on_resume()

        device = store.get_device("d1")
        assert device.last_reset == dt.date(2026, 2, 14)
        assert device.daily_uptime_s == pytest.approx(600.0)
        assert result.devices_updated == 1
        # The resume pass already reset; the tick found nothing left to do.
        assert result.missed_reset is False
        assert result.devices_reset == 0
        assert prefs.get_str(APP_STATE) == "resumed"
        assert prefs.get_datetime(APP_LAST_ACTIVE) == at(0, 10, day=14)
        assert prefs.get_datetime(NEXT_MIDNIGHT_RESET) == at(0, 0, day=15)

    def test_resume_backfills_missing_days(
        self,
        scheduler: TrackerScheduler,
        store: SqlConsumptionStore,
        clock: Clock,
    ) -> None:
        scheduler.start(USER_ID)
        scheduler.on_pause()

        clock.now = at(9, 0, day=16)
        scheduler.on_resume()

        days = [
            r.date
            for r in store.get_daily_consumption(
                USER_ID, dt.date(2026, 2, 1), dt.date(2026, 2, 28),
            )
        ]
        assert days == [
            dt.date(2026, 2, 13),
            dt.date(2026, 2, 14),
            dt.date(2026, 2, 15),
        ]

    def test_short_absence_skips_catch_up(
        self,
        scheduler: TrackerScheduler,
        store: SqlConsumptionStore,
        clock: Clock,
    ) -> None:
        scheduler.start(USER_ID)
        scheduler.on_pause()

        clock.now = at(15, 1)
        result = scheduler.on_resume()

        assert result is not None
        assert store.get_daily_consumption(
            USER_ID, dt.date(2026, 2, 1), dt.date(2026, 2, 28),
        ) == []

    def test_resume_without_session(self, scheduler: TrackerScheduler) -> None:
        assert scheduler.on_resume() is None


class TestThreadedBackends:
    def test_timer_backend_repeats_until_cancelled(self) -> None:
        backend = BestEffortTimerBackend(interval_s=0.01)
        fired = threading.Semaphore(0)

        backend.start_periodic(0.01, fired.release)
        assert fired.acquire(timeout=2)
        assert fired.acquire(timeout=2)
        backend.cancel_all()

    def test_schedule_once_fires(self) -> None:
        backend = BestEffortTimerBackend()
        done = threading.Event()

        backend.schedule_once(0.01, done.set)

        assert done.wait(timeout=2)

    def test_cancelled_once_never_fires(self) -> None:
        backend = BestEffortTimerBackend()
        done = threading.Event()

        handle = backend.schedule_once(0.2, done.set)
        handle.cancel()

        assert not done.wait(timeout=0.4)

    def test_callback_error_keeps_timer_alive(self) -> None:
        backend = BestEffortTimerBackend()
        calls: list[int] = []
        done = threading.Event()

        def flaky() -> None:
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            done.set()

        backend.start_periodic(0.01, flaky)
        assert done.wait(timeout=2)
        backend.cancel_all()

    def test_foreground_backend_records_last_update(self, prefs: Preferences) -> None:
        backend = ForegroundServiceBackend(interval_s=0.01, prefs=prefs)
        fired = threading.Event()

        backend.start_periodic(0.01, fired.set)
        assert fired.wait(timeout=2)
        backend.cancel_all()

        assert prefs.get_datetime(LAST_BACKGROUND_UPDATE) is not None
