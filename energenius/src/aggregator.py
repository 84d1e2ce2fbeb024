"""
Periodic aggregator: one scheduling tick of the energy tracker.

Each tick runs, in order:
1. Missed-midnight check against the persisted reset checkpoint.
2. Date-guarded daily reset of every device.
3. Uptime update for every device that is switched on.
4. Additive upsert of the consumption gained this tick into today's
   daily consumption record.

A failure in any step is logged and never propagates to the timer that
invoked the tick. Every step is idempotent or additive and bounded by the
reset guard, so the next tick can safely redo the whole sequence.

``switch_device`` is the user-facing toggle. Switching a device off closes
its running interval and adds that energy to today's record immediately,
since the next tick no longer sees the device as active.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime as dt
import logging
from dataclasses import dataclass, field
from zoneinfo import ZoneInfo

from energenius.src.preferences import LAST_CONSUMPTION_UPDATE, Preferences
from energenius.src.reset import DailyResetReconciler
from energenius.src.store import ConsumptionStore, StoreError
from energenius.src.uptime import DeviceUptimeTracker

logger = logging.getLogger(__name__)


@dataclass
class TickResult:
    """Outcome of one aggregation tick.

    Attributes:
        missed_reset: Whether a catch-up reset ran.
        devices_reset: Devices zeroed by the date-guarded reset.
        devices_updated: Active devices whose uptime was written.
        devices_failed: Active devices skipped after a store error.
        flushed: Consumption added to today's record.
        device_deltas: Per-device share of ``flushed``.
        errors: Short description of each step that failed.
    """

    missed_reset: bool = False
    devices_reset: int = 0
    devices_updated: int = 0
    devices_failed: int = 0
    flushed: float = 0.0
    device_deltas: dict[str, float] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and self.devices_failed == 0


class PeriodicAggregator:
    """Runs the reconcile, track, flush sequence for one user.

    Args:
        store: Consumption store.
        prefs: Preferences for the checkpoint and update timestamps.
        reconciler: Daily reset reconciler.
        tracker: Device uptime tracker.
        tz: Zone defining the local calendar day.
    """

    def __init__(
        self,
        store: ConsumptionStore,
        prefs: Preferences,
        reconciler: DailyResetReconciler,
        tracker: DeviceUptimeTracker,
        tz: ZoneInfo | dt.tzinfo = dt.UTC,
    ) -> None:
        self._store = store
        self._prefs = prefs
        self._reconciler = reconciler
        self._tracker = tracker
        self._tz = tz

    def run_once(self, user_id: str, now: dt.datetime | None = None) -> TickResult:
        """Run one full aggregation tick for *user_id*.

        Store failures are logged and recorded on the result, never raised.
        """
        now = dt.datetime.now(tz=self._tz) if now is None else now.astimezone(self._tz)
        today = now.date()
        result = TickResult()
        log_extra = {"user_id": user_id}

        try:
            result.missed_reset = self._reconciler.check_missed_reset(user_id, now)
        except StoreError as exc:
            logger.warning("Missed-reset check failed: %s", exc, extra=log_extra)
            result.errors.append(f"missed_reset: {exc}")

        try:
            result.devices_reset = self._reconciler.check_and_reset_daily_usage(
                user_id, today=today,
            )
            devices = self._store.get_devices(user_id)
        except StoreError as exc:
            # Without a device list there is nothing to track or flush.
            logger.warning("Aggregation tick aborted: %s", exc, extra=log_extra)
            result.errors.append(f"devices: {exc}")
            return result

        for device in devices:
            if not device.is_active:
                continue
            delta = self._tracker.update_device_uptime(device.id, True, now)
            if delta is None:
                result.devices_failed += 1
                continue
            result.devices_updated += 1
            if delta > 0:
                result.device_deltas[device.id] = delta

        result.flushed = sum(result.device_deltas.values())
        if result.device_deltas:
            try:
                self._store.upsert_daily_consumption(
                    user_id, today, result.flushed, result.device_deltas,
                )
            except StoreError as exc:
                logger.warning(
                    "Consumption flush failed for %s: %s",
                    today.isoformat(), exc, extra=log_extra,
                )
                result.errors.append(f"flush: {exc}")
                result.flushed = 0.0

        self._prefs.set_datetime(LAST_CONSUMPTION_UPDATE, now)
        logger.info(
            "Aggregation tick: %d updated, %d failed, %d reset, %.4f flushed",
            result.devices_updated,
            result.devices_failed,
            result.devices_reset,
            result.flushed,
            extra=log_extra,
        )
        return result

    def switch_device(
        self,
        user_id: str,
        device_id: str,
        active: bool,
        now: dt.datetime | None = None,
    ) -> bool:
        """Switch a device on or off and flush the energy of a closed interval.

        The date-guarded reset runs first so a switch-off after midnight
        only attributes the new day's share to today's record.

        Returns:
            ``True`` if the device was switched. A failed flush is logged
            and still returns ``True``; the device counters hold the energy.
        """
        now = dt.datetime.now(tz=self._tz) if now is None else now.astimezone(self._tz)
        today = now.date()
        log_extra = {"user_id": user_id, "device_id": device_id}

        try:
            self._reconciler.check_and_reset_daily_usage(user_id, today=today)
        except StoreError as exc:
            logger.warning("Switch aborted: %s", exc, extra=log_extra)
            return False

        delta = self._tracker.switch_device(device_id, active, now)
        if delta is None:
            return False
        if delta > 0:
            try:
                self._store.upsert_daily_consumption(
                    user_id, today, delta, {device_id: delta},
                )
            except StoreError as exc:
                logger.warning(
                    "Consumption flush failed for %s: %s",
                    today.isoformat(), exc, extra=log_extra,
                )
        logger.info(
            "Device %s switched %s", device_id, "on" if active else "off",
            extra=log_extra,
        )
        return True
