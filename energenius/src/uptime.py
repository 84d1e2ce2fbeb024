"""
Device uptime tracker.

Converts the time a device has been switched on into uptime counters and
derived energy consumption. Each call re-reads the device from the store,
accumulates the time elapsed since its ``last_active`` checkpoint, and
advances the checkpoint to *now* so elapsed time is never counted twice.

Only the part of the elapsed interval that falls inside the current local
day counts toward ``daily_uptime_s``; the full interval always counts
toward ``total_uptime_s``. Daily uptime is capped at 24 h.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime as dt
import logging
from zoneinfo import ZoneInfo

from energenius.src.conversion import convert_energy
from energenius.src.models import SECONDS_PER_DAY, Device
from energenius.src.store import ConsumptionStore, StoreError

logger = logging.getLogger(__name__)


def start_of_day(now: dt.datetime) -> dt.datetime:
    """Return local midnight at the start of *now*'s calendar day."""
    return dt.datetime.combine(now.date(), dt.time(), tzinfo=now.tzinfo)


def consumption_for(uptime_s: float, power_rating_w: float, unit: str) -> float:
    """Energy used by a *power_rating_w* device running *uptime_s* seconds.

    Args:
        uptime_s: Running time in seconds.
        power_rating_w: Rated power in watts.
        unit: Energy unit of the result.

    Returns:
        Energy in *unit*.
    """
    kwh = uptime_s / 3600.0 * power_rating_w / 1000.0
    return convert_energy(kwh, "kWh", unit)


class DeviceUptimeTracker:
    """Accumulates uptime and consumption for switched-on devices.

    Args:
        store: Consumption store holding the device documents.
        tz: Zone defining the local calendar day.
        storage_unit: Energy unit of ``daily_consumption``.
    """

    def __init__(
        self,
        store: ConsumptionStore,
        tz: ZoneInfo | dt.tzinfo = dt.UTC,
        storage_unit: str = "kWh",
    ) -> None:
        self._store = store
        self._tz = tz
        self._storage_unit = storage_unit

    def _now(self, now: dt.datetime | None) -> dt.datetime:
        if now is None:
            return dt.datetime.now(tz=self._tz)
        return now.astimezone(self._tz)

    def _accumulate(self, device: Device, now: dt.datetime) -> tuple[dict, float]:
        """Build the field update for *device* at *now*.

        Returns:
            ``(fields, consumption_delta)``.
        """
        # Durations in UTC: same-zone subtraction ignores DST offset changes.
        now_utc = now.astimezone(dt.UTC)
        last_active = device.last_active.astimezone(dt.UTC)
        day_start = start_of_day(now.astimezone(self._tz)).astimezone(dt.UTC)
        elapsed = max((now_utc - last_active).total_seconds(), 0.0)
        daily_elapsed = max(
            (now_utc - max(last_active, day_start)).total_seconds(), 0.0,
        )

        daily_uptime = min(device.daily_uptime_s + daily_elapsed, SECONDS_PER_DAY)
        daily_consumption = consumption_for(
            daily_uptime, device.power_rating_w, self._storage_unit,
        )
        fields = {
            "daily_uptime_s": daily_uptime,
            "total_uptime_s": device.total_uptime_s + elapsed,
            "daily_consumption": daily_consumption,
            "last_active": now,
        }
        # A reset earlier today leaves daily_consumption at zero.
        delta = max(daily_consumption - device.daily_consumption, 0.0)
        return fields, delta

    def update_device_uptime(
        self,
        device_id: str,
        is_active: bool = True,
        now: dt.datetime | None = None,
    ) -> float | None:
        """Accumulate uptime for an active device.

        A no-op for inactive devices or devices without a ``last_active``
        checkpoint. Store failures are logged and the device is skipped;
        the next scheduled call catches up.

        Args:
            device_id: Device to update.
            is_active: Whether the caller considers the device switched on.
            now: Current time; defaults to the wall clock.

        Returns:
            Consumption added to today's total (in the storage unit),
            ``0.0`` for a no-op, or ``None`` when the store failed.
        """
        if not is_active:
            return 0.0
        now = self._now(now)
        try:
            device = self._store.get_device(device_id)
            if device is None:
                logger.warning("Uptime update skipped: unknown device %s", device_id)
                return 0.0
            if device.last_active is None:
                return 0.0
            fields, delta = self._accumulate(device, now)
            self._store.update_device(device_id, fields)
        except StoreError as exc:
            logger.warning(
                "Uptime update failed for device %s: %s", device_id, exc,
                extra={"device_id": device_id},
            )
            return None

        logger.debug(
            "Device %s daily uptime %.0fs, consumption %.4f %s",
            device_id,
            fields["daily_uptime_s"],
            fields["daily_consumption"],
            self._storage_unit,
            extra={"device_id": device_id},
        )
        return delta

    def switch_device(
        self,
        device_id: str,
        active: bool,
        now: dt.datetime | None = None,
    ) -> float | None:
        """Switch a device on or off.

        Switching on starts a ``last_active`` checkpoint. Switching off
        first accumulates the running interval, then clears the checkpoint.
        The caller owns flushing the returned delta into today's record;
        see ``PeriodicAggregator.switch_device``.

        Returns:
            Consumption added by closing the interval (``0.0`` when
            switching on), or ``None`` on store failure or unknown device.
        """
        now = self._now(now)
        try:
            device = self._store.get_device(device_id)
            if device is None:
                logger.warning("Switch skipped: unknown device %s", device_id)
                return None
            if active:
                if device.last_active is None:
                    self._store.update_device(device_id, {"last_active": now})
                return 0.0
            fields: dict = {}
            delta = 0.0
            if device.last_active is not None:
                fields, delta = self._accumulate(device, now)
            fields["last_active"] = None
            self._store.update_device(device_id, fields)
        except StoreError as exc:
            logger.warning(
                "Switch failed for device %s: %s", device_id, exc,
                extra={"device_id": device_id},
            )
            return None
        return delta
