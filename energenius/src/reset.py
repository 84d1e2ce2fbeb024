"""
Daily reset reconciler and midnight checkpoint.

Resets per-device daily counters once per local calendar day. The reset
is guarded entirely by comparing each device's ``last_reset`` date with
today, so repeated calls on the same day change nothing.

The next midnight boundary is persisted as the reset checkpoint whenever
the midnight alarm is armed. When the process was suspended across that
boundary, ``check_missed_reset`` finds the checkpoint in the past and
runs one catch-up reconciliation.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime as dt
import logging
from zoneinfo import ZoneInfo

from energenius.src.preferences import NEXT_MIDNIGHT_RESET, Preferences
from energenius.src.store import ConsumptionStore, StoreError

logger = logging.getLogger(__name__)

_RESET_FIELDS = {"daily_uptime_s": 0.0, "daily_consumption": 0.0}


def next_midnight(now: dt.datetime) -> dt.datetime:
    """Return the first local midnight strictly after *now*.

    Args:
        now: Timezone-aware current time in the local zone.
    """
    tomorrow = now.date() + dt.timedelta(days=1)
    return dt.datetime.combine(tomorrow, dt.time(), tzinfo=now.tzinfo)


class DailyResetReconciler:
    """Zeroes daily counters at day boundaries.

    Args:
        store: Consumption store holding the device documents.
        prefs: Preferences holding the reset checkpoint.
        tz: Zone defining the local calendar day.
    """

    def __init__(
        self,
        store: ConsumptionStore,
        prefs: Preferences,
        tz: ZoneInfo | dt.tzinfo = dt.UTC,
    ) -> None:
        self._store = store
        self._prefs = prefs
        self._tz = tz

    def _now(self, now: dt.datetime | None) -> dt.datetime:
        if now is None:
            return dt.datetime.now(tz=self._tz)
        return now.astimezone(self._tz)

    def check_and_reset_daily_usage(
        self, user_id: str, today: dt.date | None = None,
    ) -> int:
        """Reset every device of *user_id* not yet reset on *today*.

        Args:
            user_id: Owner of the devices.
            today: Local calendar date; defaults to the current date.

        Returns:
            Number of devices reset.

        Raises:
            StoreError: If the device list cannot be read. A failed write
                for a single device is logged and skipped instead.
        """
        if today is None:
            today = self._now(None).date()

        reset_count = 0
        for device in self._store.get_devices(user_id):
            if device.last_reset == today:
                continue
            try:
                self._store.update_device(
                    device.id, {**_RESET_FIELDS, "last_reset": today},
                )
            except StoreError as exc:
                logger.warning(
                    "Daily reset failed for device %s: %s", device.id, exc,
                    extra={"user_id": user_id, "device_id": device.id},
                )
                continue
            reset_count += 1

        if reset_count:
            logger.info(
                "Reset daily usage of %d device(s) for %s",
                reset_count,
                today.isoformat(),
                extra={"user_id": user_id},
            )
        return reset_count

    # ------------------------------------------------------------------
    # Checkpoint
    # ------------------------------------------------------------------

    def read_checkpoint(self) -> dt.datetime | None:
        """Return the persisted next-midnight boundary, if any."""
        checkpoint = self._prefs.get_datetime(NEXT_MIDNIGHT_RESET)
        if checkpoint is not None and checkpoint.tzinfo is None:
            checkpoint = checkpoint.replace(tzinfo=self._tz)
        return checkpoint

    def arm_checkpoint(self, now: dt.datetime | None = None) -> dt.datetime:
        """Persist the next midnight after *now* as the reset checkpoint.

        Returns:
            The boundary that was persisted.
        """
        boundary = next_midnight(self._now(now))
        self._prefs.set_datetime(NEXT_MIDNIGHT_RESET, boundary)
        return boundary

    def check_missed_reset(
        self, user_id: str, now: dt.datetime | None = None,
    ) -> bool:
        """Run one catch-up reset if the checkpoint lies in the past.

        At most one reconciliation runs regardless of how many midnights
        passed; the checkpoint is then moved to the next midnight after
        *now*. No checkpoint means no catch-up.

        Returns:
            ``True`` if a catch-up reconciliation ran.

        Raises:
            StoreError: If the reconciliation could not list devices. The
                checkpoint is left in place so the next call retries.
        """
        now = self._now(now)
        checkpoint = self.read_checkpoint()
        if checkpoint is None or now <= checkpoint:
            return False

        self.check_and_reset_daily_usage(user_id, today=now.date())
        boundary = self.arm_checkpoint(now)
        logger.info(
            "Performed missed midnight reset (checkpoint %s, next %s)",
            checkpoint.isoformat(),
            boundary.isoformat(),
            extra={"user_id": user_id},
        )
        return True
