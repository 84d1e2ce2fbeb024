"""
Consumption history views and CSV export.

Builds daily, weekly and monthly series from the daily consumption
records. Every bucket in the requested range is present, with ``0.0``
where no record exists. Values are converted from the storage unit to the
display unit the user picked.

Also provides ``backfill_missing_days`` which creates empty records for
past dates that never received a flush, so that history queries see a
contiguous range.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import csv
import datetime as dt
import logging
from collections.abc import Iterator
from pathlib import Path

from energenius.src.conversion import convert_energy
from energenius.src.store import ConsumptionStore

logger = logging.getLogger(__name__)

# Series are ordered lists of (label, value) pairs.
Series = list[tuple[str, float]]


def _date_range(start: dt.date, end: dt.date) -> Iterator[dt.date]:
    current = start
    while current <= end:
        yield current
        current += dt.timedelta(days=1)


def week_key(date: dt.date) -> str:
    """Return the ISO week label of *date*, e.g. ``"2026-W07"``."""
    iso = date.isocalendar()
    return f"{iso.year}-W{iso.week:02d}"


def month_key(date: dt.date) -> str:
    """Return the month label of *date*, e.g. ``"2026-02"``."""
    return f"{date.year:04d}-{date.month:02d}"


def _daily_totals(
    store: ConsumptionStore, user_id: str, start: dt.date, end: dt.date,
) -> dict[dt.date, float]:
    return {
        record.date: record.total_consumption
        for record in store.get_daily_consumption(user_id, start, end)
    }


def _bucketed(
    store: ConsumptionStore,
    user_id: str,
    start: dt.date,
    end: dt.date,
    key,
    storage_unit: str,
    unit: str,
) -> Series:
    totals = _daily_totals(store, user_id, start, end)
    buckets: dict[str, float] = {}
    for day in _date_range(start, end):
        label = key(day)
        buckets[label] = buckets.get(label, 0.0) + totals.get(day, 0.0)
    return [
        (label, convert_energy(value, storage_unit, unit))
        for label, value in sorted(buckets.items())
    ]


def daily_series(
    store: ConsumptionStore,
    user_id: str,
    start: dt.date,
    end: dt.date,
    unit: str = "kWh",
    storage_unit: str = "kWh",
) -> Series:
    """Return one point per day from *start* to *end* inclusive.

    Args:
        store: Consumption store.
        user_id: Owner of the records.
        start: First date of the range.
        end: Last date of the range.
        unit: Display energy unit.
        storage_unit: Unit the records are stored in.

    Returns:
        ``[(YYYY-MM-DD, value), ...]`` with ``0.0`` for gap days.

    Raises:
        ValueError: If *start* is after *end*.
        UnknownUnitError: If *unit* is not a known energy unit.
    """
    if start > end:
        raise ValueError(f"start {start} is after end {end}")
    return _bucketed(store, user_id, start, end, dt.date.isoformat, storage_unit, unit)


def weekly_series(
    store: ConsumptionStore,
    user_id: str,
    start: dt.date,
    end: dt.date,
    unit: str = "kWh",
    storage_unit: str = "kWh",
) -> Series:
    """Return one point per ISO week touched by the range.

    Partial weeks at either end only sum the days inside the range.
    """
    if start > end:
        raise ValueError(f"start {start} is after end {end}")
    return _bucketed(store, user_id, start, end, week_key, storage_unit, unit)


def monthly_series(
    store: ConsumptionStore,
    user_id: str,
    start: dt.date,
    end: dt.date,
    unit: str = "kWh",
    storage_unit: str = "kWh",
) -> Series:
    """Return one point per calendar month touched by the range."""
    if start > end:
        raise ValueError(f"start {start} is after end {end}")
    return _bucketed(store, user_id, start, end, month_key, storage_unit, unit)


def export_csv(series: Series, unit: str, path: str | Path) -> Path:
    """Write *series* to a CSV file with a ``Date,Consumption (unit)`` header.

    Returns:
        The path written.
    """
    path = Path(path)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(["Date", f"Consumption ({unit})"])
        writer.writerows(series)
    logger.info("Exported %d rows to %s", len(series), path)
    return path


def backfill_missing_days(
    store: ConsumptionStore,
    user_id: str,
    today: dt.date,
    lookback_days: int = 30,
) -> int:
    """Create empty records for past days in the lookback window.

    Only dates strictly before *today* are filled; today's record is
    created by the first flush. Existing records are left untouched.

    Returns:
        Number of records created.

    Raises:
        StoreError: If the store cannot be read or written.
    """
    start = today - dt.timedelta(days=lookback_days)
    end = today - dt.timedelta(days=1)
    if start > end:
        return 0
    existing = _daily_totals(store, user_id, start, end)
    created = 0
    for day in _date_range(start, end):
        if day in existing:
            continue
        store.get_or_create_daily_record(user_id, day)
        created += 1
    if created:
        logger.info(
            "Backfilled %d missing day(s) since %s",
            created, start.isoformat(), extra={"user_id": user_id},
        )
    return created
