"""
Consumption store: device registry and daily consumption history.

``ConsumptionStore`` is the collaborator contract the tracker core relies
on. ``SqlConsumptionStore`` implements it on SQLAlchemy. Every database
failure is re-raised as ``StoreError`` so callers handle one exception
type regardless of backend.

Operations:
- get_devices / get_device / add_device / update_device
- get_daily_consumption(start, end): inclusive date range.
- get_or_create_daily_record: INSERT ... ON CONFLICT DO NOTHING, then read.
- upsert_daily_consumption: additive upsert into a date bucket.
- release_user_devices / delete_consumption_history: account cleanup.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import abc
import datetime as dt
import logging
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from energenius.src.db.models import ConsumptionHistoryRow, DeviceRow
from energenius.src.db.session import create_session_factory
from energenius.src.models import DailyConsumptionRecord, Device

logger = logging.getLogger(__name__)

# Columns that update_device() accepts.
_DEVICE_FIELDS = frozenset(
    {
        "user_id",
        "model",
        "power_rating_w",
        "last_active",
        "daily_uptime_s",
        "total_uptime_s",
        "daily_consumption",
        "last_reset",
        "is_user_added",
    }
)

# Counters cleared when a user-added device reverts to a preset.
_RELEASED_DEVICE_VALUES: dict[str, Any] = {
    "is_user_added": 0,
    "user_id": None,
    "daily_uptime_s": 0.0,
    "total_uptime_s": 0.0,
    "daily_consumption": 0.0,
    "last_active": None,
    "last_reset": None,
}


class StoreError(Exception):
    """Raised when the consumption store cannot complete an operation."""


class ConsumptionStore(abc.ABC):
    """Contract of the remote consumption store."""

    @abc.abstractmethod
    def get_devices(self, user_id: str) -> list[Device]:
        """Return every device owned by *user_id*."""

    @abc.abstractmethod
    def get_device(self, device_id: str) -> Device | None:
        """Return one device, or ``None`` when it does not exist."""

    @abc.abstractmethod
    def add_device(self, device: Device) -> None:
        """Register *device*, replacing any existing document with its id."""

    @abc.abstractmethod
    def update_device(self, device_id: str, fields: Mapping[str, Any]) -> None:
        """Write *fields* onto an existing device document."""

    @abc.abstractmethod
    def get_daily_consumption(
        self, user_id: str, start: dt.date, end: dt.date,
    ) -> list[DailyConsumptionRecord]:
        """Return records with ``start <= date <= end``, oldest first."""

    @abc.abstractmethod
    def get_or_create_daily_record(
        self, user_id: str, date: dt.date,
    ) -> DailyConsumptionRecord:
        """Return the record for *date*, creating an empty one if absent."""

    @abc.abstractmethod
    def upsert_daily_consumption(
        self,
        user_id: str,
        date: dt.date,
        delta: float,
        device_deltas: Mapping[str, float] | None = None,
    ) -> DailyConsumptionRecord:
        """Add *delta* (and per-device deltas) to the record for *date*."""

    @abc.abstractmethod
    def release_user_devices(self, user_id: str) -> int:
        """Revert the user's devices to unowned presets; return the count."""

    @abc.abstractmethod
    def delete_consumption_history(self, user_id: str, limit: int = 100) -> int:
        """Delete up to *limit* history records; return the count deleted."""


def _to_utc(value: Any) -> Any:
    if isinstance(value, dt.datetime) and value.tzinfo is not None:
        return value.astimezone(dt.UTC)
    return value


def _device_from_row(row: DeviceRow) -> Device:
    return Device(
        id=row.id,
        user_id=row.user_id,
        model=row.model,
        power_rating_w=row.power_rating_w,
        last_active=row.last_active,
        daily_uptime_s=row.daily_uptime_s,
        total_uptime_s=row.total_uptime_s,
        daily_consumption=row.daily_consumption,
        last_reset=row.last_reset,
        is_user_added=row.is_user_added,
    )


def _record_from_row(row: ConsumptionHistoryRow) -> DailyConsumptionRecord:
    return DailyConsumptionRecord(
        user_id=row.user_id,
        date=row.date,
        total_consumption=row.total_consumption,
        device_breakdown=row.device_breakdown or {},
    )


class SqlConsumptionStore(ConsumptionStore):
    """Consumption store backed by a SQLAlchemy engine.

    Each public operation runs in its own short session and transaction.

    Args:
        engine: Engine whose schema has been created with ``init_schema``.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = create_session_factory(engine)

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"{operation} failed: {exc}") from exc
        finally:
            session.close()

    def _insert(self):
        if self._engine.dialect.name == "postgresql":
            return postgresql.insert
        return sqlite.insert

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def get_devices(self, user_id: str) -> list[Device]:
        with self._session("get_devices") as session:
            rows = session.scalars(
                select(DeviceRow)
                .where(DeviceRow.user_id == user_id)
                .order_by(DeviceRow.id)
            ).all()
            return [_device_from_row(row) for row in rows]

    def get_device(self, device_id: str) -> Device | None:
        with self._session("get_device") as session:
            row = session.get(DeviceRow, device_id)
            return _device_from_row(row) if row is not None else None

    def add_device(self, device: Device) -> None:
        values = device.model_dump()
        values["is_user_added"] = int(values["is_user_added"])
        values["last_active"] = _to_utc(values["last_active"])
        with self._session("add_device") as session:
            session.merge(DeviceRow(**values))

    def update_device(self, device_id: str, fields: Mapping[str, Any]) -> None:
        """Write *fields* onto device *device_id*.

        Raises:
            ValueError: If *fields* names an unknown column.
            StoreError: If the device does not exist or the write fails.
        """
        unknown = set(fields) - _DEVICE_FIELDS
        if unknown:
            raise ValueError(f"Unknown device field(s): {', '.join(sorted(unknown))}")
        values = {key: _to_utc(value) for key, value in fields.items()}
        with self._session("update_device") as session:
            result = session.execute(
                update(DeviceRow).where(DeviceRow.id == device_id).values(**values)
            )
            if result.rowcount == 0:
                raise StoreError(f"update_device failed: no device {device_id!r}")

    # ------------------------------------------------------------------
    # Daily consumption history
    # ------------------------------------------------------------------

    def get_daily_consumption(
        self, user_id: str, start: dt.date, end: dt.date,
    ) -> list[DailyConsumptionRecord]:
        with self._session("get_daily_consumption") as session:
            rows = session.scalars(
                select(ConsumptionHistoryRow)
                .where(
                    ConsumptionHistoryRow.user_id == user_id,
                    ConsumptionHistoryRow.date >= start,
                    ConsumptionHistoryRow.date <= end,
                )
                .order_by(ConsumptionHistoryRow.date)
            ).all()
            return [_record_from_row(row) for row in rows]

    def _get_or_create_row(
        self, session: Session, user_id: str, date: dt.date,
    ) -> ConsumptionHistoryRow:
        stmt = (
            self._insert()(ConsumptionHistoryRow)
            .values(
                user_id=user_id,
                date=date,
                total_consumption=0.0,
                device_breakdown={},
            )
            .on_conflict_do_nothing(index_elements=["user_id", "date"])
        )
        session.execute(stmt)
        return session.execute(
            select(ConsumptionHistoryRow).where(
                ConsumptionHistoryRow.user_id == user_id,
                ConsumptionHistoryRow.date == date,
            )
        ).scalar_one()

    def get_or_create_daily_record(
        self, user_id: str, date: dt.date,
    ) -> DailyConsumptionRecord:
        with self._session("get_or_create_daily_record") as session:
            return _record_from_row(self._get_or_create_row(session, user_id, date))

    def upsert_daily_consumption(
        self,
        user_id: str,
        date: dt.date,
        delta: float,
        device_deltas: Mapping[str, float] | None = None,
    ) -> DailyConsumptionRecord:
        """Add *delta* to the record for *date*, creating it if absent.

        Per-device deltas are added to the matching breakdown entries.
        Assigning a new dict lets SQLAlchemy detect the JSON change.
        """
        with self._session("upsert_daily_consumption") as session:
            row = self._get_or_create_row(session, user_id, date)
            row.total_consumption = (row.total_consumption or 0.0) + delta
            if device_deltas:
                breakdown = dict(row.device_breakdown or {})
                for device_id, amount in device_deltas.items():
                    breakdown[device_id] = breakdown.get(device_id, 0.0) + amount
                row.device_breakdown = breakdown
            session.flush()
            return _record_from_row(row)

    # ------------------------------------------------------------------
    # Account cleanup
    # ------------------------------------------------------------------

    def release_user_devices(self, user_id: str) -> int:
        with self._session("release_user_devices") as session:
            result = session.execute(
                update(DeviceRow)
                .where(DeviceRow.user_id == user_id, DeviceRow.is_user_added == 1)
                .values(**_RELEASED_DEVICE_VALUES)
            )
            return result.rowcount

    def delete_consumption_history(self, user_id: str, limit: int = 100) -> int:
        with self._session("delete_consumption_history") as session:
            dates = session.scalars(
                select(ConsumptionHistoryRow.date)
                .where(ConsumptionHistoryRow.user_id == user_id)
                .order_by(ConsumptionHistoryRow.date)
                .limit(limit)
            ).all()
            if not dates:
                return 0
            session.execute(
                delete(ConsumptionHistoryRow).where(
                    ConsumptionHistoryRow.user_id == user_id,
                    ConsumptionHistoryRow.date.in_(dates),
                )
            )
            logger.info(
                "Deleted %d consumption records for user %s", len(dates), user_id,
            )
            return len(dates)
