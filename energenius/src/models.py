"""
Domain records exchanged with the consumption store.

``Device`` and ``DailyConsumptionRecord`` are Pydantic models. Device
documents may be partially written by other clients, so every counter
field tolerates missing or malformed input: numbers fall back to ``0.0``
and timestamps/dates fall back to ``None`` instead of raising.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime as dt
import math
from typing import Any

from pydantic import BaseModel, Field, field_validator

SECONDS_PER_DAY: float = 86_400.0


def _coerce_float(v: Any) -> float:
    if isinstance(v, bool):
        return float(v)
    try:
        result = float(v)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(result) or math.isinf(result):
        return 0.0
    return result


def _coerce_datetime(v: Any) -> dt.datetime | None:
    if isinstance(v, dt.datetime):
        parsed = v
    elif isinstance(v, str) and v:
        try:
            parsed = dt.datetime.fromisoformat(v)
        except ValueError:
            return None
    else:
        return None
    # Naive values are stored as UTC.
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.UTC)
    return parsed


def _coerce_date(v: Any) -> dt.date | None:
    if isinstance(v, dt.datetime):
        return v.date()
    if isinstance(v, dt.date):
        return v
    if isinstance(v, str) and v:
        try:
            return dt.date.fromisoformat(v[:10])
        except ValueError:
            return None
    return None


class Device(BaseModel):
    """A tracked appliance and its uptime counters.

    Attributes:
        id: Opaque device identifier.
        user_id: Owning user, ``None`` for unowned preset devices.
        model: Display name of the appliance.
        power_rating_w: Rated power draw in watts.
        last_active: Last uptime checkpoint; ``None`` when switched off.
        daily_uptime_s: Uptime accumulated since the last daily reset.
        total_uptime_s: Lifetime uptime.
        daily_consumption: Energy used today, in the storage unit.
        last_reset: Calendar date of the last daily-counter reset.
        is_user_added: Whether the user registered this device.
    """

    id: str
    user_id: str | None = None
    model: str = ""
    power_rating_w: float = 0.0
    last_active: dt.datetime | None = None
    daily_uptime_s: float = 0.0
    total_uptime_s: float = 0.0
    daily_consumption: float = 0.0
    last_reset: dt.date | None = None
    is_user_added: bool = False

    @field_validator(
        "power_rating_w",
        "daily_uptime_s",
        "total_uptime_s",
        "daily_consumption",
        mode="before",
    )
    @classmethod
    def _numbers_default_to_zero(cls, v: Any) -> float:
        return _coerce_float(v)

    @field_validator("last_active", mode="before")
    @classmethod
    def _parse_last_active(cls, v: Any) -> dt.datetime | None:
        return _coerce_datetime(v)

    @field_validator("last_reset", mode="before")
    @classmethod
    def _parse_last_reset(cls, v: Any) -> dt.date | None:
        return _coerce_date(v)

    @field_validator("model", mode="before")
    @classmethod
    def _model_default_to_empty(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("is_user_added", mode="before")
    @classmethod
    def _flag_from_int(cls, v: Any) -> bool:
        return bool(v) if v is not None else False

    @property
    def is_active(self) -> bool:
        """A device is active while it carries a ``last_active`` checkpoint."""
        return self.last_active is not None


class DailyConsumptionRecord(BaseModel):
    """Energy consumed by one user on one calendar date.

    At most one record exists per ``(user_id, date)``.
    """

    user_id: str
    date: dt.date
    total_consumption: float = 0.0
    device_breakdown: dict[str, float] = Field(default_factory=dict)

    @field_validator("total_consumption", mode="before")
    @classmethod
    def _total_default_to_zero(cls, v: Any) -> float:
        return _coerce_float(v)

    @field_validator("device_breakdown", mode="before")
    @classmethod
    def _breakdown_default_to_empty(cls, v: Any) -> dict[str, float]:
        if not isinstance(v, dict):
            return {}
        return {str(k): _coerce_float(val) for k, val in v.items()}
