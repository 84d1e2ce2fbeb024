"""
SQLAlchemy ORM models for the consumption store.

Defines the device registry and the per-user daily consumption history.
The history table uses a composite primary key on (user_id, date) so that
there is at most one record per user per calendar date.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import datetime

from sqlalchemy import JSON, Date, DateTime, Double, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all store ORM models."""

    pass


class DeviceRow(Base):
    """Persisted device document.

    Timestamps are written in UTC. Counter columns default to zero so that
    partially written rows still aggregate.
    """

    __tablename__ = "devices"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    user_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    model: Mapped[str | None] = mapped_column(Text, nullable=True)
    power_rating_w: Mapped[float | None] = mapped_column(Double, nullable=True)
    last_active: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    daily_uptime_s: Mapped[float | None] = mapped_column(Double, default=0.0)
    total_uptime_s: Mapped[float | None] = mapped_column(Double, default=0.0)
    daily_consumption: Mapped[float | None] = mapped_column(Double, default=0.0)
    last_reset: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    is_user_added: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        """Return string representation of the DeviceRow."""
        return (
            f"DeviceRow(id={self.id!r}, user_id={self.user_id!r}, "
            f"last_active={self.last_active!r})"
        )


class ConsumptionHistoryRow(Base):
    """Total energy for one user on one date, with a per-device breakdown."""

    __tablename__ = "consumption_history"

    user_id: Mapped[str] = mapped_column(Text, primary_key=True)
    date: Mapped[datetime.date] = mapped_column(Date, primary_key=True)
    total_consumption: Mapped[float] = mapped_column(
        Double, nullable=False, default=0.0,
    )
    device_breakdown: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        """Return string representation of the ConsumptionHistoryRow."""
        return (
            f"ConsumptionHistoryRow(user_id={self.user_id!r}, "
            f"date={self.date!r}, total={self.total_consumption!r})"
        )
