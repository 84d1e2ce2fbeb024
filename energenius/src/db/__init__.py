"""
Database package for SQLAlchemy models and session management.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from energenius.src.db.models import Base, ConsumptionHistoryRow, DeviceRow
from energenius.src.db.session import (
    create_engine,
    create_session_factory,
    init_schema,
)

__all__ = [
    "Base",
    "ConsumptionHistoryRow",
    "DeviceRow",
    "create_engine",
    "create_session_factory",
    "init_schema",
]
