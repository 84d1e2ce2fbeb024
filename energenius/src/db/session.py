"""
Database engine and session factory for the consumption store.

Uses the SQLAlchemy 2.x synchronous engine. The scheduler runs on plain
threads, so sessions are short-lived and created per store operation.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from sqlalchemy import Engine
from sqlalchemy import create_engine as sa_create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from energenius.src.db.models import Base


def create_engine(url: str) -> Engine:
    """Create a SQLAlchemy engine for *url*.

    In-memory SQLite URLs share a single connection across threads so that
    every session sees the same database.

    Args:
        url: SQLAlchemy database URL (e.g. ``sqlite:////data/energenius.db``).

    Returns:
        Engine: Configured engine.
    """
    if url in ("sqlite://", "sqlite:///:memory:"):
        return sa_create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if url.startswith("sqlite"):
        return sa_create_engine(url, connect_args={"check_same_thread": False})
    return sa_create_engine(url, pool_pre_ping=True)


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to *engine*."""
    return sessionmaker(engine, expire_on_commit=False)


def init_schema(engine: Engine) -> None:
    """Create all store tables that do not exist yet."""
    Base.metadata.create_all(engine)
