"""Database connection and session management."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from staff_pay_engine.config import get_settings
from staff_pay_engine.models import Base

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

# Seconds a SQLite connection waits for a lock held by another writer
SQLITE_BUSY_TIMEOUT = 30


def get_engine(database_url: str | None = None) -> Engine:
    """Create database engine.

    SQLite connections are switched to explicit BEGIN handling so that
    SAVEPOINTs (used for per-item ledger writes) behave as on PostgreSQL.
    A connection with the ``sqlite_begin`` execution option set to
    ``"IMMEDIATE"`` takes the write lock at BEGIN, so concurrent writers
    queue up behind the busy timeout instead of failing mid-transaction.
    """
    url = database_url or get_settings().database_url

    if not url.startswith("sqlite"):
        return create_engine(url, echo=False, pool_pre_ping=True)

    kwargs: dict = {"connect_args": {"check_same_thread": False, "timeout": SQLITE_BUSY_TIMEOUT}}
    if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=False, **kwargs)

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        mode = conn.get_execution_options().get("sqlite_begin")
        conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")

    return engine


# Global engine and session factory
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def init_db(database_url: str | None = None) -> tuple[Engine, sessionmaker[Session]]:
    """Initialize database engine, session factory and tables."""
    global _engine, _session_factory
    if _engine is None:
        _engine = get_engine(database_url)
        Base.metadata.create_all(_engine)
        _session_factory = sessionmaker(
            _engine,
            class_=Session,
            expire_on_commit=False,
            autoflush=False,
        )
    return _engine, _session_factory

