"""Engine and session factory for the DeliverHub database.

The app lifespan (or a maintenance script) opens one engine per process and
disposes it on shutdown. Request handlers receive sessions through
:func:`get_db`; background jobs use :func:`session_scope`.
"""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from deliverhub.config import get_settings
from deliverhub.models.base import Base


@dataclass(frozen=True)
class _Database:
    engine: Engine
    sessions: sessionmaker[Session]


_current: _Database | None = None


def _enforce_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _open(url: str) -> _Database:
    is_sqlite = url.startswith("sqlite")
    engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        pool_pre_ping=not is_sqlite,
    )
    if is_sqlite:
        # Milestones are removed through the project cascade.
        event.listen(engine, "connect", _enforce_sqlite_foreign_keys)
    return _Database(engine=engine, sessions=sessionmaker(bind=engine, autoflush=False, expire_on_commit=False))


def _database() -> _Database:
    global _current
    if _current is None:
        _current = _open(get_settings().database_url)
    return _current


def init_engine() -> Engine:
    """Open the process-wide engine from ``DATABASE_URL`` unless it is already open."""

    return _database().engine


def get_engine() -> Engine:
    return _database().engine


def get_sessionmaker() -> sessionmaker[Session]:
    return _database().sessions


@contextmanager
def session_scope() -> Iterator[Session]:
    """A session for work outside a request; closed on exit, never committed implicitly."""

    session = get_sessionmaker()()
    try:
        yield session
    finally:
        session.close()


def get_db() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request."""

    with session_scope() as session:
        yield session


def create_all() -> None:
    """Create missing tables from the model metadata (development only; Alembic owns the schema)."""

    Base.metadata.create_all(bind=get_engine())


def close_engine() -> None:
    global _current
    if _current is not None:
        _current.engine.dispose()
        _current = None


__all__ = [
    "close_engine",
    "create_all",
    "get_db",
    "get_engine",
    "get_sessionmaker",
    "init_engine",
    "session_scope",
]
