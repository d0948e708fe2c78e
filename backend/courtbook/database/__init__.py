"""
Database engine, session factory, and metadata shared across the application.
"""

from __future__ import annotations

import logging
from typing import Any, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeMeta, Session, declarative_base, sessionmaker

from ..core.config import settings

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"echo": settings.sql_echo, "future": True}
    if url.startswith("sqlite"):
        # Request handlers run in worker threads (asyncio.to_thread)
        kwargs["connect_args"] = {"check_same_thread": False}
    else:
        kwargs.update({"pool_pre_ping": True, "pool_recycle": 300})
    return kwargs


def _configure_sqlite(sqlite_engine: Engine) -> None:
    """
    Enforce foreign keys and let SQLAlchemy own BEGIN.

    pysqlite's implicit transaction handling breaks SAVEPOINT, which the
    booking and admin-config paths rely on.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _on_connect(dbapi_connection, _record):  # pragma: no cover - driver hook
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(sqlite_engine, "begin")
    def _on_begin(conn):  # pragma: no cover - driver hook
        conn.exec_driver_sql("BEGIN")


def build_engine(url: str, **overrides: Any) -> Engine:
    """Create an engine for ``url`` with dialect-specific tuning."""
    kwargs = _engine_kwargs(url)
    kwargs.update(overrides)
    new_engine = create_engine(url, **kwargs)
    if new_engine.dialect.name == "sqlite":
        _configure_sqlite(new_engine)
    logger.info("Database engine created for dialect %s", new_engine.dialect.name)
    return new_engine


engine = build_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)

Base: DeclarativeMeta = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """Get database session with proper cleanup."""
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
