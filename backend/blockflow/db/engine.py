"""SQLAlchemy async engine and session factory."""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from blockflow.config import settings


def _build_engine_kwargs() -> dict:
    """Return engine kwargs appropriate for the configured dialect."""
    if settings.is_postgres:
        return {
            "echo": settings.DEBUG,
            "pool_size": 10,
            "max_overflow": 20,
            "pool_pre_ping": True,   # ensure stale connections are recycled
            "pool_recycle": 1800,
        }
    return {
        "echo": settings.DEBUG,
        "connect_args": {"check_same_thread": False},
    }


engine = create_async_engine(settings.BLOCKFLOW_DB_URL, **_build_engine_kwargs())


if settings.is_sqlite:
    # WAL lets record writes from concurrent runs proceed alongside readers;
    # busy_timeout makes SQLite wait instead of raising "database is locked".
    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragmas(dbapi_conn, _conn_rec):  # type: ignore[misc]
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

