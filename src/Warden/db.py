# src/Warden/db.py
from __future__ import annotations

import contextlib
import os
from collections.abc import AsyncIterator
from typing import Any

import structlog
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from Warden.config import load_settings
from Warden.errors import ExternalServiceError

log = structlog.get_logger()

_ASYNC_DRIVERS = {
    "postgresql": "postgresql+asyncpg",
    "postgres": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def _normalize_url(url: str) -> str:
    """Swap a plain ``postgresql://`` or ``sqlite://`` scheme for its async driver."""
    scheme, sep, rest = url.partition("://")
    if not sep:
        return url
    return f"{_ASYNC_DRIVERS.get(scheme, scheme)}://{rest}"


DATABASE_URL = _normalize_url(load_settings().database_url)


class Base(DeclarativeBase):
    pass


_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None
_schema_initialized: bool = False


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite+aiosqlite://") and ":memory:" in url


def _engine_kwargs(url: str) -> dict[str, Any]:
    if url.startswith("sqlite+aiosqlite://"):
        kwargs: dict[str, Any] = {"connect_args": {"timeout": 30}}
        # One shared connection keeps an in-memory schema alive; the env flag
        # forces the same for file databases when writers must be serialized
        if _is_memory_sqlite(url) or os.environ.get("WARDEN_SQLITE_STATIC_POOL") == "1":
            kwargs["poolclass"] = StaticPool
        return kwargs
    if url.startswith("postgresql+asyncpg://"):
        return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10, "pool_timeout": 30}
    return {}


def get_engine() -> AsyncEngine:
    global _engine, _sessionmaker
    if _engine is not None:
        return _engine
    _engine = create_async_engine(DATABASE_URL, **_engine_kwargs(DATABASE_URL))
    _sessionmaker = async_sessionmaker(_engine, expire_on_commit=False)
    url = make_url(DATABASE_URL)
    log.info(
        "db.engine.created",
        backend=url.get_backend_name(),
        driver=url.drivername,
        host=url.host or "",
        database=url.database or "",
    )
    return _engine


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    if _sessionmaker is None:
        get_engine()
    assert _sessionmaker is not None
    return _sessionmaker


async def _ensure_schema_created_if_needed() -> None:
    """Create tables for in-memory SQLite; real databases are migrated by alembic."""
    global _schema_initialized
    if _schema_initialized:
        return
    if _is_memory_sqlite(DATABASE_URL):
        from Warden import models as _models  # noqa: F401

        async with get_engine().begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    _schema_initialized = True


@contextlib.asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """Yield a session that commits on success and rolls back on error.

    Driver-level failures surface as ExternalServiceError so the dispatcher
    can classify them without knowing about SQLAlchemy.
    """
    await _ensure_schema_created_if_needed()
    async with get_sessionmaker()() as s:
        try:
            yield s
            await s.commit()
        except SQLAlchemyError as exc:
            log.error("db.session.error", exc_info=True)
            await s.rollback()
            raise ExternalServiceError("store", str(exc)) from exc
        except BaseException:
            await s.rollback()
            raise
