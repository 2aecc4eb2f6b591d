"""Database engine, sessions and health probes.

PostgreSQL (asyncpg) in deployed environments. SQLite (aiosqlite) works for
local runs and the test suite; an in-memory SQLite URL keeps one shared
connection so the schema survives between sessions.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, NamedTuple, TypedDict

from fastapi import Depends, Request
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool, QueuePool, StaticPool

from core.config import Settings, get_settings

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 30


class Base(DeclarativeBase):
    pass


class PoolStatus(NamedTuple):
    """Connection pool status for health checks."""

    pool_size: int
    checked_out: int
    overflow: int
    checked_in: int


class HealthCheckResult(TypedDict):
    database: bool
    backend: str
    schema_revision: str | None
    pool: PoolStatus | None


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """Turn on FK enforcement for every new SQLite connection.

    Habit tags rely on ON DELETE CASCADE.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _warn_on_pool_overflow(engine: AsyncEngine) -> None:
    pool = engine.sync_engine.pool
    if not isinstance(pool, QueuePool):
        return

    @event.listens_for(pool, "checkout")
    def _on_checkout(dbapi_conn, connection_record, connection_proxy):
        overflow = pool.overflow()
        if overflow > 0:
            logger.warning(
                "db.pool.overflow",
                extra={
                    "db_pool_checked_out": pool.checkedout(),
                    "db_pool_size": pool.size(),
                    "db_pool_overflow_count": overflow,
                },
            )


def _create_sqlite_engine(settings: Settings) -> AsyncEngine:
    if settings.is_sqlite_memory:
        engine = create_async_engine(
            settings.database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(settings.database_url, poolclass=NullPool)
    enable_sqlite_foreign_keys(engine)
    return engine


def _create_postgres_engine(settings: Settings) -> AsyncEngine:
    engine = create_async_engine(
        settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_pool_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
        pool_pre_ping=False,
        connect_args={
            "server_settings": {
                "statement_timeout": str(settings.db_statement_timeout_ms)
            }
        },
    )
    _warn_on_pool_overflow(engine)
    return engine


def create_engine(settings: Settings | None = None) -> AsyncEngine:
    settings = settings or get_settings()
    if settings.is_sqlite:
        engine = _create_sqlite_engine(settings)
    else:
        engine = _create_postgres_engine(settings)

    try:
        from core.observability import instrument_sqlalchemy_engine

        instrument_sqlalchemy_engine(engine)
    except Exception:
        logger.warning("db.instrumentation.failed", exc_info=True)

    return engine


def create_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_all_tables(engine: AsyncEngine) -> None:
    """Create the schema straight from the models (no Alembic history)."""
    import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("db.schema.created")


@asynccontextmanager
async def session_scope(
    session_maker: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Unit of work outside a request: commit on success, roll back on error."""
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await _rollback_quietly(session)
            raise


async def _rollback_quietly(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except Exception as rollback_err:
        logger.warning("db.rollback.failed", extra={"error": str(rollback_err)})


async def get_db(request: Request) -> AsyncGenerator[AsyncSession]:
    """Request-scoped session; commits after the endpoint returns.

    Repositories and services flush when they need generated values and
    never commit themselves.
    """
    async with session_scope(request.app.state.session_maker) as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def check_db_connection(engine: AsyncEngine) -> None:
    """Run ``SELECT 1``; raises on failure or after 30 seconds."""
    async with asyncio.timeout(CONNECT_TIMEOUT_SECONDS):
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
            await conn.rollback()


async def init_db(engine: AsyncEngine) -> None:
    """Verify the database is reachable. The schema is owned by migrations."""
    logger.info("db.connectivity.verifying")
    await check_db_connection(engine)
    logger.info("db.connectivity.verified")


async def dispose_engine(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("db.engine.disposed")


async def get_schema_revision(engine: AsyncEngine) -> str | None:
    """Alembic revision stamped in the database, None when never migrated."""
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text("SELECT version_num FROM alembic_version"))
            return result.scalar_one_or_none()
    except SQLAlchemyError:
        return None


def get_pool_status(engine: AsyncEngine) -> PoolStatus | None:
    """Pool counters, or None for SQLite's static/null pools."""
    pool = engine.sync_engine.pool

    if isinstance(pool, QueuePool):
        return PoolStatus(
            pool_size=pool.size(),
            checked_out=pool.checkedout(),
            overflow=pool.overflow(),
            checked_in=pool.checkedin(),
        )
    return None


async def comprehensive_health_check(engine: AsyncEngine) -> HealthCheckResult:
    """Connectivity, schema revision and pool status in one result."""
    result: HealthCheckResult = {
        "database": False,
        "backend": engine.dialect.name,
        "schema_revision": None,
        "pool": get_pool_status(engine),
    }

    try:
        await check_db_connection(engine)
    except Exception:
        logger.warning("db.health_check.failed", exc_info=True)
        return result

    result["database"] = True
    result["schema_revision"] = await get_schema_revision(engine)
    return result
