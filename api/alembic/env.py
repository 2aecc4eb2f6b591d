"""Alembic environment for the DevHabit schema.

Migrations run on a synchronous driver (psycopg2 / sqlite3) derived from
``DATABASE_URL``. ``alembic -x url=...`` overrides the URL for one-off runs.
"""

from __future__ import annotations

import logging
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import Connection, create_engine, text

# api/ on sys.path so "models" and "core" import when alembic runs directly
sys.path.insert(0, str(Path(__file__).parent.parent))

import models  # noqa: F401,E402
from alembic import context  # noqa: E402
from core.config import get_settings  # noqa: E402
from core.database import Base  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

# hash("devhabit-migrations") % (2**31)
MIGRATION_LOCK_KEY = 518203377
LOCK_TIMEOUT_SECONDS = 120
LOCK_POLL_SECONDS = 2


def _database_url() -> str:
    return context.get_x_argument(as_dictionary=True).get(
        "url", get_settings().sync_database_url
    )


@contextmanager
def _migration_lock(connection: Connection) -> Iterator[None]:
    """Serialize concurrent workers on PostgreSQL with an advisory lock.

    Other dialects run unlocked.
    """
    if connection.dialect.name != "postgresql":
        yield
        return

    deadline = time.monotonic() + LOCK_TIMEOUT_SECONDS
    while not connection.execute(
        text("SELECT pg_try_advisory_lock(:key)"), {"key": MIGRATION_LOCK_KEY}
    ).scalar():
        if time.monotonic() > deadline:
            raise RuntimeError(
                f"Failed to acquire migration lock within {LOCK_TIMEOUT_SECONDS}s. "
                "Another process may be stuck holding it."
            )
        logger.debug("Waiting for migration lock...")
        time.sleep(LOCK_POLL_SECONDS)

    # Alembic expects to start outside a transaction
    connection.commit()
    logger.info("Acquired migration lock")
    try:
        yield
    finally:
        try:
            connection.execute(
                text("SELECT pg_advisory_unlock(:key)"), {"key": MIGRATION_LOCK_KEY}
            )
            connection.commit()
            logger.info("Released migration lock")
        except Exception as unlock_error:
            # Released with the session anyway
            logger.warning("migration lock release failed: %s", unlock_error)


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of running against a database."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_database_url())

    with engine.connect() as connection, _migration_lock(connection):
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            # SQLite needs batch mode for ALTER TABLE
            render_as_batch=True,
        )
        with context.begin_transaction():
            context.run_migrations()

    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
