#!/usr/bin/env python3
"""CLI for DevHabit API management tasks.

Usage:
    python -m cli <command>

Commands:
    migrate [target]   Apply database migrations (default: head)
    downgrade [target] Revert database migrations (default: -1)
    current            Show the current migration revision
    seed               Insert sample tags and habits
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from alembic.config import Config

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def get_alembic_config() -> Config:
    api_dir = Path(__file__).resolve().parent
    cfg = Config(str(api_dir / "alembic.ini"))
    # Absolute script_location so the CLI works from any working directory.
    cfg.set_main_option("script_location", str(api_dir / "alembic"))
    return cfg


def cmd_migrate(target: str) -> int:
    """Run database migrations."""
    from alembic import command

    logger.info("Running database migrations to %s...", target)
    command.upgrade(get_alembic_config(), target)
    logger.info("Migrations complete")
    return 0


def cmd_downgrade(target: str) -> int:
    from alembic import command

    logger.info("Reverting database migrations to %s...", target)
    command.downgrade(get_alembic_config(), target)
    return 0


def cmd_current() -> int:
    from alembic import command

    command.current(get_alembic_config())
    return 0


def cmd_seed() -> int:
    """Insert sample data into the configured database."""
    from scripts.seed import seed_database

    created = asyncio.run(seed_database())
    logger.info(
        "Seed complete: %d tags, %d habits", created.tags, created.habits
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="DevHabit API CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    migrate = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate.add_argument("target", nargs="?", default="head")

    downgrade = subparsers.add_parser("downgrade", help="Revert database migrations")
    downgrade.add_argument("target", nargs="?", default="-1")

    subparsers.add_parser("current", help="Show current migration revision")
    subparsers.add_parser("seed", help="Insert sample tags and habits")

    args = parser.parse_args(argv)

    if args.command == "migrate":
        return cmd_migrate(args.target)
    elif args.command == "downgrade":
        return cmd_downgrade(args.target)
    elif args.command == "current":
        return cmd_current()
    elif args.command == "seed":
        return cmd_seed()
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
