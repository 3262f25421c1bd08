"""
Schema migration step.

Creates the jobs table and its indexes if they do not exist yet. Safe to run on
every start; the API and workers run it before accepting traffic, and it is
also exposed as the ``jobpipe-migrate`` command.
"""

import asyncio
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from jobpipe.config import get_settings
from jobpipe.db.connection import Database
from jobpipe.db.models import Base
from jobpipe.errors import StoreUnavailableError
from jobpipe.observability.logging import setup_logging

logger = logging.getLogger(__name__)


async def run_migrations(database: Database) -> None:
    """
    Create missing tables and indexes.

    Args:
        database: A connected Database.

    Raises:
        StoreUnavailableError: If the database cannot be reached.
    """
    try:
        async with database.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, checkfirst=True)
    except (OSError, SQLAlchemyError) as e:
        raise StoreUnavailableError(f"Schema migration failed: {e}") from e

    logger.info("Jobs table is ready")


async def run_async() -> None:
    """Run the migration against the configured database."""
    setup_logging()
    async with Database.from_settings(get_settings()) as database:
        await run_migrations(database)


def run() -> None:
    """Run the migration; exit non-zero if the store is unreachable."""
    try:
        asyncio.run(run_async())
    except StoreUnavailableError:
        logger.exception("Error creating jobs table")
        sys.exit(1)


if __name__ == "__main__":
    run()
