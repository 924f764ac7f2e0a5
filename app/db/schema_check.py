import asyncio
import logging
from typing import List

from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import AsyncEngine

from app.core.config import settings
from app.db.session import Base, create_engine

# Registers every ORM model on Base.metadata.
import app.core.models  # noqa: F401

logger = logging.getLogger(__name__)


async def ensure_tables(db_engine: AsyncEngine) -> List[str]:
    """
    Create the static tables (message log, teacher queue) if missing. Roster buckets are not
    created here; the registry creates each one on first use.
    Returns the names of the tables that had to be created.
    """
    async with db_engine.begin() as conn:
        existing = set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))
        missing = [t.name for t in Base.metadata.sorted_tables if t.name not in existing]
        await conn.run_sync(Base.metadata.create_all)
    if missing:
        logger.info("Created tables: %s", ", ".join(missing))
    return missing


async def main() -> None:
    engine = create_engine(settings.database_url)
    try:
        missing = await ensure_tables(engine)
        if missing:
            print("Created missing tables:", ", ".join(missing))
        else:
            print("All required tables already exist in the database.")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
