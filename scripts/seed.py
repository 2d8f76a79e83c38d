"""Seed the demo account and welcome article, or run the cleanup once."""
import argparse
import asyncio
import logging
import time
from contextlib import asynccontextmanager

from conduit.cache import cache
from conduit.database import Base, database
from conduit.jobs.cleanup import scheduler
from conduit.jobs.demo import generate_demo_data

logger = logging.getLogger("seed")


@asynccontextmanager
async def connected():
    """Open the database and Redis the way the application lifespan does."""
    database.connect()
    await cache.connect()
    try:
        yield
    finally:
        await cache.disconnect()
        await database.disconnect()


async def seed(create_tables: bool = False) -> dict:
    start = time.perf_counter()
    async with connected():
        if create_tables:
            async with database.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        async with database.session() as session:
            article = await generate_demo_data(session)
            await session.commit()

    logger.info("Demo data ready (%s) in %.1fs", article["slug"], time.perf_counter() - start)
    return article


async def cleanup() -> dict[str, int] | None:
    """Purge once; skipped (None) while another process holds the cleanup lock."""
    async with connected():
        counts = await scheduler.run_once()
    if counts is None:
        logger.warning("Cleanup skipped: another run is in progress")
    else:
        logger.info("Cleanup finished: %s", counts)
    return counts


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    parser = argparse.ArgumentParser(description="Conduit demo data tools")
    parser.add_argument("--create-tables", action="store_true", help="Create tables without Alembic")
    parser.add_argument("--cleanup", action="store_true", help="Purge non-demo content once and exit")
    args = parser.parse_args()

    if args.cleanup:
        asyncio.run(cleanup())
    else:
        asyncio.run(seed(create_tables=args.create_tables))


if __name__ == "__main__":
    main()
