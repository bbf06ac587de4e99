"""
Create all tables for the configured DATABASE_URL.

Usage:
    python -m schooltime.db.init_db
"""
import asyncio
import logging

from schooltime.db.session import create_tables, engine

logger = logging.getLogger(__name__)


async def main() -> None:
    try:
        await create_tables(engine)
        logger.info("Tables created")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
