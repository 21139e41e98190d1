"""
Seed script -- populates the SQL database with reference and demo data.

Run after migrations:
    python seed.py

Creates:
  - 3 cab types (Standard, Premium, SUV)
  - 25 drivers, five around each of NYC, Anand, London, Tokyo and Sydney
  - 1 demo rider (username ``demo``)

Running it twice is harmless: an existing demo rider means the database
is already seeded.
"""

import asyncio
import logging
import random

from ridequick.config import get_settings
from ridequick.infrastructure.database import build_engine, build_session_factory
from ridequick.infrastructure.repositories import build_sql_storage
from ridequick.seeding import seed_storage

logger = logging.getLogger("seed")


async def seed() -> None:
    settings = get_settings()
    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)
    try:
        async with session_factory() as session:
            user = await seed_storage(
                build_sql_storage(session), random.Random(settings.random_seed)
            )
            await session.commit()
        logger.info("Seed complete; demo rider id is %s", user.id)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=get_settings().log_level.upper())
    asyncio.run(seed())
