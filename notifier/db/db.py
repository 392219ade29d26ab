import asyncio

from .models import Base
from .session import engine

from notifier.utils.logging import get_logger

logger = get_logger()


async def create_tables():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Created all tables.")


if __name__ == "__main__":
    asyncio.run(create_tables())
