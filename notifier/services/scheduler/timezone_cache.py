import json
from typing import List

import redis.asyncio as redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.models import User
from notifier.utils.logging import get_logger

logger = get_logger()

TIMEZONE_CACHE_KEY = "users:distinct-timezones"


class TimezoneCache:
    """Read-through cache of the distinct timezones used by users"""

    def __init__(self, client: redis.Redis, ttl_seconds: int):
        self.client = client
        self.ttl_seconds = ttl_seconds

    async def get_timezones(self, db_session: AsyncSession) -> List[str]:
        cached = await self.client.get(TIMEZONE_CACHE_KEY)
        if cached is not None:
            return json.loads(cached)

        result = await db_session.execute(
            select(User.timezone).distinct().order_by(User.timezone)
        )
        timezones = [tz for tz in result.scalars().all() if tz]

        await self.client.set(
            TIMEZONE_CACHE_KEY, json.dumps(timezones), ex=self.ttl_seconds
        )
        logger.debug(f"Cached {len(timezones)} distinct user timezones")
        return timezones

    async def invalidate(self) -> None:
        """Called by the user module after any create/update/delete"""
        await self.client.delete(TIMEZONE_CACHE_KEY)
