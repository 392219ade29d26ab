import asyncio
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifier.services.events.event_log_store import EventLogStore
from notifier.utils.logging import get_logger

from .locks import RECOVER_EVENTS_LOCK_KEY, RedisLock
from .notification_queue import NotificationQueue

logger = get_logger()


class RecoverySweeper:
    """
    Re-drives FAILED occurrences and PENDING ones that were never picked up.

    The claimed rows are reset to PENDING by the store before they are
    enqueued again with the dispatcher's keying.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis_client: redis.Redis,
        queue: NotificationQueue,
        max_retries: int = 12,
        lock_ttl_ms: int = 1800000,
        stale_after: timedelta = timedelta(hours=1),
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.max_retries = max_retries
        self.stale_after = stale_after
        self.lock = RedisLock(redis_client, RECOVER_EVENTS_LOCK_KEY, lock_ttl_ms)

    async def recover(
        self, request_id: str, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        if not await self.lock.acquire():
            logger.warning("Recovery sweep already running on another instance, skipping")
            return {"skipped": True, "recovered_count": 0}

        try:
            async with self.session_factory() as db_session:
                store = EventLogStore(db_session)
                occurrences = await store.find_for_retry(
                    self.max_retries, now, self.stale_after
                )

            if not occurrences:
                logger.info("No failed or stuck occurrences to retry")
                return {"skipped": False, "recovered_count": 0}

            logger.info(f"Found {len(occurrences)} occurrence(s) to retry")
            await asyncio.gather(
                *(self.queue.enqueue(occurrence.id, request_id) for occurrence in occurrences)
            )

            logger.info(f"Queued {len(occurrences)} retry job(s)")
            return {"skipped": False, "recovered_count": len(occurrences)}
        finally:
            await self.lock.release()
