import asyncio
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifier.services.events.event_log_store import EventLogStore
from notifier.utils.datetime_utils import utc_now
from notifier.utils.logging import get_logger

from .notification_queue import NotificationQueue

logger = get_logger()


class EventDispatcher:
    """Enqueues one delivery job for each PENDING occurrence that is due"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        queue: NotificationQueue,
        limit: int = 5000,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.limit = limit

    async def dispatch(self, request_id: str, now: Optional[datetime] = None) -> int:
        """
        Returns:
            int: Number of jobs newly enqueued
        """
        now = now or utc_now()
        try:
            async with self.session_factory() as db_session:
                store = EventLogStore(db_session)
                occurrences = await store.find_due_for_dispatch(now, self.limit)

            if not occurrences:
                logger.debug("No occurrences due for dispatch")
                return 0

            results = await asyncio.gather(
                *(self.queue.enqueue(occurrence.id, request_id) for occurrence in occurrences)
            )
            enqueued = sum(1 for queued in results if queued)

            logger.info(
                f"Dispatched {enqueued} of {len(occurrences)} due occurrences"
            )
            return enqueued
        except Exception as e:
            logger.error(f"Event dispatch failed: {e}", exc_info=True)
            raise
