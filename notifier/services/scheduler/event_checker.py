import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifier.db.models import NotificationOccurrence, OccurrenceStatus
from notifier.services.events.base import BaseEventProcessor
from notifier.services.events.event_log_store import EventLogStore
from notifier.services.events.registry import EventProcessorRegistry
from notifier.utils.datetime_utils import utc_now
from notifier.utils.logging import get_logger
from notifier.utils.schedule_utils import is_past_local_hour, local_hour_matches

from .notification_queue import NotificationQueue
from .timezone_cache import TimezoneCache

logger = get_logger()

HourMatcher = Callable[[str, int, Optional[datetime]], bool]


class EventChecker:
    """
    Timezone driven delivery path.

    For each processor, picks the timezones whose local clock is at the
    processor's check hour, materializes today's occurrences for the users
    there and enqueues the ones still deliverable: PENDING rows, and FAILED
    rows below the retry cap. `backfill` does the same for every timezone
    whose check hour has already passed today.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timezone_cache: TimezoneCache,
        registry: EventProcessorRegistry,
        queue: NotificationQueue,
        batch_size: int = 5,
        max_retries: int = 12,
    ):
        self.session_factory = session_factory
        self.timezone_cache = timezone_cache
        self.registry = registry
        self.queue = queue
        self.batch_size = max(1, batch_size)
        self.max_retries = max_retries

    async def check_events(
        self, request_id: str, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        return await self._run(request_id, now or utc_now(), local_hour_matches)

    async def backfill(
        self, request_id: str, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        return await self._run(request_id, now or utc_now(), is_past_local_hour)

    async def _run(
        self, request_id: str, now: datetime, matcher: HourMatcher
    ) -> Dict[str, Any]:
        async with self.session_factory() as db_session:
            timezones = await self.timezone_cache.get_timezones(db_session)

        if not timezones:
            logger.info("No user timezones found")
            return {"timezones_checked": 0, "enqueued_count": 0}

        enqueued = 0
        for processor in self.registry.processors():
            matching = [
                tz for tz in timezones if matcher(tz, processor.check_hour, now)
            ]
            if not matching:
                continue

            logger.info(
                f"Processing {processor.event_kind.value} for {len(matching)} timezone(s)"
            )
            for start in range(0, len(matching), self.batch_size):
                batch = matching[start : start + self.batch_size]
                results = await asyncio.gather(
                    *(
                        self._process_timezone(tz, processor, request_id, now)
                        for tz in batch
                    )
                )
                enqueued += sum(results)

        return {"timezones_checked": len(timezones), "enqueued_count": enqueued}

    async def _process_timezone(
        self,
        tz_name: str,
        processor: BaseEventProcessor,
        request_id: str,
        now: datetime,
    ) -> int:
        async with self.session_factory() as db_session:
            store = EventLogStore(db_session, self.registry)
            users = await processor.select_candidates(db_session, tz_name, now)
            if not users:
                return 0
            occurrences = await store.process_events_for_timezone(
                tz_name, users, processor, now
            )

        pending_ids: List[str] = [
            occurrence.id
            for occurrence in occurrences
            if self._deliverable(occurrence)
        ]
        results = await asyncio.gather(
            *(self.queue.enqueue(occurrence_id, request_id) for occurrence_id in pending_ids)
        )
        queued = sum(1 for result in results if result)

        logger.info(
            f"Timezone {tz_name}: {len(users)} {processor.event_kind.value} candidate(s), "
            f"{queued} job(s) enqueued"
        )
        return queued

    def _deliverable(self, occurrence: NotificationOccurrence) -> bool:
        if occurrence.status == OccurrenceStatus.PENDING:
            return True
        return (
            occurrence.status == OccurrenceStatus.FAILED
            and occurrence.retry_count < self.max_retries
        )
