import asyncio
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

import redis.asyncio as redis
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifier.db.models import User
from notifier.services.events.base import BaseEventProcessor
from notifier.services.events.event_log_store import (
    EventLogStore,
    build_occurrence_values,
)
from notifier.services.events.registry import EventProcessorRegistry
from notifier.utils.datetime_utils import utc_now
from notifier.utils.errors import InvalidScheduleError
from notifier.utils.logging import get_logger
from notifier.utils.schedule_utils import scheduled_instant

from .locks import GENERATE_EVENTS_LOCK_KEY, RedisLock

logger = get_logger()


class EventGenerator:
    """
    Materializes upcoming occurrences into the event log ahead of time.

    Scans a rolling window of calendar days starting today. For every day and
    every registered processor it pages through the users whose event falls
    on that month/day and inserts one PENDING occurrence per user for the
    day's year. Writes are insert-only, so re-running the generator never
    changes an existing occurrence.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis_client: redis.Redis,
        registry: EventProcessorRegistry,
        days_to_scan: int = 30,
        concurrency_limit: int = 10,
        cursor_batch_size: int = 10000,
        bulk_write_batch_size: int = 5000,
        lock_ttl_ms: int = 3600000,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.days_to_scan = days_to_scan
        self.concurrency_limit = max(1, concurrency_limit)
        self.cursor_batch_size = cursor_batch_size
        self.bulk_write_batch_size = bulk_write_batch_size
        self.lock = RedisLock(redis_client, GENERATE_EVENTS_LOCK_KEY, lock_ttl_ms)

    async def generate(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one generation pass under the global generator lock.

        Returns:
            Dict: `skipped` is True when another instance holds the lock;
            otherwise the pass summary
        """
        if not await self.lock.acquire():
            logger.warning("Event generator already running on another instance, skipping")
            return {"skipped": True, "processed_count": 0}

        try:
            now = now or utc_now()
            summary = {
                "skipped": False,
                "processed_count": 0,
                "skipped_users": 0,
                "failed_batches": 0,
            }

            offsets = list(range(self.days_to_scan))
            for start in range(0, len(offsets), self.concurrency_limit):
                chunk = offsets[start : start + self.concurrency_limit]
                results = await asyncio.gather(
                    *(self._process_day(now.date() + timedelta(days=offset), now) for offset in chunk)
                )
                for result in results:
                    for key in ("processed_count", "skipped_users", "failed_batches"):
                        summary[key] += result[key]

            logger.info(
                f"Event generation completed: {summary['processed_count']} operations, "
                f"{summary['skipped_users']} users skipped, "
                f"{summary['failed_batches']} failed batches"
            )
            return summary
        finally:
            await self.lock.release()

    async def _process_day(self, target: date, now: datetime) -> Dict[str, int]:
        result = {"processed_count": 0, "skipped_users": 0, "failed_batches": 0}

        async with self.session_factory() as db_session:
            store = EventLogStore(db_session, self.registry)
            for processor in self.registry.processors():
                try:
                    processed, skipped = await self._process_kind(
                        db_session, store, processor, target, now
                    )
                    result["processed_count"] += processed
                    result["skipped_users"] += skipped
                except Exception as e:
                    result["failed_batches"] += 1
                    logger.error(
                        f"Event generation failed for {processor.event_kind.value} "
                        f"on {target.isoformat()}: {e}",
                        exc_info=True,
                    )

        return result

    async def _process_kind(
        self,
        db_session: AsyncSession,
        store: EventLogStore,
        processor: BaseEventProcessor,
        target: date,
        now: datetime,
    ) -> tuple:
        date_filter = processor.match_date_filter(target)
        processed = 0
        skipped = 0
        operations: List[Dict[str, Any]] = []
        last_id: Optional[str] = None

        while True:
            stmt = select(User).where(date_filter)
            if last_id is not None:
                stmt = stmt.where(User.id > last_id)
            stmt = stmt.order_by(User.id).limit(self.cursor_batch_size)

            users = list((await db_session.execute(stmt)).scalars().all())
            if not users:
                break
            last_id = users[-1].id

            for user in users:
                values = self._build_operation(user, processor, target.year, now)
                if values is None:
                    skipped += 1
                    continue
                operations.append(values)

            # Values are built before writing; a rollback expires the page
            while len(operations) >= self.bulk_write_batch_size:
                batch = operations[: self.bulk_write_batch_size]
                operations = operations[self.bulk_write_batch_size :]
                await store.bulk_upsert(batch)
                processed += len(batch)

            if len(users) < self.cursor_batch_size:
                break

        if operations:
            await store.bulk_upsert(operations)
            processed += len(operations)

        return processed, skipped

    def _build_operation(
        self,
        user: User,
        processor: BaseEventProcessor,
        occurrence_year: int,
        now: datetime,
    ) -> Optional[Dict[str, Any]]:
        event_date = processor.event_date(user)
        if event_date is None:
            return None

        try:
            scheduled_at = scheduled_instant(
                event_date, processor.check_hour, user.timezone, occurrence_year
            )
        except InvalidScheduleError as e:
            logger.warning(f"Skipping user {user.id} for {processor.event_kind.value}: {e.message}")
            return None

        return build_occurrence_values(
            user.id,
            processor.event_kind,
            occurrence_year,
            scheduled_at,
            user.timezone,
            now,
        )

