from datetime import timedelta
from typing import Optional

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifier.config.settings import Settings, settings as default_settings
from notifier.schemas.scheduler_schemas import TriggerResult
from notifier.services.events.registry import (
    EventProcessorRegistry,
    create_default_registry,
)
from notifier.utils.logging import get_logger

from .event_checker import EventChecker
from .event_dispatcher import EventDispatcher
from .event_generator import EventGenerator
from .notification_queue import NotificationQueue
from .recovery_sweeper import RecoverySweeper
from .timezone_cache import TimezoneCache

logger = get_logger()


class SchedulerService:
    """Wires the scheduler jobs together for the manual trigger endpoints"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis_client: redis.Redis,
        queue: NotificationQueue,
        registry: Optional[EventProcessorRegistry] = None,
        app_settings: Settings = default_settings,
    ):
        registry = registry or create_default_registry(app_settings)

        self.generator = EventGenerator(
            session_factory,
            redis_client,
            registry,
            days_to_scan=app_settings.GENERATOR_DAYS_TO_SCAN,
            concurrency_limit=app_settings.GENERATOR_CONCURRENCY_LIMIT,
            cursor_batch_size=app_settings.GENERATOR_CURSOR_BATCH_SIZE,
            bulk_write_batch_size=app_settings.GENERATOR_BULK_WRITE_BATCH_SIZE,
            lock_ttl_ms=app_settings.SCHEDULER_LOCK_TTL_MS,
        )
        self.dispatcher = EventDispatcher(
            session_factory, queue, limit=app_settings.DISPATCH_BATCH_LIMIT
        )
        self.sweeper = RecoverySweeper(
            session_factory,
            redis_client,
            queue,
            max_retries=app_settings.MAX_RETRY_ATTEMPTS,
            lock_ttl_ms=app_settings.RECOVERY_LOCK_TTL_MS,
            stale_after=timedelta(minutes=app_settings.STALE_PENDING_MINUTES),
        )
        self.checker = EventChecker(
            session_factory,
            TimezoneCache(redis_client, app_settings.TIMEZONE_CACHE_TTL_SECONDS),
            registry,
            queue,
            batch_size=app_settings.TIMEZONE_BATCH_SIZE,
            max_retries=app_settings.MAX_RETRY_ATTEMPTS,
        )

    async def trigger_generation(self) -> TriggerResult:
        logger.info("Manual trigger: event generation")
        summary = await self.generator.generate()
        if summary["skipped"]:
            return TriggerResult(
                message="Event generation already running", skipped=True
            )
        return TriggerResult(
            message="Event generation triggered successfully",
            processed_count=summary["processed_count"],
        )

    async def trigger_dispatch(self, request_id: str) -> TriggerResult:
        logger.info("Manual trigger: event dispatch")
        enqueued = await self.dispatcher.dispatch(request_id)
        return TriggerResult(
            message="Event dispatch triggered successfully", processed_count=enqueued
        )

    async def trigger_recovery(self, request_id: str) -> TriggerResult:
        logger.info("Manual trigger: recovery sweep")
        summary = await self.sweeper.recover(request_id)
        if summary["skipped"]:
            return TriggerResult(message="Recovery sweep already running", skipped=True)
        return TriggerResult(
            message="Recovery sweep triggered successfully",
            processed_count=summary["recovered_count"],
        )

    async def trigger_events(self, request_id: str) -> TriggerResult:
        logger.info("Manual trigger: timezone event check")
        summary = await self.checker.check_events(request_id)
        return TriggerResult(
            message="Event check triggered successfully",
            processed_count=summary["enqueued_count"],
        )

    async def trigger_backfill(self, request_id: str) -> TriggerResult:
        logger.info("Manual trigger: backfill")
        summary = await self.checker.backfill(request_id)
        return TriggerResult(
            message="Backfill triggered successfully",
            processed_count=summary["enqueued_count"],
        )
