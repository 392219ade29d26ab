import asyncio

from notifier.celery import celery
from notifier.config.settings import settings
from notifier.db.redis import create_redis_client
from notifier.db.session import TaskSessionLocal
from notifier.services.events.registry import create_default_registry
from notifier.services.scheduler.event_generator import EventGenerator
from notifier.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def generate_events_task(self, request_id: str):
    """
    Hourly task that materializes upcoming occurrences.

    Scans the next GENERATOR_DAYS_TO_SCAN days for birthdays and
    anniversaries and inserts the missing PENDING occurrences. Only one
    instance runs at a time; a run that finds the generator lock held is
    skipped.

    Args:
        request_id: Request ID for tracking purposes
    """
    return asyncio.run(_async_generate_events(request_id))


async def _async_generate_events(request_id: str):
    logger = get_logger().bind(request_id=request_id)

    try:
        logger.info("Starting event generator task")

        async with create_redis_client() as redis_client:
            generator = EventGenerator(
                TaskSessionLocal,
                redis_client,
                create_default_registry(),
                days_to_scan=settings.GENERATOR_DAYS_TO_SCAN,
                concurrency_limit=settings.GENERATOR_CONCURRENCY_LIMIT,
                cursor_batch_size=settings.GENERATOR_CURSOR_BATCH_SIZE,
                bulk_write_batch_size=settings.GENERATOR_BULK_WRITE_BATCH_SIZE,
                lock_ttl_ms=settings.SCHEDULER_LOCK_TTL_MS,
            )
            summary = await generator.generate()

        logger.info(f"Event generator task completed: {summary}")
        return {"success": True, **summary, "request_id": request_id}
    except Exception as e:
        logger.error(f"Event generator task exception: {e}", exc_info=True)
        return {"success": False, "error": str(e), "request_id": request_id}
