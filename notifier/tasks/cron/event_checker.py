import asyncio

from notifier.celery import celery
from notifier.config.settings import settings
from notifier.db.redis import create_redis_client
from notifier.db.session import TaskSessionLocal
from notifier.services.events.registry import create_default_registry
from notifier.services.scheduler.event_checker import EventChecker
from notifier.services.scheduler.notification_queue import NotificationQueue
from notifier.services.scheduler.timezone_cache import TimezoneCache
from notifier.tasks.background.notification_sender import send_notification_task
from notifier.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def check_events_task(self, request_id: str):
    """
    Hourly timezone matcher. Only scheduled when ENABLE_HOURLY_EVENT_CHECK is set.

    Args:
        request_id: Request ID for tracking purposes
    """
    return asyncio.run(_async_check_events(request_id))


async def _async_check_events(request_id: str):
    logger = get_logger().bind(request_id=request_id)

    try:
        async with create_redis_client() as redis_client:
            queue = NotificationQueue(
                redis_client, send_notification_task, settings.QUEUE_JOB_KEY_TTL_SECONDS
            )
            checker = EventChecker(
                TaskSessionLocal,
                TimezoneCache(redis_client, settings.TIMEZONE_CACHE_TTL_SECONDS),
                create_default_registry(settings),
                queue,
                batch_size=settings.TIMEZONE_BATCH_SIZE,
                max_retries=settings.MAX_RETRY_ATTEMPTS,
            )
            summary = await checker.check_events(request_id)

        return {"success": True, **summary, "request_id": request_id}
    except Exception as e:
        logger.error(f"Event checker task exception: {e}", exc_info=True)
        return {"success": False, "error": str(e), "request_id": request_id}
