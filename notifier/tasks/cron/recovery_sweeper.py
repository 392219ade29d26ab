import asyncio
from datetime import timedelta

from notifier.celery import celery
from notifier.config.settings import settings
from notifier.db.redis import create_redis_client
from notifier.db.session import TaskSessionLocal
from notifier.services.scheduler.notification_queue import NotificationQueue
from notifier.services.scheduler.recovery_sweeper import RecoverySweeper
from notifier.tasks.background.notification_sender import send_notification_task
from notifier.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def recover_events_task(self, request_id: str):
    """
    Every thirty minutes, re-enqueue FAILED occurrences below the retry cap
    and PENDING occurrences that were never dispatched.

    Args:
        request_id: Request ID for tracking purposes
    """
    return asyncio.run(_async_recover_events(request_id))


async def _async_recover_events(request_id: str):
    logger = get_logger().bind(request_id=request_id)

    try:
        logger.info("Starting recovery sweeper task")

        async with create_redis_client() as redis_client:
            queue = NotificationQueue(
                redis_client, send_notification_task, settings.QUEUE_JOB_KEY_TTL_SECONDS
            )
            sweeper = RecoverySweeper(
                TaskSessionLocal,
                redis_client,
                queue,
                max_retries=settings.MAX_RETRY_ATTEMPTS,
                lock_ttl_ms=settings.RECOVERY_LOCK_TTL_MS,
                stale_after=timedelta(minutes=settings.STALE_PENDING_MINUTES),
            )
            summary = await sweeper.recover(request_id)

        return {"success": True, **summary, "request_id": request_id}
    except Exception as e:
        logger.error(f"Recovery sweeper task exception: {e}", exc_info=True)
        return {"success": False, "error": str(e), "request_id": request_id}
