import asyncio

from notifier.celery import celery
from notifier.config.settings import settings
from notifier.db.redis import create_redis_client
from notifier.db.session import TaskSessionLocal
from notifier.services.scheduler.event_dispatcher import EventDispatcher
from notifier.services.scheduler.notification_queue import NotificationQueue
from notifier.tasks.background.notification_sender import send_notification_task
from notifier.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def dispatch_events_task(self, request_id: str):
    """
    Every five minutes, enqueue a delivery job for each due PENDING occurrence.

    Args:
        request_id: Request ID for tracking purposes
    """
    return asyncio.run(_async_dispatch_events(request_id))


async def _async_dispatch_events(request_id: str):
    logger = get_logger().bind(request_id=request_id)

    try:
        async with create_redis_client() as redis_client:
            queue = NotificationQueue(
                redis_client, send_notification_task, settings.QUEUE_JOB_KEY_TTL_SECONDS
            )
            dispatcher = EventDispatcher(
                TaskSessionLocal, queue, limit=settings.DISPATCH_BATCH_LIMIT
            )
            enqueued = await dispatcher.dispatch(request_id)

        return {"success": True, "enqueued_count": enqueued, "request_id": request_id}
    except Exception as e:
        logger.error(f"Event dispatcher task exception: {e}", exc_info=True)
        return {"success": False, "error": str(e), "request_id": request_id}
