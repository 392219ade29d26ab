import asyncio

from notifier.celery import celery
from notifier.config.settings import settings
from notifier.db.redis import create_redis_client
from notifier.db.session import TaskSessionLocal
from notifier.services.events.registry import create_default_registry
from notifier.services.notification_service import NotificationService
from notifier.services.scheduler.notification_delivery import (
    NotificationDeliveryService,
)
from notifier.services.scheduler.notification_queue import NotificationQueue
from notifier.utils.logging import get_logger


# Acked on receipt: a job lost with its worker is left PENDING for the recovery sweeper
@celery.task(bind=True, max_retries=0, acks_late=False)
def send_notification_task(self, request_id: str, occurrence_id: str):
    """
    Deliver one notification occurrence through the webhook channel.

    The task never retries itself. A failed delivery leaves the occurrence
    FAILED and the task raises, so the job is recorded as failed; the
    recovery sweeper schedules the next attempt.

    Args:
        request_id: The request ID of the run that enqueued the job
        occurrence_id: ID of the notification occurrence (as string)
    """
    return asyncio.run(_async_send_notification(request_id, occurrence_id))


async def _async_send_notification(request_id: str, occurrence_id: str):
    logger = get_logger().bind(request_id=request_id)

    async with create_redis_client() as redis_client:
        queue = NotificationQueue(
            redis_client, send_notification_task, settings.QUEUE_JOB_KEY_TTL_SECONDS
        )
        delivery = NotificationDeliveryService(
            TaskSessionLocal,
            redis_client,
            create_default_registry(),
            NotificationService(),
            lock_ttl_ms=settings.NOTIFICATION_LOCK_TTL_MS,
        )

        try:
            result = await delivery.deliver(occurrence_id)
        except Exception as e:
            logger.error(
                f"Notification delivery failed for occurrence {occurrence_id}: {e}"
            )
            raise
        finally:
            await queue.release(occurrence_id)

    return {"success": True, **result, "request_id": request_id}
