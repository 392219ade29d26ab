from typing import Any, Dict

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notifier.db.models import OccurrenceStatus, User
from notifier.services.events.event_log_store import EventLogStore
from notifier.services.events.registry import EventProcessorRegistry
from notifier.services.notification_service import NotificationService
from notifier.utils.errors import DeliveryError, NotFoundError
from notifier.utils.logging import get_logger

from .locks import RedisLock, notification_lock_key

logger = get_logger()

SEND_FAILED_MESSAGE = "Failed to send webhook"


class NotificationDeliveryService:
    """
    Delivers a single occurrence.

    Delivery runs under a short per-occurrence lock so two jobs for the same
    occurrence never send concurrently; an occurrence already SENT is left
    alone. A failed send marks the occurrence FAILED (one retry counted) and
    raises `DeliveryError`, which the recovery sweeper later picks up.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        redis_client: redis.Redis,
        registry: EventProcessorRegistry,
        notification_service: NotificationService,
        lock_ttl_ms: int = 30000,
    ):
        self.session_factory = session_factory
        self.redis = redis_client
        self.registry = registry
        self.notification_service = notification_service
        self.lock_ttl_ms = lock_ttl_ms

    async def deliver(self, occurrence_id: str) -> Dict[str, Any]:
        lock = RedisLock(self.redis, notification_lock_key(occurrence_id), self.lock_ttl_ms)
        if not await lock.acquire():
            logger.warning(f"Lock already held for occurrence {occurrence_id}, skipping")
            return {"status": "locked", "occurrence_id": occurrence_id}

        try:
            async with self.session_factory() as db_session:
                store = EventLogStore(db_session, self.registry)
                return await self._deliver(db_session, store, occurrence_id)
        finally:
            await lock.release()
            logger.debug(f"Released lock for occurrence {occurrence_id}")

    async def _deliver(
        self, db_session: AsyncSession, store: EventLogStore, occurrence_id: str
    ) -> Dict[str, Any]:
        occurrence = await store.find_by_id(occurrence_id)

        if occurrence.status == OccurrenceStatus.SENT:
            logger.info(f"Occurrence {occurrence_id} already sent, skipping")
            return {"status": "already_sent", "occurrence_id": occurrence_id}

        try:
            user = await db_session.get(User, occurrence.user_id)
            if user is None:
                raise NotFoundError(f"User {occurrence.user_id} not found")

            processor = self.registry.get(occurrence.event_kind)
            if processor is None:
                raise DeliveryError(
                    f"No processor registered for event kind {occurrence.event_kind.value}"
                )

            message = processor.render_message(user)
            logger.info(f"Sending notification for occurrence {occurrence_id}: \"{message}\"")
            success = await self.notification_service.send_event_notification(
                occurrence, user, message
            )
        except Exception as e:
            logger.error(f"Error delivering occurrence {occurrence_id}: {e}", exc_info=True)
            await store.update_status(
                occurrence_id, OccurrenceStatus.FAILED, getattr(e, "message", str(e))
            )
            raise

        if not success:
            await store.update_status(
                occurrence_id, OccurrenceStatus.FAILED, SEND_FAILED_MESSAGE
            )
            logger.error(f"Failed to send notification for occurrence {occurrence_id}")
            raise DeliveryError(f"Notification sending failed for occurrence {occurrence_id}")

        await store.update_status(occurrence_id, OccurrenceStatus.SENT)
        logger.info(f"Successfully sent notification for occurrence {occurrence_id}")
        return {"status": "sent", "occurrence_id": occurrence_id}
