import asyncio
from datetime import date
from typing import Optional

from notifier.celery import celery
from notifier.db.session import TaskSessionLocal
from notifier.services.events.event_log_store import EventLogStore
from notifier.utils.logging import get_logger


@celery.task(bind=True, max_retries=0)
def recalculate_user_events_task(
    self,
    request_id: str,
    user_id: str,
    timezone: Optional[str] = None,
    birthday: Optional[str] = None,
    anniversary_date: Optional[str] = None,
):
    """
    Reschedule a user's future undelivered occurrences after a profile change.

    Dates arrive as ISO strings. Errors are logged and not retried.

    Args:
        request_id: The request ID from the original HTTP request
        user_id: ID of the changed user
        timezone: New IANA timezone, if it changed
        birthday: New birthday (YYYY-MM-DD), if it changed
        anniversary_date: New anniversary date (YYYY-MM-DD), if it changed
    """
    return asyncio.run(
        _async_recalculate_user_events(
            request_id, user_id, timezone, birthday, anniversary_date
        )
    )


async def _async_recalculate_user_events(
    request_id: str,
    user_id: str,
    timezone: Optional[str],
    birthday: Optional[str],
    anniversary_date: Optional[str],
):
    logger = get_logger().bind(request_id=request_id)

    try:
        async with TaskSessionLocal() as db_session:
            store = EventLogStore(db_session)
            updated = await store.recalculate(
                user_id,
                timezone=timezone,
                birthday=date.fromisoformat(birthday) if birthday else None,
                anniversary_date=(
                    date.fromisoformat(anniversary_date) if anniversary_date else None
                ),
            )

        return {"success": True, "updated_count": updated, "request_id": request_id}
    except Exception as e:
        logger.error(
            f"Error recalculating events for user {user_id}: {e}", exc_info=True
        )
        return {"success": False, "error": str(e), "request_id": request_id}
