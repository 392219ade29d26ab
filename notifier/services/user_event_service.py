from datetime import date
from typing import Any, Optional

from redis.exceptions import RedisError

from notifier.services.scheduler.timezone_cache import TimezoneCache
from notifier.utils.context import get_request_id
from notifier.utils.logging import get_logger

logger = get_logger()


class UserEventService:
    """
    Hooks the user module calls after it changes a user.

    Every change drops the cached timezone list. A change to timezone,
    birthday or anniversary date also hands a recalculation job to the
    background worker. Failures are logged and never reach the caller.
    """

    def __init__(self, timezone_cache: TimezoneCache, recalculation_task: Any):
        self.timezone_cache = timezone_cache
        self.recalculation_task = recalculation_task

    async def on_user_created(self, user_id: str) -> None:
        await self._invalidate_timezones(user_id)

    async def on_user_updated(
        self,
        user_id: str,
        timezone: Optional[str] = None,
        birthday: Optional[date] = None,
        anniversary_date: Optional[date] = None,
    ) -> bool:
        """
        Returns:
            bool: True when a recalculation job was handed off
        """
        await self._invalidate_timezones(user_id)

        if timezone is None and birthday is None and anniversary_date is None:
            return False

        return self.recalculate_user_events(user_id, timezone, birthday, anniversary_date)

    async def on_user_deleted(self, user_id: str) -> None:
        await self._invalidate_timezones(user_id)

    def recalculate_user_events(
        self,
        user_id: str,
        timezone: Optional[str] = None,
        birthday: Optional[date] = None,
        anniversary_date: Optional[date] = None,
    ) -> bool:
        logger.info(f"Triggering event recalculation for user {user_id}")
        try:
            self.recalculation_task.delay(
                get_request_id() or f"recalculate-{user_id}",
                user_id,
                timezone=timezone,
                birthday=birthday.isoformat() if birthday else None,
                anniversary_date=anniversary_date.isoformat() if anniversary_date else None,
            )
            return True
        except Exception as e:
            logger.error(f"Error triggering event recalculation for user {user_id}: {e}")
            return False

    async def _invalidate_timezones(self, user_id: str) -> None:
        try:
            await self.timezone_cache.invalidate()
        except RedisError as e:
            logger.error(f"Failed to invalidate timezone cache after change to user {user_id}: {e}")
