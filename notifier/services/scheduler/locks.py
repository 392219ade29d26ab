import redis.asyncio as redis

from notifier.utils.logging import get_logger

logger = get_logger()

GENERATE_EVENTS_LOCK_KEY = "scheduler:lock:generate-events"
RECOVER_EVENTS_LOCK_KEY = "scheduler:lock:recover-events"
NOTIFICATION_LOCK_PREFIX = "notification-lock"


def notification_lock_key(occurrence_id: str) -> str:
    return f"{NOTIFICATION_LOCK_PREFIX}:{occurrence_id}"


class RedisLock:
    """
    Mutual exclusion through Redis SET NX with a TTL.

    A holder that crashes never releases; the key expires after `ttl_ms`.
    Callers acquire, run the body in try, and release in finally.
    """

    def __init__(self, client: redis.Redis, key: str, ttl_ms: int):
        self.client = client
        self.key = key
        self.ttl_ms = ttl_ms

    async def acquire(self) -> bool:
        acquired = await self.client.set(self.key, "locked", px=self.ttl_ms, nx=True)
        return bool(acquired)

    async def release(self) -> None:
        await self.client.delete(self.key)
