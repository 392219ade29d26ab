import redis.asyncio as redis

from notifier.config.settings import settings


def create_redis_client() -> redis.Redis:
    """
    Build an asyncio Redis client for the lock/cache service.

    Clients are bound to the event loop they are used on; celery tasks create
    one per run and close it with `async with`.
    """
    return redis.Redis(
        host=settings.REDIS_HOST,
        port=settings.REDIS_PORT,
        db=settings.REDIS_DB,
        password=settings.REDIS_PASSWORD or None,
        socket_connect_timeout=5,
        decode_responses=True,
    )
