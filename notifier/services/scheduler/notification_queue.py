import asyncio
from typing import Any

import redis.asyncio as redis

from notifier.utils.logging import get_logger

logger = get_logger()

JOB_KEY_PREFIX = "queue:notification:job"


def job_key(occurrence_id: str) -> str:
    return f"{JOB_KEY_PREFIX}:{occurrence_id}"


class NotificationQueue:
    """
    Delivery job channel keyed by occurrence id.

    A job key is held in Redis from enqueue until the worker finishes the
    job, so enqueueing an occurrence that already has a live job is a no-op.
    The key carries a TTL so a lost job cannot block the occurrence forever.
    """

    def __init__(self, client: redis.Redis, task: Any, job_key_ttl_seconds: int):
        self.client = client
        self.task = task
        self.job_key_ttl_seconds = job_key_ttl_seconds

    async def enqueue(self, occurrence_id: str, request_id: str) -> bool:
        """
        Enqueue one delivery job for the occurrence.

        Returns:
            bool: False when a job for this occurrence is already queued
        """
        claimed = await self.client.set(
            job_key(occurrence_id), request_id, ex=self.job_key_ttl_seconds, nx=True
        )
        if not claimed:
            logger.debug(f"Delivery job for occurrence {occurrence_id} already queued")
            return False

        try:
            await asyncio.to_thread(
                self.task.apply_async,
                kwargs={"request_id": request_id, "occurrence_id": occurrence_id},
                task_id=f"send-notification-{occurrence_id}-{request_id}",
            )
        except Exception:
            await self.release(occurrence_id)
            raise

        return True

    async def release(self, occurrence_id: str) -> None:
        """Drop the job key once the job has completed or failed"""
        await self.client.delete(job_key(occurrence_id))
