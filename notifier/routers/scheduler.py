from typing import Annotated, AsyncGenerator

from fastapi import APIRouter, Depends, Request

from notifier.config.settings import settings
from notifier.db.redis import create_redis_client
from notifier.db.session import AsyncSessionLocal
from notifier.services.scheduler import NotificationQueue, SchedulerService
from notifier.tasks.background.notification_sender import send_notification_task
from notifier.utils.responses import ResponseBuilder

scheduler_router = APIRouter()


async def get_scheduler_service() -> AsyncGenerator[SchedulerService, None]:
    """Dependency building the scheduler jobs over a per-request Redis client"""
    async with create_redis_client() as redis_client:
        queue = NotificationQueue(
            redis_client, send_notification_task, settings.QUEUE_JOB_KEY_TTL_SECONDS
        )
        yield SchedulerService(AsyncSessionLocal, redis_client, queue)


SchedulerDep = Annotated[SchedulerService, Depends(get_scheduler_service)]


def _trigger_response(request: Request, result):
    return ResponseBuilder.success(
        request=request,
        data=result.model_dump(exclude_none=True, by_alias=True),
        message=result.message,
    )


@scheduler_router.post("/trigger-generate")
async def trigger_generate(request: Request, scheduler: SchedulerDep):
    """Run the occurrence generator now"""
    return _trigger_response(request, await scheduler.trigger_generation())


@scheduler_router.post("/trigger-dispatch")
async def trigger_dispatch(request: Request, scheduler: SchedulerDep):
    """Enqueue every due PENDING occurrence now"""
    return _trigger_response(
        request, await scheduler.trigger_dispatch(request.state.request_id)
    )


@scheduler_router.post("/trigger-recover")
async def trigger_recover(request: Request, scheduler: SchedulerDep):
    return _trigger_response(
        request, await scheduler.trigger_recovery(request.state.request_id)
    )


@scheduler_router.post("/trigger-events")
async def trigger_events(request: Request, scheduler: SchedulerDep):
    """
    Deliver today's events for timezones whose local clock is at the check hour.
    """
    return _trigger_response(
        request, await scheduler.trigger_events(request.state.request_id)
    )


@scheduler_router.post("/trigger-backfill")
async def trigger_backfill(request: Request, scheduler: SchedulerDep):
    """
    Deliver today's events for timezones whose check hour has already passed.
    """
    return _trigger_response(
        request, await scheduler.trigger_backfill(request.state.request_id)
    )
