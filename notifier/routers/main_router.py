from fastapi import APIRouter

from notifier.routers.health import health_router
from notifier.routers.scheduler import scheduler_router
from notifier.routers.webhook_sink import test_webhook_router

main_router = APIRouter()
main_router.include_router(health_router, prefix="/health", tags=["health"])
main_router.include_router(scheduler_router, prefix="/scheduler", tags=["scheduler"])
main_router.include_router(
    test_webhook_router, prefix="/test-webhook", tags=["test-webhook"]
)
