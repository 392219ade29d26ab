from fastapi import APIRouter, Request

from notifier.config.settings import settings
from notifier.utils.responses import ResponseBuilder

health_router = APIRouter()


@health_router.get("")
async def health_check(request: Request):
    """
    Basic health check endpoint

    Returns application status and basic system information
    """
    return ResponseBuilder.success(
        request=request,
        data={"status": "healthy", "service": settings.NAME, "version": settings.VERSION},
        message="Service is running",
    )
