from typing import Any, Dict

from fastapi import APIRouter, Body, Request

from notifier.utils.datetime_utils import utc_now
from notifier.utils.logging import get_logger
from notifier.utils.responses import ResponseBuilder

test_webhook_router = APIRouter()
logger = get_logger()

_request_count = 0


@test_webhook_router.post("")
async def receive_test_webhook(request: Request, payload: Dict[str, Any] = Body(...)):
    """Local webhook sink that echoes what it receives"""
    global _request_count
    _request_count += 1

    logger.info(f"Test webhook received request #{_request_count}: {payload}")
    return ResponseBuilder.success(
        request=request,
        data={
            "requestCount": _request_count,
            "receivedAt": utc_now().isoformat(),
            "payload": payload,
        },
        message="Webhook received",
    )
