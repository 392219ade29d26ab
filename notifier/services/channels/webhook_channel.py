from typing import Any, Dict, Optional

import httpx

from notifier.config.settings import settings
from notifier.utils.datetime_utils import utc_now
from notifier.utils.logging import get_logger

from .base import NotificationChannel

logger = get_logger()


class WebhookChannel(NotificationChannel):
    """Posts the message as JSON to the configured webhook URL"""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url or settings.WEBHOOK_URL
        self.timeout = timeout if timeout is not None else settings.WEBHOOK_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def channel_name(self) -> str:
        return "webhook"

    async def send(
        self, message: str, metadata: Optional[Dict[str, Any]] = None
    ) -> bool:
        payload = {
            "message": message,
            **(metadata or {}),
            "timestamp": utc_now().isoformat(),
        }

        try:
            logger.info(f"Sending webhook: {message}")
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook: {e}")
            return False

        if response.is_success:
            logger.info(f"Webhook sent successfully: {message}")
            return True

        logger.warning(f"Webhook returned status {response.status_code}: {message}")
        return False
