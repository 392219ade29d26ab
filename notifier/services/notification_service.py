from typing import Optional

from notifier.db.models import NotificationOccurrence, User
from notifier.services.channels import NotificationChannel, WebhookChannel
from notifier.utils.logging import get_logger

logger = get_logger()


class NotificationService:
    """Sends occurrence notifications through a delivery channel"""

    def __init__(self, channel: Optional[NotificationChannel] = None):
        self.channel = channel or WebhookChannel()

    async def send_event_notification(
        self, occurrence: NotificationOccurrence, user: User, message: str
    ) -> bool:
        metadata = {
            "userId": user.id,
            "eventKind": occurrence.event_kind.value,
            "occurrenceYear": occurrence.occurrence_year,
            "occurrenceId": occurrence.id,
        }
        logger.debug(
            f"Sending {occurrence.event_kind.value} notification via {self.channel.channel_name}"
        )
        return await self.channel.send(message, metadata)
