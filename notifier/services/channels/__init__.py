from .base import NotificationChannel
from .webhook_channel import WebhookChannel

__all__ = ["NotificationChannel", "WebhookChannel"]
