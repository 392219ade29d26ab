import json
import pytest
from datetime import date
from unittest.mock import AsyncMock, Mock

import httpx

from notifier.db.models import EventKind, NotificationOccurrence, User
from notifier.services.channels import WebhookChannel
from notifier.services.notification_service import NotificationService

WEBHOOK_URL = "http://hooks.test/notify"


def make_channel(handler) -> WebhookChannel:
    return WebhookChannel(
        url=WEBHOOK_URL, timeout=1.0, transport=httpx.MockTransport(handler)
    )


class TestWebhookChannel:
    """Test the JSON webhook channel."""

    @pytest.mark.asyncio
    async def test_posts_message_metadata_and_timestamp(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        sent = await make_channel(handler).send("Hello", {"userId": "u-1"})

        assert sent is True
        assert captured["url"] == WEBHOOK_URL
        assert captured["body"]["message"] == "Hello"
        assert captured["body"]["userId"] == "u-1"
        assert "timestamp" in captured["body"]

    @pytest.mark.asyncio
    async def test_non_2xx_returns_false(self):
        channel = make_channel(lambda request: httpx.Response(500, text="nope"))

        assert await channel.send("Hello") is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert await make_channel(handler).send("Hello") is False

    def test_channel_name(self):
        assert WebhookChannel(url=WEBHOOK_URL).channel_name == "webhook"


class TestNotificationService:
    @pytest.mark.asyncio
    async def test_sends_occurrence_metadata(self):
        channel = Mock()
        channel.channel_name = "webhook"
        channel.send = AsyncMock(return_value=True)
        user = User(id="u-1", first_name="Ada", last_name="Lovelace", birthday=date(1990, 1, 1))
        occurrence = NotificationOccurrence(
            id="occ-1", user_id="u-1", event_kind=EventKind.BIRTHDAY, occurrence_year=2024
        )

        result = await NotificationService(channel).send_event_notification(
            occurrence, user, "Hey"
        )

        assert result is True
        channel.send.assert_awaited_once_with(
            "Hey",
            {
                "userId": "u-1",
                "eventKind": "birthday",
                "occurrenceYear": 2024,
                "occurrenceId": "occ-1",
            },
        )
