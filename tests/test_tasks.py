import pytest
from datetime import date, datetime, timedelta
from unittest.mock import Mock, patch

from notifier.celery import celery
from notifier.config.settings import settings
from notifier.db.models import OccurrenceStatus
from notifier.services.scheduler.notification_queue import job_key
from notifier.tasks.background.notification_sender import (
    _async_send_notification,
    send_notification_task,
)
from notifier.tasks.background.user_event_recalculation import (
    _async_recalculate_user_events,
)
from notifier.tasks.cron.event_checker import _async_check_events
from notifier.tasks.cron.event_dispatcher import _async_dispatch_events
from notifier.tasks.cron.event_generator import _async_generate_events
from notifier.utils.datetime_utils import naive_utc_now
from notifier.utils.errors import DeliveryError

SENDER = "notifier.tasks.background.notification_sender"


class TestNotificationSenderTask:
    """Test the delivery task wrapper."""

    @pytest.mark.asyncio
    async def test_success_releases_job_key(
        self, session_factory, fake_redis, mock_notification_service, make_user, make_occurrence, fetch_occurrences
    ):
        user = await make_user(date(1990, 3, 15))
        occurrence = await make_occurrence(user, datetime(2024, 3, 15, 9, 0))
        await fake_redis.set(job_key(occurrence.id), "req-1")

        with patch(f"{SENDER}.create_redis_client", return_value=fake_redis), \
             patch(f"{SENDER}.TaskSessionLocal", session_factory), \
             patch(f"{SENDER}.NotificationService", return_value=mock_notification_service):
            result = await _async_send_notification("req-1", occurrence.id)

        assert result["success"] is True
        assert result["status"] == "sent"
        assert await fake_redis.exists(job_key(occurrence.id)) == 0
        assert (await fetch_occurrences(id=occurrence.id))[0].status == OccurrenceStatus.SENT

    @pytest.mark.asyncio
    async def test_failure_raises_and_releases_job_key(
        self, session_factory, fake_redis, mock_notification_service, make_user, make_occurrence
    ):
        user = await make_user(date(1990, 3, 15))
        occurrence = await make_occurrence(user, datetime(2024, 3, 15, 9, 0))
        await fake_redis.set(job_key(occurrence.id), "req-1")
        mock_notification_service.send_event_notification.return_value = False

        with patch(f"{SENDER}.create_redis_client", return_value=fake_redis), \
             patch(f"{SENDER}.TaskSessionLocal", session_factory), \
             patch(f"{SENDER}.NotificationService", return_value=mock_notification_service):
            with pytest.raises(DeliveryError):
                await _async_send_notification("req-1", occurrence.id)

        assert await fake_redis.exists(job_key(occurrence.id)) == 0

    def test_delivery_jobs_are_not_redelivered_by_the_broker(self):
        assert send_notification_task.acks_late is False
        assert send_notification_task.max_retries == 0
        assert celery.conf.task_reject_on_worker_lost is False


class TestCronTasks:
    """Test the cron task wrappers report results the celery way."""

    @pytest.mark.asyncio
    async def test_generate_events_reports_summary(self, session_factory, fake_redis):
        module = "notifier.tasks.cron.event_generator"
        with patch(f"{module}.create_redis_client", return_value=fake_redis), \
             patch(f"{module}.TaskSessionLocal", session_factory), \
             patch.object(settings, "GENERATOR_DAYS_TO_SCAN", 1), \
             patch.object(settings, "GENERATOR_CONCURRENCY_LIMIT", 1):
            result = await _async_generate_events("test-request")

        assert result["success"] is True
        assert result["skipped"] is False
        assert result["request_id"] == "test-request"

    @pytest.mark.asyncio
    async def test_dispatch_errors_are_reported(self, fake_redis):
        module = "notifier.tasks.cron.event_dispatcher"
        broken_factory = Mock(side_effect=RuntimeError("database unavailable"))

        with patch(f"{module}.create_redis_client", return_value=fake_redis), \
             patch(f"{module}.TaskSessionLocal", broken_factory):
            result = await _async_dispatch_events("test-request")

        assert result == {
            "success": False,
            "error": "database unavailable",
            "request_id": "test-request",
        }

    @pytest.mark.asyncio
    async def test_check_events_reports_summary(self, session_factory, fake_redis):
        module = "notifier.tasks.cron.event_checker"
        with patch(f"{module}.create_redis_client", return_value=fake_redis), \
             patch(f"{module}.TaskSessionLocal", session_factory):
            result = await _async_check_events("test-request")

        assert result == {
            "success": True,
            "timezones_checked": 0,
            "enqueued_count": 0,
            "request_id": "test-request",
        }

    def test_hourly_event_check_is_not_scheduled_by_default(self):
        assert settings.ENABLE_HOURLY_EVENT_CHECK is False
        assert "check-events" not in celery.conf.beat_schedule
        assert {"generate-events", "dispatch-events", "recover-events"} <= set(
            celery.conf.beat_schedule
        )


class TestUserEventRecalculationTask:
    @pytest.mark.asyncio
    async def test_recalculates_future_occurrences(
        self, session_factory, make_user, make_occurrence, fetch_occurrences
    ):
        user = await make_user(date(1990, 6, 1))
        future = await make_occurrence(
            user,
            naive_utc_now().replace(microsecond=0) + timedelta(days=60),
            created_at=datetime(2024, 1, 1),
        )

        with patch(
            "notifier.tasks.background.user_event_recalculation.TaskSessionLocal",
            session_factory,
        ):
            result = await _async_recalculate_user_events(
                "req-1", user.id, "Asia/Tokyo", None, None
            )

        assert result["success"] is True
        assert result["updated_count"] == 1
        row = (await fetch_occurrences(id=future.id))[0]
        assert row.event_metadata["timezone"] == "Asia/Tokyo"

    @pytest.mark.asyncio
    async def test_errors_are_logged_not_raised(self):
        broken_factory = Mock(side_effect=RuntimeError("database unavailable"))

        with patch(
            "notifier.tasks.background.user_event_recalculation.TaskSessionLocal",
            broken_factory,
        ):
            result = await _async_recalculate_user_events(
                "req-1", "u-1", None, "not-a-date", None
            )

        assert result["success"] is False
