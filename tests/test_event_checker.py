import json
import pytest
from datetime import date, datetime, timezone

from notifier.db.models import EventKind, OccurrenceStatus
from notifier.services.scheduler.event_checker import EventChecker
from notifier.services.scheduler.timezone_cache import TIMEZONE_CACHE_KEY, TimezoneCache


@pytest.fixture
def timezone_cache(fake_redis):
    return TimezoneCache(fake_redis, ttl_seconds=3600)


@pytest.fixture
def checker(session_factory, timezone_cache, registry, notification_queue):
    return EventChecker(
        session_factory,
        timezone_cache,
        registry,
        notification_queue,
        batch_size=1,
        max_retries=3,
    )


class TestTimezoneCache:
    """Test the read-through timezone list cache."""

    @pytest.mark.asyncio
    async def test_reads_through_and_caches(self, db_session, timezone_cache, fake_redis, make_user):
        await make_user(date(1990, 1, 1), tz_name="Europe/Paris", user_id="a")
        await make_user(date(1990, 1, 1), tz_name="Asia/Tokyo", user_id="b")
        await make_user(date(1990, 1, 1), tz_name="Asia/Tokyo", user_id="c")

        timezones = await timezone_cache.get_timezones(db_session)

        assert timezones == ["Asia/Tokyo", "Europe/Paris"]
        assert json.loads(await fake_redis.get(TIMEZONE_CACHE_KEY)) == timezones

    @pytest.mark.asyncio
    async def test_serves_cached_value_until_invalidated(self, db_session, timezone_cache, make_user):
        await make_user(date(1990, 1, 1), tz_name="Europe/Paris", user_id="a")
        assert await timezone_cache.get_timezones(db_session) == ["Europe/Paris"]

        await make_user(date(1990, 1, 1), tz_name="America/Chicago", user_id="b")
        assert await timezone_cache.get_timezones(db_session) == ["Europe/Paris"]

        await timezone_cache.invalidate()
        assert await timezone_cache.get_timezones(db_session) == [
            "America/Chicago",
            "Europe/Paris",
        ]


class TestEventChecker:
    """Test the timezone driven delivery path."""

    @pytest.mark.asyncio
    async def test_enqueues_for_timezones_at_check_hour(
        self, checker, mock_send_task, make_user, fetch_occurrences
    ):
        # 22:15Z is 09:15 in Sydney (March 15) and 22:15 in UTC
        now = datetime(2024, 3, 14, 22, 15, tzinfo=timezone.utc)
        sydney = await make_user(date(1988, 3, 15), tz_name="Australia/Sydney", user_id="sydney")
        await make_user(date(1988, 3, 14), tz_name="UTC", user_id="utc")

        summary = await checker.check_events("req-1", now)

        assert summary["enqueued_count"] == 1
        rows = await fetch_occurrences()
        assert [(row.user_id, row.event_kind) for row in rows] == [
            (sydney.id, EventKind.BIRTHDAY)
        ]
        assert rows[0].occurrence_year == 2024
        assert (
            mock_send_task.apply_async.call_args.kwargs["kwargs"]["occurrence_id"]
            == rows[0].id
        )

    @pytest.mark.asyncio
    async def test_sent_occurrences_are_not_enqueued_again(
        self, checker, mock_send_task, make_user, make_occurrence
    ):
        now = datetime(2024, 3, 15, 9, 5, tzinfo=timezone.utc)
        user = await make_user(date(1988, 3, 15), user_id="utc")
        await make_occurrence(
            user, datetime(2024, 3, 15, 9, 0), status=OccurrenceStatus.SENT
        )

        summary = await checker.check_events("req-1", now)

        assert summary["enqueued_count"] == 0
        mock_send_task.apply_async.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_occurrences_at_retry_cap_stay_failed(
        self, checker, mock_send_task, make_user, make_occurrence
    ):
        now = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
        exhausted_user = await make_user(date(1988, 3, 15), user_id="exhausted")
        retryable_user = await make_user(date(1990, 3, 15), user_id="retryable")
        await make_occurrence(
            exhausted_user,
            datetime(2024, 3, 15, 9, 0),
            status=OccurrenceStatus.FAILED,
            retry_count=3,
        )
        retryable = await make_occurrence(
            retryable_user,
            datetime(2024, 3, 15, 9, 0),
            status=OccurrenceStatus.FAILED,
            retry_count=2,
        )

        summary = await checker.backfill("req-1", now)

        assert summary["enqueued_count"] == 1
        mock_send_task.apply_async.assert_called_once()
        assert (
            mock_send_task.apply_async.call_args.kwargs["kwargs"]["occurrence_id"]
            == retryable.id
        )

    @pytest.mark.asyncio
    async def test_backfill_covers_check_hours_already_passed(
        self, checker, mock_send_task, make_user, fetch_occurrences
    ):
        # 15:00Z: UTC is past both check hours, Los Angeles (08:00) is not
        now = datetime(2024, 3, 15, 15, 0, tzinfo=timezone.utc)
        await make_user(
            date(1988, 3, 15), tz_name="UTC", anniversary_date=date(2012, 3, 15), user_id="utc"
        )
        await make_user(date(1988, 3, 15), tz_name="America/Los_Angeles", user_id="la")

        check = await checker.check_events("req-1", now)
        backfill = await checker.backfill("req-2", now)

        assert check["enqueued_count"] == 0
        assert backfill["enqueued_count"] == 2
        rows = await fetch_occurrences()
        assert {(row.user_id, row.event_kind) for row in rows} == {
            ("utc", EventKind.BIRTHDAY),
            ("utc", EventKind.ANNIVERSARY),
        }

    @pytest.mark.asyncio
    async def test_no_users(self, checker):
        summary = await checker.check_events(
            "req-1", datetime(2024, 3, 15, 9, 0, tzinfo=timezone.utc)
        )

        assert summary == {"timezones_checked": 0, "enqueued_count": 0}
