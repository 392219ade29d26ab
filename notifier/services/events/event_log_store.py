from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional
import uuid

from sqlalchemy import and_, insert, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notifier.db.models import (
    EventKind,
    NotificationOccurrence,
    OccurrenceStatus,
    User,
)
from notifier.utils.datetime_utils import naive_utc_now, to_naive_utc, utc_now
from notifier.utils.errors import InvalidScheduleError, NotFoundError
from notifier.utils.logging import get_logger
from notifier.utils.schedule_utils import local_today, scheduled_instant

from .base import BaseEventProcessor
from .registry import EventProcessorRegistry, create_default_registry

logger = get_logger()

UNIQUE_KEY = ["user_id", "event_kind", "occurrence_year"]
DEFAULT_DISPATCH_LIMIT = 5000
DEFAULT_STALE_AFTER = timedelta(hours=1)


def build_occurrence_values(
    user_id: str,
    event_kind: EventKind,
    occurrence_year: int,
    scheduled_at: datetime,
    tz_name: str,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Row values for a new PENDING occurrence (used only when inserting)"""
    created_at = to_naive_utc(now) if now else naive_utc_now()
    return {
        "id": str(uuid.uuid4()),
        "user_id": user_id,
        "event_kind": event_kind,
        "occurrence_year": occurrence_year,
        "status": OccurrenceStatus.PENDING,
        "scheduled_at": to_naive_utc(scheduled_at),
        "retry_count": 0,
        "event_metadata": {"timezone": tz_name},
        "created_at": created_at,
        "updated_at": created_at,
    }


class EventLogStore:
    """
    Access layer for notification occurrences.

    Every write to `notification_occurrences` goes through this class so the
    (user_id, event_kind, occurrence_year) uniqueness is never bypassed.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        registry: Optional[EventProcessorRegistry] = None,
    ):
        self.db = db_session
        self.registry = registry or create_default_registry()

    def _insert_ignoring_duplicates(self):
        """INSERT that leaves an existing row untouched on the unique key"""
        table = NotificationOccurrence.__table__
        dialect = self.db.get_bind().dialect.name

        if dialect == "postgresql":
            return pg_insert(table).on_conflict_do_nothing(index_elements=UNIQUE_KEY)
        if dialect == "sqlite":
            return sqlite_insert(table).on_conflict_do_nothing(
                index_elements=UNIQUE_KEY
            )
        return None

    async def bulk_upsert(self, operations: List[Dict[str, Any]]) -> int:
        """
        Insert-only upsert of occurrence rows.

        Rows whose key already exists are left as they are. Duplicate-key
        conflicts (a concurrent generator inserting the same key) are
        expected and ignored; any other error is propagated.

        Returns:
            int: Number of rows actually inserted
        """
        if not operations:
            return 0

        stmt = self._insert_ignoring_duplicates()
        if stmt is None:
            return await self._insert_row_by_row(operations)

        try:
            result = await self.db.execute(
                stmt.returning(NotificationOccurrence.__table__.c.id), operations
            )
            inserted = len(result.scalars().all())
            await self.db.commit()
            return inserted
        except IntegrityError as e:
            await self.db.rollback()
            logger.debug(f"Bulk upsert hit a duplicate key, retrying row by row: {e}")
            return await self._insert_row_by_row(operations)
        except Exception:
            await self.db.rollback()
            raise

    async def _insert_row_by_row(self, operations: List[Dict[str, Any]]) -> int:
        inserted = 0
        for values in operations:
            try:
                async with self.db.begin_nested():
                    await self.db.execute(
                        insert(NotificationOccurrence.__table__).values(**values)
                    )
                inserted += 1
            except IntegrityError:
                continue
        await self.db.commit()
        return inserted

    async def find_by_id(self, occurrence_id: str) -> NotificationOccurrence:
        occurrence = await self.db.get(NotificationOccurrence, occurrence_id)
        if occurrence is None:
            raise NotFoundError(f"Notification occurrence {occurrence_id} not found")
        return occurrence

    async def find_due_for_dispatch(
        self, now: Optional[datetime] = None, limit: int = DEFAULT_DISPATCH_LIMIT
    ) -> List[NotificationOccurrence]:
        """PENDING occurrences whose scheduled time has arrived, oldest first"""
        now_naive = to_naive_utc(now or utc_now())
        result = await self.db.execute(
            select(NotificationOccurrence)
            .where(
                and_(
                    NotificationOccurrence.status == OccurrenceStatus.PENDING,
                    NotificationOccurrence.scheduled_at <= now_naive,
                )
            )
            .order_by(NotificationOccurrence.scheduled_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def find_for_retry(
        self,
        max_retries: int,
        now: Optional[datetime] = None,
        stale_after: timedelta = DEFAULT_STALE_AFTER,
    ) -> List[NotificationOccurrence]:
        """
        Claim occurrences that need another delivery attempt.

        Selects FAILED occurrences below `max_retries`, and PENDING
        occurrences that are due but have not been touched for `stale_after`
        (a dispatch cycle that never happened or crashed). The selected rows
        are reset to PENDING with a fresh `updated_at` in the same UPDATE
        statement, so a concurrent sweep cannot claim them again.

        A crash between this reset and the caller's enqueue leaves the row
        PENDING; the staleness check of a later sweep picks it up again.
        """
        now_naive = to_naive_utc(now or utc_now())
        stale_before = now_naive - stale_after

        claim = (
            update(NotificationOccurrence)
            .where(
                or_(
                    and_(
                        NotificationOccurrence.status == OccurrenceStatus.FAILED,
                        NotificationOccurrence.retry_count < max_retries,
                    ),
                    and_(
                        NotificationOccurrence.status == OccurrenceStatus.PENDING,
                        NotificationOccurrence.updated_at < stale_before,
                        NotificationOccurrence.scheduled_at <= now_naive,
                    ),
                )
            )
            .values(status=OccurrenceStatus.PENDING, updated_at=now_naive)
            .returning(NotificationOccurrence)
        )

        try:
            result = await self.db.execute(claim)
            occurrences = list(result.scalars().all())
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        occurrences.sort(key=lambda occurrence: occurrence.created_at)
        return occurrences

    async def update_status(
        self,
        occurrence_id: str,
        status: OccurrenceStatus,
        error_message: Optional[str] = None,
    ) -> None:
        """SENT stamps `sent_at`; FAILED records the error and bumps `retry_count`"""
        now_naive = naive_utc_now()
        values: Dict[str, Any] = {"status": status, "updated_at": now_naive}

        if status == OccurrenceStatus.SENT:
            values["sent_at"] = now_naive
        elif status == OccurrenceStatus.FAILED:
            values["error_message"] = error_message
            values["retry_count"] = NotificationOccurrence.retry_count + 1

        try:
            await self.db.execute(
                update(NotificationOccurrence)
                .where(NotificationOccurrence.id == occurrence_id)
                .values(**values)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def recalculate(
        self,
        user_id: str,
        timezone: Optional[str] = None,
        birthday: Optional[date] = None,
        anniversary_date: Optional[date] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """
        Recompute `scheduled_at` for a user's future, undelivered occurrences.

        Values passed in take precedence over the stored profile. Occurrences
        whose schedule cannot be computed are logged and left unchanged.

        Returns:
            int: Number of occurrences rescheduled
        """
        now_naive = to_naive_utc(now or utc_now())
        user = await self.db.get(User, user_id)
        overrides = {"birthday": birthday, "anniversary_date": anniversary_date}

        result = await self.db.execute(
            select(NotificationOccurrence).where(
                and_(
                    NotificationOccurrence.user_id == user_id,
                    NotificationOccurrence.status.in_(
                        [OccurrenceStatus.PENDING, OccurrenceStatus.FAILED]
                    ),
                    NotificationOccurrence.scheduled_at > now_naive,
                )
            )
        )
        occurrences = list(result.scalars().all())

        updated = 0
        for occurrence in occurrences:
            processor = self.registry.get(occurrence.event_kind)
            if processor is None:
                continue

            tz_name = timezone or (
                user.timezone
                if user
                else (occurrence.event_metadata or {}).get("timezone")
            )
            event_date = overrides.get(processor.date_field) or (
                processor.event_date(user) if user else None
            )
            if not tz_name or event_date is None:
                logger.warning(
                    f"Cannot recalculate occurrence {occurrence.id}: missing timezone or date"
                )
                continue

            try:
                new_scheduled_at = scheduled_instant(
                    event_date,
                    processor.check_hour,
                    tz_name,
                    occurrence.occurrence_year,
                )
            except InvalidScheduleError as e:
                logger.warning(
                    f"Skipping recalculation of occurrence {occurrence.id}: {e.message}"
                )
                continue

            occurrence.scheduled_at = to_naive_utc(new_scheduled_at)
            occurrence.event_metadata = {
                **(occurrence.event_metadata or {}),
                "timezone": tz_name,
            }
            updated += 1

        await self.db.commit()
        logger.info(f"Recalculated {updated}/{len(occurrences)} occurrences for user {user_id}")
        return updated

    async def process_events_for_timezone(
        self,
        tz_name: str,
        users: List[User],
        processor: BaseEventProcessor,
        now: Optional[datetime] = None,
    ) -> List[NotificationOccurrence]:
        """
        Lazily materialize this year's occurrences for users matched in a timezone.

        Used by the hourly timezone check and the backfill. Existing rows are
        kept as they are; the rows for the given users are returned.
        """
        if not users:
            return []

        occurrence_year = local_today(tz_name, now).year
        operations = []
        for user in users:
            event_date = processor.event_date(user)
            if event_date is None:
                continue
            try:
                scheduled_at = scheduled_instant(
                    event_date, processor.check_hour, user.timezone, occurrence_year
                )
            except InvalidScheduleError as e:
                logger.warning(f"Skipping user {user.id}: {e.message}")
                continue
            operations.append(
                build_occurrence_values(
                    user.id,
                    processor.event_kind,
                    occurrence_year,
                    scheduled_at,
                    user.timezone,
                    now,
                )
            )

        await self.bulk_upsert(operations)

        result = await self.db.execute(
            select(NotificationOccurrence).where(
                and_(
                    NotificationOccurrence.event_kind == processor.event_kind,
                    NotificationOccurrence.occurrence_year == occurrence_year,
                    NotificationOccurrence.user_id.in_([user.id for user in users]),
                )
            )
        )
        return list(result.scalars().all())
