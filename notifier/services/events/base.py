from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import and_, extract, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from notifier.db.models import EventKind, User
from notifier.utils.schedule_utils import is_leap_year, local_today


class BaseEventProcessor(ABC):
    """
    Strategy for one recurring event kind.

    Subclasses declare which kind they handle and which `User` date column
    drives it, and know how to phrase the message. Everything else (candidate
    selection, the leap-day rule) is shared.
    """

    event_kind: EventKind
    date_field: str

    def __init__(self, check_hour: int):
        self._check_hour = check_hour

    @property
    def check_hour(self) -> int:
        """Local hour at which this kind becomes deliverable"""
        return self._check_hour

    @property
    def date_column(self):
        return getattr(User, self.date_field)

    def event_date(self, user: User) -> Optional[date]:
        return getattr(user, self.date_field, None)

    def match_date_filter(self, target: date) -> ColumnElement[bool]:
        """
        Filter users whose event month/day equals the target date.

        On Feb 28 of a non-leap year users born on Feb 29 match as well, so
        they still get one occurrence per year.
        """
        column = self.date_column
        same_day = and_(
            extract("month", column) == target.month,
            extract("day", column) == target.day,
        )

        if target.month == 2 and target.day == 28 and not is_leap_year(target.year):
            same_day = or_(
                same_day,
                and_(extract("month", column) == 2, extract("day", column) == 29),
            )

        return and_(column.is_not(None), same_day)

    async def select_candidates(
        self, db_session: AsyncSession, tz_name: str, now: Optional[datetime] = None
    ) -> List[User]:
        """Users in `tz_name` whose event falls on the local date of `now`"""
        target = local_today(tz_name, now)
        result = await db_session.execute(
            select(User).where(User.timezone == tz_name, self.match_date_filter(target))
        )
        return list(result.scalars().all())

    @abstractmethod
    def render_message(self, user: User) -> str:
        """Build the message body for this user"""
        pass
