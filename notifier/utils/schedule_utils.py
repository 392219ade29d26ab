from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from notifier.utils.datetime_utils import to_utc, utc_now
from notifier.utils.errors import InvalidScheduleError

# Local hour used to decide whether this year's occurrence is still ahead
NEXT_OCCURRENCE_ANCHOR_HOUR = 9


def is_leap_year(year: int) -> bool:
    return (year % 4 == 0 and year % 100 != 0) or year % 400 == 0


def _normalize_day(year: int, month: int, day: int) -> int:
    """Feb 29 falls back to Feb 28 when the target year has no leap day."""
    if month == 2 and day == 29 and not is_leap_year(year):
        return 28
    return day


def _resolve_zone(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError, TypeError) as e:
        raise InvalidScheduleError(f"Unknown timezone '{tz_name}': {e}")


def _local_now(tz_name: str, now: Optional[datetime] = None) -> datetime:
    return to_utc(now or utc_now()).astimezone(_resolve_zone(tz_name))


def local_today(tz_name: str, now: Optional[datetime] = None) -> date:
    """Calendar date currently observed in the given timezone."""
    return _local_now(tz_name, now).date()


def next_occurrence_year(
    month: int, day: int, tz_name: str, now: Optional[datetime] = None
) -> int:
    """
    Year of the next occurrence of a month/day in the given timezone.

    Returns the current local year unless this year's 9:00 local anchor has
    already passed, in which case the following year.
    """
    local_now = _local_now(tz_name, now)
    year = local_now.year
    anchor = datetime(
        year,
        month,
        _normalize_day(year, month, day),
        NEXT_OCCURRENCE_ANCHOR_HOUR,
        tzinfo=local_now.tzinfo,
    )
    return year + 1 if local_now > anchor else year


def scheduled_instant(
    event_date: date,
    check_hour: int,
    tz_name: str,
    target_year: Optional[int] = None,
) -> datetime:
    """
    Convert a calendar event into the UTC instant it becomes deliverable.

    Builds `target_year-month-day check_hour:00:00` as wall-clock time in
    `tz_name` and converts it to UTC. Feb 29 is moved to Feb 28 in non-leap
    years.

    Args:
        event_date: Date carrying the month/day of the event (year ignored)
        check_hour: Local hour at which the event kind is delivered
        tz_name: IANA timezone id of the user
        target_year: Occurrence year; defaults to `next_occurrence_year`

    Returns:
        datetime: Timezone-aware UTC datetime

    Raises:
        InvalidScheduleError: unknown timezone, or the local time falls into
        a DST gap and does not exist
    """
    zone = _resolve_zone(tz_name)
    year = (
        target_year
        if target_year is not None
        else next_occurrence_year(event_date.month, event_date.day, tz_name)
    )
    day = _normalize_day(year, event_date.month, event_date.day)

    try:
        wall_clock = datetime(year, event_date.month, day, check_hour, 0, 0)
    except ValueError as e:
        raise InvalidScheduleError(f"Invalid local date for {tz_name}: {e}")

    local = wall_clock.replace(tzinfo=zone)
    utc_instant = local.astimezone(timezone.utc)

    # zoneinfo silently shifts non-existent times; a round trip exposes gaps
    if utc_instant.astimezone(zone).replace(tzinfo=None) != wall_clock:
        raise InvalidScheduleError(
            f"Local time {wall_clock.isoformat()} does not exist in {tz_name}"
        )

    return utc_instant


def local_hour_matches(
    tz_name: str, target_hour: int, now: Optional[datetime] = None
) -> bool:
    """True when the local hour in `tz_name` equals `target_hour`. Fails closed."""
    try:
        return _local_now(tz_name, now).hour == target_hour
    except InvalidScheduleError:
        return False


def is_past_local_hour(
    tz_name: str, target_hour: int, now: Optional[datetime] = None
) -> bool:
    """True when the local hour in `tz_name` is >= `target_hour`. Fails closed."""
    try:
        return _local_now(tz_name, now).hour >= target_hour
    except InvalidScheduleError:
        return False
