from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def naive_utc_now() -> datetime:
    """
    Current instant as a naive UTC datetime.

    Every DateTime column stores naive UTC, so values compared against or
    written to the database come from here or from `to_naive_utc`.
    """
    return utc_now().replace(tzinfo=None)


def to_utc(dt: datetime) -> datetime:
    """Aware UTC view of `dt`; naive input is taken to be UTC already."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_naive_utc(dt: datetime) -> datetime:
    return to_utc(dt).replace(tzinfo=None)
