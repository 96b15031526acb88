"""
Wall-clock helpers.

All timestamps are stored as naive UTC datetimes so they compare cleanly with
values read back from the database. Services take a `clock` callable
defaulting to utc_now so tests can pin time.
"""
from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """Current time as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Drop tzinfo after converting aware datetimes to UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def age_in_days(then: datetime, now: datetime) -> float:
    """Fractional days between two datetimes (negative if `then` is ahead)."""
    if isinstance(then, date) and not isinstance(then, datetime):
        then = datetime(then.year, then.month, then.day)
    return (to_naive_utc(now) - to_naive_utc(then)).total_seconds() / 86400.0
