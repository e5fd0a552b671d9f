"""Time helpers: UTC now and the business-day boundary."""

from datetime import datetime, time, timedelta, timezone
from typing import Callable
from zoneinfo import ZoneInfo

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (Mongo hands them back naive unless tz_aware)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def business_day_start(now: datetime, tz_name: str) -> datetime:
    """Midnight of `now`'s calendar day in the business timezone, expressed in UTC."""
    tz = ZoneInfo(tz_name)
    local = as_utc(now).astimezone(tz)
    midnight = datetime.combine(local.date(), time.min, tzinfo=tz)
    return midnight.astimezone(timezone.utc)


def next_business_day_start(now: datetime, tz_name: str) -> datetime:
    tz = ZoneInfo(tz_name)
    local = as_utc(now).astimezone(tz)
    midnight = datetime.combine(local.date() + timedelta(days=1), time.min, tzinfo=tz)
    return midnight.astimezone(timezone.utc)
