"""Timezone helpers.

All instants are stored and compared in UTC. SQLite hands back naive
datetimes, so anything read from the database goes through ``as_utc``.
Calendar days and ``HH:MM`` clock strings live in ``settings.EVENT_TIMEZONE``.
"""
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

import pytz

from app.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def event_tz():
    return pytz.timezone(settings.EVENT_TIMEZONE)


def local_date(value: datetime) -> date:
    """Calendar date of an instant in the event timezone."""
    return as_utc(value).astimezone(event_tz()).date()


def parse_clock(value: str) -> time:
    """Parse an ``HH:MM`` clock string."""
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def at_clock(day: date, clock: str) -> datetime:
    """Project a local ``HH:MM`` clock string onto ``day``, returned in UTC."""
    local = event_tz().localize(datetime.combine(day, parse_clock(clock)))
    return local.astimezone(timezone.utc)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """UTC instants of local midnight at the start of ``day`` and of the next day."""
    tz = event_tz()
    start = tz.localize(datetime.combine(day, time.min))
    end = tz.localize(datetime.combine(day + timedelta(days=1), time.min))
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
