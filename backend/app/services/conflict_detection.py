"""Conflict detection — two independent scheduling policies.

1. Category/city policy (``check_conflicts``): a proposed event against every
   active event of the same category in the same city, with a setup/teardown
   buffer, all-day blocking and per-day clock projection.
2. Venue policy (``check_venue_hold_conflicts``): an event about to be
   pencil-held against the open holds at the exact same venue.

Both return plain data; raising is left to the caller.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.models.event import Event, ACTIVE_STATUSES
from app.models.pencil_hold import PencilHold, OPEN_HOLD_STATUSES
from app.utils.time_utils import as_utc, at_clock, day_bounds, local_date, parse_clock

logger = logging.getLogger(__name__)

ALL_DAY_THRESHOLD = timedelta(hours=24)

ALTERNATIVE_TIMES = [
    "09:00 - 11:00",
    "11:00 - 13:00",
    "13:00 - 15:00",
    "15:00 - 17:00",
    "17:00 - 19:00",
]
NEARBY_VENUES = [
    "Community Center",
    "Library Hall",
    "School Auditorium",
    "Park Pavilion",
]


@dataclass
class ProposedEvent:
    """The scheduling attributes the category/city policy looks at."""

    category_id: str
    city: str
    start_date: datetime
    end_date: datetime
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @classmethod
    def from_event(cls, event: Event) -> "ProposedEvent":
        return cls(
            category_id=event.category_id,
            city=event.location_city,
            start_date=event.start_date,
            end_date=event.end_date,
            start_time=event.start_time,
            end_time=event.end_time,
        )


def is_all_day(start: datetime, end: datetime) -> bool:
    """An event lasting 24 hours or more blocks whole days."""
    return as_utc(end) - as_utc(start) >= ALL_DAY_THRESHOLD


def event_days(start: datetime, end: datetime) -> list[date]:
    """Every local calendar day the event touches.

    An end exactly at local midnight does not pull in the following day.
    """
    first = local_date(start)
    last = local_date(end)
    if last > first and as_utc(end) == day_bounds(last)[0]:
        last -= timedelta(days=1)
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def has_time_conflict(
    start1: datetime,
    end1: datetime,
    start2: datetime,
    end2: datetime,
    buffer_minutes: int,
) -> bool:
    """Buffered overlap of the second interval against the first."""
    buffer = timedelta(minutes=buffer_minutes)
    return (start2 - buffer) < (end1 + buffer) and end2 > start1


def intervals_conflict(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
    buffer_minutes: int,
) -> bool:
    """``has_time_conflict`` applied both ways, so A vs B equals B vs A."""
    return (
        has_time_conflict(a_start, a_end, b_start, b_end, buffer_minutes)
        or has_time_conflict(b_start, b_end, a_start, a_end, buffer_minutes)
    )


def daily_windows(
    start: datetime,
    end: datetime,
    start_time: Optional[str],
    end_time: Optional[str],
    day: date,
) -> list[tuple[datetime, datetime]]:
    """Occurrences of an event that touch local ``day``.

    With both clock strings the event recurs once per date it covers, and an
    overnight range (e.g. 22:00-02:00) runs into the next date, so the
    occurrence that started the day before counts too. Otherwise the event
    is one window, start clock on the start date and end clock on the end date.
    """
    if not (start_time and end_time):
        eff_start = at_clock(local_date(start), start_time) if start_time else as_utc(start)
        eff_end = at_clock(local_date(end), end_time) if end_time else as_utc(end)
        if eff_end <= eff_start:
            eff_end += timedelta(days=1)
        return [(eff_start, eff_end)]

    first = local_date(start)
    last = local_date(end)
    overnight = parse_clock(end_time) <= parse_clock(start_time)
    if overnight and last > first:
        # The final night ends on the end date; no occurrence starts there
        last -= timedelta(days=1)

    day_start, day_end = day_bounds(day)
    windows = []
    for occurrence in (day - timedelta(days=1), day):
        if not first <= occurrence <= last:
            continue
        occ_start = at_clock(occurrence, start_time)
        occ_end = at_clock(occurrence + timedelta(days=1) if overnight else occurrence, end_time)
        if occ_start < day_end and occ_end > day_start:
            windows.append((occ_start, occ_end))
    return windows


def _city_matches(city: str):
    if settings.CITY_MATCH_NORMALIZE:
        return func.lower(func.trim(Event.location_city)) == city.strip().lower()
    return Event.location_city == city


def find_active_events(
    db: Session,
    category_id: str,
    city: str,
    range_start: datetime,
    range_end: datetime,
    exclude_event_id: Optional[str] = None,
    inclusive: bool = True,
) -> list[Event]:
    """Active, non-deleted events of a category in a city whose range touches ``[range_start, range_end]``."""
    query = db.query(Event).filter(
        Event.category_id == category_id,
        _city_matches(city),
        Event.status.in_(ACTIVE_STATUSES),
        Event.is_deleted.is_(False),
    )
    if inclusive:
        query = query.filter(Event.start_date <= range_end, Event.end_date >= range_start)
    else:
        query = query.filter(Event.start_date < range_end, Event.end_date > range_start)
    if exclude_event_id:
        query = query.filter(Event.event_id != exclude_event_id)
    return query.order_by(Event.start_date).all()


def _conflict_entry(event: Event, conflict_type: str, message: str, day: Optional[date] = None) -> dict[str, Any]:
    return {
        "event_id": event.event_id,
        "title": event.title,
        "slug": event.slug,
        "status": event.status.value,
        "category_name": event.category_name,
        "city": event.location_city,
        "start_date": as_utc(event.start_date),
        "end_date": as_utc(event.end_date),
        "start_time": event.start_time,
        "end_time": event.end_time,
        "conflict_type": conflict_type,
        "conflict_date": day.isoformat() if day else None,
        "message": message,
    }


def alternative_suggestions(proposed: ProposedEvent) -> dict[str, list[str]]:
    """Advisory alternatives. Never checked against the calendar."""
    start_day = local_date(proposed.start_date)
    return {
        "alternative_times": list(ALTERNATIVE_TIMES),
        "alternative_dates": [(start_day + timedelta(days=i)).isoformat() for i in range(1, 8)],
        "alternative_locations": [],
        "nearby_venues": list(NEARBY_VENUES),
    }


def check_conflicts(
    db: Session,
    proposed: ProposedEvent,
    exclude_event_id: Optional[str] = None,
    buffer_minutes: Optional[int] = None,
) -> dict[str, Any]:
    """Check a proposed event against active same-category, same-city events."""
    if buffer_minutes is None:
        buffer_minutes = settings.CONFLICT_BUFFER_MINUTES
    start = as_utc(proposed.start_date)
    end = as_utc(proposed.end_date)

    if is_all_day(start, end):
        blocking = find_active_events(
            db, proposed.category_id, proposed.city, start, end, exclude_event_id,
        )
        if blocking:
            message = (
                f"All-day event conflicts with existing {blocking[0].category_name} "
                f"events in {proposed.city}"
            )
            logger.info("All-day conflict for %s/%s: %d event(s)", proposed.category_id, proposed.city, len(blocking))
            return {
                "has_conflict": True,
                "conflict_type": "all_day",
                "conflicts": [_conflict_entry(ev, "all_day", message) for ev in blocking],
                "message": message,
                "suggestions": alternative_suggestions(proposed),
            }

    conflicts: list[dict[str, Any]] = []
    seen: set[str] = set()
    for day in event_days(start, end):
        day_start, day_end = day_bounds(day)
        new_windows = daily_windows(start, end, proposed.start_time, proposed.end_time, day)

        for existing in find_active_events(
            db, proposed.category_id, proposed.city, day_start, day_end, exclude_event_id, inclusive=False,
        ):
            if existing.event_id in seen:
                continue
            old_windows = daily_windows(
                existing.start_date, existing.end_date, existing.start_time, existing.end_time, day,
            )
            if any(
                intervals_conflict(old_start, old_end, new_start, new_end, buffer_minutes)
                for old_start, old_end in old_windows
                for new_start, new_end in new_windows
            ):
                seen.add(existing.event_id)
                conflicts.append(_conflict_entry(
                    existing,
                    "time_overlap",
                    f"Time conflict with existing {existing.category_name} event: {existing.title}",
                    day,
                ))

    logger.info(
        "Conflict check for category %s in %s (%s to %s): %d conflict(s)",
        proposed.category_id, proposed.city, start, end, len(conflicts),
    )
    if conflicts:
        return {
            "has_conflict": True,
            "conflict_type": "time_overlap",
            "conflicts": conflicts,
            "message": f"Found {len(conflicts)} time conflict(s) with existing events",
            "suggestions": alternative_suggestions(proposed),
        }
    return {
        "has_conflict": False,
        "conflict_type": None,
        "conflicts": [],
        "message": "No conflicts found",
        "suggestions": {
            "alternative_times": [],
            "alternative_dates": [],
            "alternative_locations": [],
            "nearby_venues": [],
        },
    }


def check_venue_hold_conflicts(db: Session, event: Event, now: datetime) -> list[dict[str, Any]]:
    """Open, unexpired holds on other events at the same venue with an overlapping ``[start, end)``."""
    holds = (
        db.query(PencilHold)
        .join(Event, PencilHold.event_id == Event.event_id)
        .filter(
            PencilHold.status.in_(OPEN_HOLD_STATUSES),
            PencilHold.expires_at > now,
            PencilHold.event_id != event.event_id,
            Event.is_deleted.is_(False),
            Event.location_name == event.location_name,
            Event.location_address == event.location_address,
            Event.start_date < event.end_date,
            Event.end_date > event.start_date,
        )
        .all()
    )
    collisions = []
    for hold in holds:
        other = hold.event
        collisions.append({
            "hold_id": hold.hold_id,
            "hold_status": hold.status.value,
            "event_id": other.event_id,
            "title": other.title,
            "venue": f"{other.location_name}, {other.location_address}",
            "start_date": as_utc(other.start_date),
            "end_date": as_utc(other.end_date),
            "expires_at": as_utc(hold.expires_at),
            "conflict_type": "venue_overlap",
            "message": f"Venue already pencil-held for event: {other.title}",
        })
    if collisions:
        logger.info("Venue collision for event %s: %d open hold(s)", event.event_id, len(collisions))
    return collisions


def find_venue_neighbours(db: Session, event: Event) -> list[Event]:
    """Other live events at the same venue whose ``[start, end)`` overlaps ``event``.

    A hold placed on any of them could collide with a hold on ``event``.
    """
    return (
        db.query(Event)
        .filter(
            Event.event_id != event.event_id,
            Event.is_deleted.is_(False),
            Event.location_name == event.location_name,
            Event.location_address == event.location_address,
            Event.start_date < event.end_date,
            Event.end_date > event.start_date,
        )
        .order_by(Event.event_id)
        .all()
    )
