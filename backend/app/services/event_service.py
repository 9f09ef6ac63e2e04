"""Event record store — validation, authorization and optimistic locking.

Responsibilities:
- Date invariants: end after start, registration deadline on or before start
- Authorization hook: only the creator (or an admin) may update/delete
- Optimistic locking via the client-supplied version field
- Hold-owned fields (hold statuses, pencil_hold_count, pencil_hold_info) are
  never written from here; the pencil hold state machine owns them
- Soft delete (flag + metadata)
"""
import logging
import re
import uuid
from datetime import datetime
from typing import Optional, Any

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.errors import (
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from app.models.category import Category
from app.models.event import Event, EventStatus, HOLD_STATUSES
from app.models.user import User, UserRole
from app.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

# Hold statuses are reachable only through pencil hold transitions
WRITABLE_STATUSES = {s.value for s in EventStatus} - {s.value for s in HOLD_STATUSES} - {EventStatus.deleted.value}

UPDATABLE_FIELDS = {
    "title", "description", "category_id", "start_date", "end_date", "start_time", "end_time",
    "registration_deadline", "capacity", "registration_count",
}
NULLABLE_FIELDS = {"description", "start_time", "end_time", "registration_deadline"}

LOCATION_FIELDS = {
    "name": "location_name",
    "address": "location_address",
    "city": "location_city",
}


def slugify(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-") or "event"


def _unique_slug(db: Session, title: str) -> str:
    slug = slugify(title)
    if db.query(Event.event_id).filter(Event.slug == slug).first():
        slug = f"{slug}-{uuid.uuid4().hex[:8]}"
    return slug


def _validate_schedule(
    start: datetime,
    end: datetime,
    registration_deadline: Optional[datetime],
) -> None:
    if end <= start:
        raise ValidationError("End date must be after start date")
    if registration_deadline and registration_deadline > start:
        raise ValidationError("Registration deadline must be before or on start date")


def _validate_status(value: str) -> EventStatus:
    if value not in WRITABLE_STATUSES:
        raise ValidationError(
            f"Status '{value}' cannot be set directly",
            allowed=sorted(WRITABLE_STATUSES),
        )
    return EventStatus(value)


def _check_authorization(db: Session, event: Event, actor_user_id: str) -> None:
    """Only the creator or an admin may modify this event."""
    if event.created_by == actor_user_id:
        return
    actor = db.get(User, actor_user_id)
    if actor is None or actor.role != UserRole.admin:
        raise NotAuthorizedError("Only the event creator or an admin may modify this event.")


def _check_version(event: Event, version: int) -> None:
    if event.version != version:
        raise VersionConflictError(
            f"Version mismatch: expected {event.version}, got {version}. Re-fetch and retry.",
            current_version=event.version,
        )


def _apply_location(event: Event, location: dict[str, Any]) -> None:
    for key, column in LOCATION_FIELDS.items():
        if key in location and location[key] is not None:
            setattr(event, column, location[key])
    if "coordinates" in location:
        coordinates = location["coordinates"] or {}
        event.location_latitude = coordinates.get("latitude")
        event.location_longitude = coordinates.get("longitude")


def _commit(db: Session, event: Event) -> Event:
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise VersionConflictError("Event was modified concurrently. Re-fetch and retry.") from None
    except Exception:
        db.rollback()
        raise
    db.refresh(event)
    return event


def get_event(db: Session, event_id: str, include_deleted: bool = False) -> Event:
    event = db.get(Event, event_id)
    if not event or (event.is_deleted and not include_deleted):
        raise NotFoundError("Event not found", event_id=event_id)
    return event


def list_events(
    db: Session,
    category_id: Optional[str] = None,
    city: Optional[str] = None,
    status: Optional[str] = None,
    start_after: Optional[datetime] = None,
    start_before: Optional[datetime] = None,
    include_deleted: bool = False,
) -> list[Event]:
    query = db.query(Event)
    if category_id:
        query = query.filter(Event.category_id == category_id)
    if city:
        query = query.filter(Event.location_city == city)
    if status:
        if status not in EventStatus.__members__:
            raise ValidationError(f"Unknown event status '{status}'")
        query = query.filter(Event.status == EventStatus(status))
    if start_after:
        query = query.filter(Event.start_date >= as_utc(start_after))
    if start_before:
        query = query.filter(Event.start_date <= as_utc(start_before))
    if not include_deleted:
        query = query.filter(Event.is_deleted.is_(False))
    return query.order_by(Event.start_date).all()


def create_event(
    db: Session,
    title: str,
    category_id: str,
    start_date: datetime,
    end_date: datetime,
    location: dict[str, Any],
    capacity: int,
    created_by: str,
    description: Optional[str] = None,
    start_time: Optional[str] = None,
    end_time: Optional[str] = None,
    registration_deadline: Optional[datetime] = None,
    event_status: str = "draft",
) -> Event:
    """Create an event after invariant checks."""
    start_date = as_utc(start_date)
    end_date = as_utc(end_date)
    registration_deadline = as_utc(registration_deadline)
    _validate_schedule(start_date, end_date, registration_deadline)
    status = _validate_status(event_status)

    if not db.get(Category, category_id):
        raise NotFoundError("Category not found", category_id=category_id)
    if not db.get(User, created_by):
        raise NotFoundError("User not found", user_id=created_by)

    event = Event(
        slug=_unique_slug(db, title),
        title=title,
        description=description,
        category_id=category_id,
        start_date=start_date,
        end_date=end_date,
        start_time=start_time,
        end_time=end_time,
        registration_deadline=registration_deadline,
        capacity=capacity,
        registration_count=0,
        status=status,
        pencil_hold_count=0,
        created_by=created_by,
    )
    _apply_location(event, location)
    db.add(event)
    _commit(db, event)
    logger.info("Created event '%s' (%s) in %s by %s", title, event.event_id, event.location_city, created_by)
    return event


def update_event(
    db: Session,
    event_id: str,
    actor_user_id: str,
    version: int,
    updates: dict[str, Any],
) -> Event:
    """Update an event with optimistic locking and authorization."""
    event = get_event(db, event_id)
    _check_authorization(db, event, actor_user_id)
    _check_version(event, version)

    updates = dict(updates)
    location = updates.pop("location", None)
    new_status = updates.pop("status", None)
    if new_status is not None:
        new_status = _validate_status(new_status)
        if event.status in HOLD_STATUSES and event.pencil_hold_count > 0:
            raise InvalidStateTransitionError(
                "Event status is managed by its open pencil holds",
                event_status=event.status.value,
            )
    if "category_id" in updates and updates["category_id"] and not db.get(Category, updates["category_id"]):
        raise NotFoundError("Category not found", category_id=updates["category_id"])

    for field in ("start_date", "end_date", "registration_deadline"):
        if field in updates:
            updates[field] = as_utc(updates[field])

    try:
        for field, value in updates.items():
            if field not in UPDATABLE_FIELDS:
                continue
            if value is None and field not in NULLABLE_FIELDS:
                continue
            setattr(event, field, value)
        if location:
            _apply_location(event, location)
        if new_status is not None:
            event.status = new_status

        if event.registration_count > event.capacity:
            raise ValidationError("Registration count cannot exceed capacity")
        _validate_schedule(as_utc(event.start_date), as_utc(event.end_date), as_utc(event.registration_deadline))
    except ValidationError:
        db.rollback()
        raise

    event.updated_at = utcnow()
    _commit(db, event)
    logger.info("Updated event %s to version %d", event_id, event.version)
    return event


def delete_event(db: Session, event_id: str, actor_user_id: str, version: int) -> Event:
    """Soft-delete an event. Events with open pencil holds must have them cancelled first."""
    event = get_event(db, event_id)
    _check_authorization(db, event, actor_user_id)
    _check_version(event, version)
    if event.pencil_hold_count > 0:
        raise InvalidStateTransitionError(
            "Cancel the event's open pencil holds before deleting it",
            pencil_hold_count=event.pencil_hold_count,
        )

    now = utcnow()
    event.is_deleted = True
    event.deleted_at = now
    event.deleted_by = actor_user_id
    event.status = EventStatus.deleted
    event.updated_at = now
    _commit(db, event)
    logger.info("Soft-deleted event %s by %s", event_id, actor_user_id)
    return event
