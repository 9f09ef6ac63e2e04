"""Pencil hold service — lifecycle operations on top of the state machine.

Responsibilities:
- Preconditions: hold eligibility, capacity, duplicates, expiry, ownership
- Both conflict policies at creation time
- One transaction per operation; optimistic-lock failures are mapped to
  InvalidStateTransitionError when the hold already moved on, otherwise to
  ConcurrentModificationError
- Read-side listing, stats and pagination
"""
import logging
import math
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.errors import (
    AlreadyCancelledError,
    CapacityExceededError,
    ConcurrentModificationError,
    DuplicateHoldError,
    HoldExpiredError,
    InvalidStateTransitionError,
    NotAuthorizedError,
    NotFoundError,
    ScheduleConflictError,
    ValidationError,
)
from app.models.event import Event
from app.models.hold_transition import HoldAction
from app.models.pencil_hold import PencilHold, HoldStatus, OPEN_HOLD_STATUSES
from app.models.user import User, UserRole
from app.services import hold_transitions
from app.services.conflict_detection import (
    ProposedEvent,
    check_conflicts,
    check_venue_hold_conflicts,
    find_venue_neighbours,
)
from app.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Store lookups
# ---------------------------------------------------------------------------
def get_pencil_hold(db: Session, hold_id: str) -> PencilHold:
    hold = db.get(PencilHold, hold_id)
    if not hold:
        raise NotFoundError("Pencil hold not found", hold_id=hold_id)
    return hold


def find_hold_by_event_and_user(db: Session, event_id: str, user_id: str) -> Optional[PencilHold]:
    return (
        db.query(PencilHold)
        .filter(PencilHold.event_id == event_id, PencilHold.user_id == user_id)
        .first()
    )


def find_holds_by_status_and_expiry(
    db: Session,
    statuses: list[HoldStatus],
    expiry_cutoff: datetime,
) -> list[PencilHold]:
    """Holds in ``statuses`` whose ``expires_at`` is at or before the cutoff."""
    return (
        db.query(PencilHold)
        .filter(PencilHold.status.in_(statuses), PencilHold.expires_at <= as_utc(expiry_cutoff))
        .order_by(PencilHold.expires_at)
        .all()
    )


def _get_event(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if not event or event.is_deleted:
        raise NotFoundError("Event not found", event_id=event_id)
    return event


def _get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found", user_id=user_id)
    return user


def _check_capacity(event: Event) -> None:
    if event.registration_count >= event.capacity:
        raise CapacityExceededError(
            "Event is at full capacity",
            event_id=event.event_id,
            capacity=event.capacity,
            registration_count=event.registration_count,
        )


def _check_owner(hold: PencilHold, user_id: str) -> None:
    if hold.user_id != user_id:
        raise NotAuthorizedError("Only the user who requested this pencil hold may change it.")


@contextmanager
def _unit_of_work(
    db: Session,
    hold_id: Optional[str] = None,
    expected: Optional[HoldStatus] = None,
    action: Optional[HoldAction] = None,
):
    """Commit on success, roll back on any failure and translate lost races."""
    try:
        yield
        db.commit()
    except StaleDataError:
        db.rollback()
        current = db.get(PencilHold, hold_id) if hold_id else None
        if current is not None and expected is not None and current.status != expected:
            logger.info("Pencil hold %s lost a race: now %s", hold_id, current.status.value)
            if action == HoldAction.cancel and current.status == HoldStatus.cancelled:
                raise AlreadyCancelledError(
                    "Pencil hold is already cancelled", hold_status=current.status.value,
                ) from None
            raise InvalidStateTransitionError(
                f"Pencil hold is no longer {expected.value}",
                hold_status=current.status.value,
            ) from None
        raise ConcurrentModificationError(
            "The pencil hold or its event was modified concurrently. Re-fetch and retry."
        ) from None
    except Exception:
        db.rollback()
        raise


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------
def create_pencil_hold(
    db: Session,
    event_id: str,
    user_id: str,
    notes: Optional[str] = None,
    priority: int = 0,
    expires_at: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> PencilHold:
    """Place a pending hold on an eligible event."""
    now = now or utcnow()
    event = _get_event(db, event_id)
    _get_user(db, user_id)

    if event.status.value not in settings.hold_eligible_statuses:
        raise InvalidStateTransitionError(
            "Event is not available for pencil holds",
            event_status=event.status.value,
            eligible_statuses=settings.hold_eligible_statuses,
        )
    _check_capacity(event)

    if find_hold_by_event_and_user(db, event_id, user_id):
        raise DuplicateHoldError("User already has a pencil hold for this event", event_id=event_id)

    if not 0 <= priority <= 10:
        raise ValidationError("Priority must be between 0 and 10", priority=priority)
    if expires_at is None:
        expires_at = now + timedelta(hours=settings.PENCIL_HOLD_DEFAULT_HOURS)
    expires_at = as_utc(expires_at)
    if expires_at <= now:
        raise ValidationError("Expiration date must be in the future", expires_at=expires_at.isoformat())

    # Policy 1: category + city, buffered
    result = check_conflicts(db, ProposedEvent.from_event(event), exclude_event_id=event.event_id)
    if result["has_conflict"]:
        raise ScheduleConflictError(
            result["message"],
            conflicts=result["conflicts"],
            conflict_type=result["conflict_type"],
            suggestions=result["suggestions"],
        )

    # Policy 2: exact venue, open holds only. The neighbours are read with the
    # check; their versions are asserted on commit so a hold placed on one of
    # them in the meantime aborts this one.
    neighbours = find_venue_neighbours(db, event)
    collisions = check_venue_hold_conflicts(db, event, now)
    if collisions:
        raise ScheduleConflictError(
            "Venue is already pencil-held for an overlapping time slot",
            conflicts=collisions,
            conflict_type="venue_overlap",
        )

    hold = PencilHold(
        event_id=event.event_id,
        user_id=user_id,
        created_by=user_id,
        notes=notes,
        priority=priority,
        expires_at=expires_at,
        created_at=now,
    )
    try:
        with _unit_of_work(db):
            hold_transitions.register_hold(db, hold, event, user_id, now)
            for neighbour in neighbours:
                neighbour.updated_at = now
                flag_modified(neighbour, "updated_at")
    except IntegrityError:
        raise DuplicateHoldError("User already has a pencil hold for this event", event_id=event_id) from None
    db.refresh(hold)
    return hold


def confirm_pencil_hold(db: Session, hold_id: str, user_id: str, now: Optional[datetime] = None) -> PencilHold:
    """pending -> confirmed, by the requesting user only."""
    now = now or utcnow()
    hold = get_pencil_hold(db, hold_id)
    _check_owner(hold, user_id)
    hold_transitions.next_status(hold.status, HoldAction.confirm)

    if hold.is_expired_at(now):
        raise HoldExpiredError("Cannot confirm expired pencil hold", expires_at=as_utc(hold.expires_at).isoformat())
    _check_capacity(hold.event)

    with _unit_of_work(db, hold_id, HoldStatus.pending):
        hold_transitions.apply_transition(db, hold, HoldAction.confirm, now, actor_user_id=user_id)
    db.refresh(hold)
    return hold


def approve_pencil_hold(db: Session, hold_id: str, approver_id: str, now: Optional[datetime] = None) -> PencilHold:
    """confirmed -> converted; the event is published in the same transaction."""
    now = now or utcnow()
    approver = _get_user(db, approver_id)
    if approver.role != UserRole.admin:
        raise NotAuthorizedError("Only administrators may approve pencil holds.")

    hold = get_pencil_hold(db, hold_id)
    hold_transitions.next_status(hold.status, HoldAction.approve)
    _check_capacity(hold.event)

    with _unit_of_work(db, hold_id, HoldStatus.confirmed):
        hold_transitions.apply_transition(db, hold, HoldAction.approve, now, actor_user_id=approver_id)
    db.refresh(hold)
    return hold


def cancel_pencil_hold(
    db: Session,
    hold_id: str,
    reason: Optional[str] = None,
    actor_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PencilHold:
    """pending|confirmed -> cancelled. Cancelling twice fails."""
    now = now or utcnow()
    hold = get_pencil_hold(db, hold_id)
    expected = hold.status
    hold_transitions.next_status(expected, HoldAction.cancel)

    with _unit_of_work(db, hold_id, expected, HoldAction.cancel):
        hold_transitions.apply_transition(
            db, hold, HoldAction.cancel, now, actor_user_id=actor_user_id, reason=reason,
        )
    db.refresh(hold)
    return hold


def extend_pencil_hold(
    db: Session,
    hold_id: str,
    days: Optional[int] = None,
    actor_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> PencilHold:
    """Push a pending hold's expiry forward by ``days``. Conflicts are not re-checked."""
    now = now or utcnow()
    days = settings.PENCIL_HOLD_EXTENSION_DAYS if days is None else days
    if days < 1:
        raise ValidationError("Extension must be at least one day", days=days)

    hold = get_pencil_hold(db, hold_id)
    if hold.status != HoldStatus.pending:
        raise InvalidStateTransitionError(
            "Only pending pencil holds can be extended", hold_status=hold.status.value,
        )
    if hold.is_expired_at(now):
        raise HoldExpiredError("Cannot extend expired pencil hold", expires_at=as_utc(hold.expires_at).isoformat())

    with _unit_of_work(db, hold_id, HoldStatus.pending):
        hold.expires_at = as_utc(hold.expires_at) + timedelta(days=days)
        hold_transitions.record_change(db, hold, HoldAction.extend, now, actor_user_id=actor_user_id)
    db.refresh(hold)
    logger.info("Pencil hold %s extended by %d day(s) to %s", hold_id, days, hold.expires_at)
    return hold


def update_pencil_hold(
    db: Session,
    hold_id: str,
    user_id: str,
    notes: Optional[str] = None,
    priority: Optional[int] = None,
    now: Optional[datetime] = None,
) -> PencilHold:
    """Edit notes/priority of an open hold (owner only)."""
    now = now or utcnow()
    hold = get_pencil_hold(db, hold_id)
    _check_owner(hold, user_id)
    if hold.status not in OPEN_HOLD_STATUSES:
        raise InvalidStateTransitionError(
            f"Cannot update a {hold.status.value} pencil hold", hold_status=hold.status.value,
        )
    if priority is not None and not 0 <= priority <= 10:
        raise ValidationError("Priority must be between 0 and 10", priority=priority)

    expected = hold.status
    with _unit_of_work(db, hold_id, expected):
        if notes is not None:
            hold.notes = notes
        if priority is not None:
            hold.priority = priority
        hold_transitions.record_change(db, hold, HoldAction.update, now, actor_user_id=user_id)
    db.refresh(hold)
    logger.info("Pencil hold %s updated by %s", hold_id, user_id)
    return hold


def expire_pencil_hold(db: Session, hold_id: str, now: Optional[datetime] = None) -> bool:
    """pending -> expired if overdue. Returns False when there is nothing to do."""
    now = now or utcnow()
    hold = db.get(PencilHold, hold_id)
    if hold is None or hold.status != HoldStatus.pending or as_utc(hold.expires_at) > now:
        return False
    try:
        with _unit_of_work(db, hold_id, HoldStatus.pending):
            hold_transitions.apply_transition(db, hold, HoldAction.expire, now)
    except (InvalidStateTransitionError, ConcurrentModificationError) as exc:
        logger.warning("Skipping pencil hold %s during expiry: %s", hold_id, exc.message)
        return False
    return True


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def list_pencil_holds(
    db: Session,
    page: int = 1,
    limit: int = 10,
    status: Optional[str] = None,
    event_id: Optional[str] = None,
    user_id: Optional[str] = None,
    search: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Paginated holds, highest priority first, newest first within a priority.

    The status filter matches the effective status: an overdue pending hold
    lists as expired before the sweep has run.
    """
    now = now or utcnow()
    query = db.query(PencilHold)
    if status:
        wanted = HoldStatus(status)
        overdue = and_(PencilHold.status == HoldStatus.pending, PencilHold.expires_at < now)
        if wanted == HoldStatus.expired:
            query = query.filter(or_(PencilHold.status == HoldStatus.expired, overdue))
        elif wanted == HoldStatus.pending:
            query = query.filter(PencilHold.status == HoldStatus.pending, PencilHold.expires_at >= now)
        else:
            query = query.filter(PencilHold.status == wanted)
    if event_id:
        query = query.filter(PencilHold.event_id == event_id)
    if user_id:
        query = query.filter(PencilHold.user_id == user_id)
    if search:
        query = query.filter(PencilHold.notes.ilike(f"%{search}%"))

    total = query.count()
    holds = (
        query.order_by(PencilHold.priority.desc(), PencilHold.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "pencil_holds": holds,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if limit else 0,
        },
    }


def get_pencil_hold_stats(db: Session, now: Optional[datetime] = None) -> dict[str, int]:
    now = now or utcnow()
    rows = db.query(PencilHold.status, func.count(PencilHold.hold_id)).group_by(PencilHold.status).all()
    counts = {status.value: count for status, count in rows}
    stats = {s.value: counts.get(s.value, 0) for s in HoldStatus}
    overdue = (
        db.query(func.count(PencilHold.hold_id))
        .filter(PencilHold.status == HoldStatus.pending, PencilHold.expires_at < now)
        .scalar()
    )
    stats[HoldStatus.pending.value] -= overdue
    stats[HoldStatus.expired.value] += overdue
    stats["total"] = sum(counts.values())
    return stats


def list_events_with_pencil_holds(db: Session) -> list[Event]:
    return (
        db.query(Event)
        .filter(Event.pencil_hold_count > 0, Event.is_deleted.is_(False))
        .order_by(Event.start_date)
        .all()
    )
