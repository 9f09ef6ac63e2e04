"""Pencil hold state machine.

``TRANSITIONS`` is the single source of truth for hold status changes and
``apply_transition`` is the only code path that writes ``PencilHold.status``.
Every write also re-derives the owning event's projection
(``pencil_hold_count``, ``pencil_hold_info`` and, inside the hold band,
``status``) and appends a ``HoldTransition`` ledger row, all in the caller's
unit of work.
"""
import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from app.errors import AlreadyCancelledError, InvalidStateTransitionError
from app.models.event import Event, EventStatus, HOLD_STATUSES
from app.models.hold_transition import HoldTransition, HoldAction
from app.models.pencil_hold import PencilHold, HoldStatus, OPEN_HOLD_STATUSES
from app.utils.time_utils import as_utc

logger = logging.getLogger(__name__)

TRANSITIONS: dict[tuple[HoldStatus, HoldAction], HoldStatus] = {
    (HoldStatus.pending, HoldAction.confirm): HoldStatus.confirmed,
    (HoldStatus.pending, HoldAction.cancel): HoldStatus.cancelled,
    (HoldStatus.pending, HoldAction.expire): HoldStatus.expired,
    (HoldStatus.confirmed, HoldAction.approve): HoldStatus.converted,
    (HoldStatus.confirmed, HoldAction.cancel): HoldStatus.cancelled,
}


def next_status(current: HoldStatus, action: HoldAction) -> HoldStatus:
    """Target status for ``action`` from ``current``, or raise."""
    target = TRANSITIONS.get((current, action))
    if target is None:
        if action == HoldAction.cancel and current == HoldStatus.cancelled:
            raise AlreadyCancelledError("Pencil hold is already cancelled", hold_status=current.value)
        raise InvalidStateTransitionError(
            f"Cannot {action.value} a {current.value} pencil hold",
            hold_status=current.value,
            action=action.value,
        )
    return target


def hold_snapshot(hold: PencilHold) -> dict[str, Any]:
    """JSON-safe view of a hold for the ledger."""
    def _iso(value: Optional[datetime]) -> Optional[str]:
        return as_utc(value).isoformat() if value else None

    return {
        "hold_id": hold.hold_id,
        "event_id": hold.event_id,
        "user_id": hold.user_id,
        "status": hold.status.value,
        "priority": hold.priority,
        "notes": hold.notes,
        "expires_at": _iso(hold.expires_at),
        "confirmed_at": _iso(hold.confirmed_at),
        "approved_at": _iso(hold.approved_at),
        "approved_by": hold.approved_by,
        "cancelled_at": _iso(hold.cancelled_at),
        "cancellation_reason": hold.cancellation_reason,
        "expired_at": _iso(hold.expired_at),
    }


def sync_event_projection(db: Session, event: Event, now: datetime) -> None:
    """Re-derive the event's hold projection from the hold table."""
    db.flush()
    open_holds = (
        db.query(PencilHold)
        .filter(PencilHold.event_id == event.event_id, PencilHold.status.in_(OPEN_HOLD_STATUSES))
        .order_by(PencilHold.priority.desc(), PencilHold.created_at.asc(), PencilHold.hold_id.asc())
        .all()
    )
    event.pencil_hold_count = len(open_holds)

    lead = open_holds[0] if open_holds else None
    event.pencil_hold_info = {
        "pencil_hold_id": lead.hold_id,
        "expires_at": as_utc(lead.expires_at).isoformat(),
        "notes": lead.notes,
        "priority": lead.priority,
    } if lead else None

    if event.status in HOLD_STATUSES:
        if any(h.status == HoldStatus.confirmed for h in open_holds):
            event.status = EventStatus.pencil_hold_confirmed
        elif open_holds:
            event.status = EventStatus.pencil_hold
        else:
            event.status = EventStatus.draft

    # Always dirty the row so the event version is asserted at flush
    event.updated_at = now
    flag_modified(event, "updated_at")


def _record(
    db: Session,
    hold: PencilHold,
    action: HoldAction,
    from_status: Optional[HoldStatus],
    actor_user_id: Optional[str],
    now: datetime,
) -> None:
    db.add(HoldTransition(
        hold_id=hold.hold_id,
        event_id=hold.event_id,
        actor_user_id=actor_user_id,
        action=action,
        from_status=from_status.value if from_status else None,
        to_status=hold.status.value,
        snapshot=hold_snapshot(hold),
        created_at=now,
    ))


def register_hold(db: Session, hold: PencilHold, event: Event, actor_user_id: str, now: datetime) -> PencilHold:
    """(none) -> pending. A draft event enters the hold band."""
    hold.status = HoldStatus.pending
    db.add(hold)
    if event.status == EventStatus.draft:
        event.status = EventStatus.pencil_hold
    sync_event_projection(db, event, now)
    _record(db, hold, HoldAction.create, None, actor_user_id, now)
    logger.info("Pencil hold %s created on event %s (expires %s)", hold.hold_id, event.event_id, hold.expires_at)
    return hold


def apply_transition(
    db: Session,
    hold: PencilHold,
    action: HoldAction,
    now: datetime,
    actor_user_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> PencilHold:
    """Move ``hold`` along ``TRANSITIONS`` and write back to its event."""
    from_status = hold.status
    target = next_status(from_status, action)

    hold.status = target
    if target == HoldStatus.confirmed:
        hold.confirmed_at = now
    elif target == HoldStatus.converted:
        hold.approved_at = now
        hold.approved_by = actor_user_id
    elif target == HoldStatus.cancelled:
        hold.cancelled_at = now
        hold.cancellation_reason = reason
    elif target == HoldStatus.expired:
        hold.expired_at = now

    event = hold.event
    if target == HoldStatus.converted:
        event.status = EventStatus.published
        event.approved_at = now
        event.approved_by = actor_user_id
    sync_event_projection(db, event, now)
    _record(db, hold, action, from_status, actor_user_id, now)

    logger.info(
        "Pencil hold %s: %s -> %s (event %s now %s, %d open hold(s))",
        hold.hold_id, from_status.value, target.value,
        event.event_id, event.status.value, event.pencil_hold_count,
    )
    return hold


def record_change(
    db: Session,
    hold: PencilHold,
    action: HoldAction,
    now: datetime,
    actor_user_id: Optional[str] = None,
) -> PencilHold:
    """Non-status change (extension, notes/priority): re-sync projection and log."""
    sync_event_projection(db, hold.event, now)
    _record(db, hold, action, hold.status, actor_user_id, now)
    return hold
