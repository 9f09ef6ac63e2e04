"""Pencil hold API routes — the organizer/admin command boundary."""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.event import EventOut
from app.schemas.pencil_hold import (
    ExpirySweepResult,
    PencilHoldApprove,
    PencilHoldCancel,
    PencilHoldConfirm,
    PencilHoldCreate,
    PencilHoldExtend,
    PencilHoldOut,
    PencilHoldPage,
    PencilHoldStats,
    PencilHoldUpdate,
)
from app.services import pencil_hold_service
from app.services.expiry_sweep import run_expiry_sweep

logger = logging.getLogger(__name__)
router = APIRouter()

STATUS_PATTERN = "^(pending|confirmed|converted|cancelled|expired)$"


@router.post("/", response_model=PencilHoldOut, status_code=status.HTTP_201_CREATED)
def create_pencil_hold(payload: PencilHoldCreate, db: Session = Depends(get_db)):
    """Place a pencil hold on an event after both conflict policies pass."""
    return pencil_hold_service.create_pencil_hold(
        db,
        event_id=payload.event_id,
        user_id=payload.user_id,
        notes=payload.notes,
        priority=payload.priority,
        expires_at=payload.expires_at,
    )


@router.get("/", response_model=PencilHoldPage)
def list_pencil_holds(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status", pattern=STATUS_PATTERN),
    event_id: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    """List pencil holds, highest priority first."""
    return pencil_hold_service.list_pencil_holds(
        db, page=page, limit=limit, status=status_filter, event_id=event_id, search=search,
    )


@router.get("/my-holds", response_model=PencilHoldPage)
def list_my_pencil_holds(
    user_id: str = Query(...),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status", pattern=STATUS_PATTERN),
    db: Session = Depends(get_db),
):
    """List the pencil holds requested by one user."""
    return pencil_hold_service.list_pencil_holds(
        db, page=page, limit=limit, status=status_filter, user_id=user_id,
    )


@router.get("/stats", response_model=PencilHoldStats)
def pencil_hold_stats(db: Session = Depends(get_db)):
    """Counts of pencil holds per status."""
    return pencil_hold_service.get_pencil_hold_stats(db)


@router.get("/events", response_model=list[EventOut])
def events_with_pencil_holds(db: Session = Depends(get_db)):
    """Events that currently carry at least one open pencil hold."""
    return pencil_hold_service.list_events_with_pencil_holds(db)


@router.post("/expired", response_model=ExpirySweepResult)
def handle_expired_pencil_holds(db: Session = Depends(get_db)):
    """Run one expiry sweep pass now."""
    result = run_expiry_sweep(db)
    logger.info("Processed %d expired pencil holds", result["expired_count"])
    return result


@router.get("/{hold_id}", response_model=PencilHoldOut)
def get_pencil_hold(hold_id: str, db: Session = Depends(get_db)):
    """Fetch a pencil hold. Overdue pending holds read as expired."""
    return pencil_hold_service.get_pencil_hold(db, hold_id)


@router.put("/{hold_id}", response_model=PencilHoldOut)
def update_pencil_hold(hold_id: str, payload: PencilHoldUpdate, db: Session = Depends(get_db)):
    """Edit notes/priority of an open pencil hold (requesting user only)."""
    return pencil_hold_service.update_pencil_hold(
        db, hold_id, user_id=payload.user_id, notes=payload.notes, priority=payload.priority,
    )


@router.patch("/{hold_id}/confirm", response_model=PencilHoldOut)
def confirm_pencil_hold(hold_id: str, payload: PencilHoldConfirm, db: Session = Depends(get_db)):
    """Organizer confirmation. Waits for admin approval afterwards."""
    hold = pencil_hold_service.confirm_pencil_hold(db, hold_id, user_id=payload.user_id)
    logger.info("Pencil hold confirmed by organizer: %s - %s", hold_id, payload.user_id)
    return hold


@router.patch("/{hold_id}/approve", response_model=PencilHoldOut)
def approve_pencil_hold(hold_id: str, payload: PencilHoldApprove, db: Session = Depends(get_db)):
    """Admin approval. The event is published."""
    hold = pencil_hold_service.approve_pencil_hold(db, hold_id, approver_id=payload.approver_id)
    logger.info("Pencil hold approved by admin: %s - %s", hold_id, payload.approver_id)
    return hold


@router.patch("/{hold_id}/cancel", response_model=PencilHoldOut)
def cancel_pencil_hold(hold_id: str, payload: PencilHoldCancel, db: Session = Depends(get_db)):
    """Cancel a pending or confirmed pencil hold."""
    return pencil_hold_service.cancel_pencil_hold(
        db, hold_id, reason=payload.reason, actor_user_id=payload.actor_user_id,
    )


@router.patch("/{hold_id}/extend", response_model=PencilHoldOut)
def extend_pencil_hold(hold_id: str, payload: PencilHoldExtend, db: Session = Depends(get_db)):
    """Push a pending pencil hold's expiry forward."""
    return pencil_hold_service.extend_pencil_hold(
        db, hold_id, days=payload.days, actor_user_id=payload.actor_user_id,
    )
