"""Event API routes — delegates to event_service and the conflict engine."""
import logging
from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.errors import ValidationError
from app.schemas.conflict import ConflictCheckRequest, ConflictResult
from app.schemas.event import EventCreate, EventUpdate, EventOut
from app.services import event_service
from app.services.conflict_detection import ProposedEvent, check_conflicts

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/check-conflicts", response_model=ConflictResult)
def check_event_conflicts(payload: ConflictCheckRequest, db: Session = Depends(get_db)):
    """Check a proposed event against active same-category, same-city events."""
    if payload.end_date <= payload.start_date:
        raise ValidationError("End date must be after start date")
    proposed = ProposedEvent(
        category_id=payload.category_id,
        city=payload.location.city,
        start_date=payload.start_date,
        end_date=payload.end_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
    )
    return check_conflicts(db, proposed, exclude_event_id=payload.exclude_event_id)


@router.post("/", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: Session = Depends(get_db)):
    """Create a new event after date/category checks."""
    return event_service.create_event(
        db=db,
        title=payload.title,
        description=payload.description,
        category_id=payload.category_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        registration_deadline=payload.registration_deadline,
        location=payload.location.model_dump(),
        capacity=payload.capacity,
        created_by=payload.created_by,
        event_status=payload.status,
    )


@router.get("/", response_model=list[EventOut])
def list_events(
    category_id: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    start_after: Optional[datetime] = Query(None),
    start_before: Optional[datetime] = Query(None),
    include_deleted: bool = Query(False),
    db: Session = Depends(get_db),
):
    """List events with optional filters."""
    return event_service.list_events(
        db,
        category_id=category_id,
        city=city,
        status=status_filter,
        start_after=start_after,
        start_before=start_before,
        include_deleted=include_deleted,
    )


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: str, db: Session = Depends(get_db)):
    """Fetch a single event by ID."""
    return event_service.get_event(db, event_id)


@router.put("/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    actor_user_id: str = Query(..., description="ID of the user performing the update"),
    db: Session = Depends(get_db),
):
    """Update an event (creator or admin, optimistic locking enforced)."""
    updates = payload.model_dump(exclude_unset=True, exclude={"version"})
    return event_service.update_event(
        db=db,
        event_id=event_id,
        actor_user_id=actor_user_id,
        version=payload.version,
        updates=updates,
    )


@router.delete("/{event_id}", response_model=EventOut)
def delete_event(
    event_id: str,
    actor_user_id: str = Query(..., description="ID of the user performing the delete"),
    version: int = Query(..., description="Current event version"),
    db: Session = Depends(get_db),
):
    """Soft-delete an event (creator or admin, optimistic locking enforced)."""
    return event_service.delete_event(
        db=db,
        event_id=event_id,
        actor_user_id=actor_user_id,
        version=version,
    )
