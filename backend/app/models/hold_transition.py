"""HoldTransition ORM model — append-only ledger of pencil hold changes."""
import uuid
import enum
from sqlalchemy import Column, String, DateTime, JSON, ForeignKey, Enum as SAEnum
from sqlalchemy.sql import func
from app.database import Base


class HoldAction(str, enum.Enum):
    create = "create"
    confirm = "confirm"
    approve = "approve"
    cancel = "cancel"
    expire = "expire"
    extend = "extend"
    update = "update"


class HoldTransition(Base):
    __tablename__ = "hold_transitions"

    transition_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    hold_id = Column(String(36), ForeignKey("pencil_holds.hold_id"), nullable=False, index=True)
    event_id = Column(String(36), ForeignKey("events.event_id"), nullable=False)
    actor_user_id = Column(String(36), ForeignKey("users.user_id"), nullable=True)  # null for the sweep
    action = Column(SAEnum(HoldAction), nullable=False)
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    snapshot = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
