"""PencilHold ORM model — a soft, time-limited claim on an event slot."""
import math
import uuid
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Index, Enum as SAEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base
from app.utils.time_utils import as_utc, utcnow


class HoldStatus(str, enum.Enum):
    pending = "pending"
    confirmed = "confirmed"
    converted = "converted"
    cancelled = "cancelled"
    expired = "expired"


# Holds that still claim their slot
OPEN_HOLD_STATUSES = (HoldStatus.pending, HoldStatus.confirmed)
TERMINAL_HOLD_STATUSES = (HoldStatus.converted, HoldStatus.cancelled, HoldStatus.expired)


class PencilHold(Base):
    __tablename__ = "pencil_holds"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_pencil_hold_event_user"),
        Index("ix_pencil_holds_status_expires_at", "status", "expires_at"),
    )

    hold_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.event_id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    created_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    status = Column(SAEnum(HoldStatus), nullable=False, default=HoldStatus.pending)
    priority = Column(Integer, nullable=False, default=0)
    notes = Column(String(500), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    approved_by = Column(String(36), ForeignKey("users.user_id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(200), nullable=True)
    expired_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    event = relationship("Event", back_populates="pencil_holds")

    __mapper_args__ = {"version_id_col": version}

    def is_expired_at(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > as_utc(self.expires_at)

    def effective_status_at(self, now: Optional[datetime] = None) -> HoldStatus:
        """Stored status, with an overdue pending hold read as expired."""
        if self.status == HoldStatus.pending and self.is_expired_at(now):
            return HoldStatus.expired
        return self.status

    @property
    def is_expired(self) -> bool:
        return self.is_expired_at()

    @property
    def effective_status(self) -> HoldStatus:
        return self.effective_status_at()

    @property
    def days_until_expiration(self) -> int:
        remaining = as_utc(self.expires_at) - utcnow()
        return math.ceil(remaining.total_seconds() / 86400)
