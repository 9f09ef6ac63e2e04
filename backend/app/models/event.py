"""Event ORM model — the reservable resource."""
import uuid
import enum
from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Index, Integer, JSON, String, Enum as SAEnum,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class EventStatus(str, enum.Enum):
    draft = "draft"
    pencil_hold = "pencil_hold"
    pencil_hold_confirmed = "pencil_hold_confirmed"
    pending_approval = "pending_approval"
    published = "published"
    rejected = "rejected"
    unpublished = "unpublished"
    cancelled = "cancelled"
    completed = "completed"
    deleted = "deleted"


# Statuses that block other events in the same category and city
ACTIVE_STATUSES = (
    EventStatus.draft,
    EventStatus.published,
    EventStatus.pencil_hold,
    EventStatus.pencil_hold_confirmed,
    EventStatus.pending_approval,
)

# Statuses owned by the pencil hold workflow; only hold transitions set them
HOLD_STATUSES = (EventStatus.pencil_hold, EventStatus.pencil_hold_confirmed)


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_category_city_start", "category_id", "location_city", "start_date"),
    )

    event_id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(120), nullable=False, unique=True)
    title = Column(String(100), nullable=False)
    description = Column(String(2000), nullable=True)
    category_id = Column(String(36), ForeignKey("categories.category_id"), nullable=False)

    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    start_time = Column(String(5), nullable=True)  # local HH:MM
    end_time = Column(String(5), nullable=True)
    registration_deadline = Column(DateTime(timezone=True), nullable=True)

    location_name = Column(String(100), nullable=False)
    location_address = Column(String(200), nullable=False)
    location_city = Column(String(50), nullable=False)
    location_latitude = Column(Float, nullable=True)
    location_longitude = Column(Float, nullable=True)

    capacity = Column(Integer, nullable=False)
    registration_count = Column(Integer, nullable=False, default=0)

    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.draft)
    pencil_hold_count = Column(Integer, nullable=False, default=0)
    pencil_hold_info = Column(JSON, nullable=True)

    created_by = Column(String(36), ForeignKey("users.user_id"), nullable=False)
    approved_by = Column(String(36), ForeignKey("users.user_id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True), nullable=True)
    deleted_by = Column(String(36), ForeignKey("users.user_id"), nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("Category", lazy="joined")
    pencil_holds = relationship("PencilHold", back_populates="event")

    __mapper_args__ = {"version_id_col": version}

    @property
    def location(self) -> dict:
        coordinates = None
        if self.location_latitude is not None and self.location_longitude is not None:
            coordinates = {"latitude": self.location_latitude, "longitude": self.location_longitude}
        return {
            "name": self.location_name,
            "address": self.location_address,
            "city": self.location_city,
            "coordinates": coordinates,
        }

    @property
    def category_name(self) -> str:
        return self.category.name if self.category else ""

    @property
    def available_spots(self) -> int:
        return self.capacity - self.registration_count
