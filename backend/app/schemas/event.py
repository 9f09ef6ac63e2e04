"""Pydantic schemas for Events."""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

CLOCK_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class Coordinates(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class Location(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    address: str = Field(min_length=1, max_length=200)
    city: str = Field(min_length=1, max_length=50)
    coordinates: Optional[Coordinates] = None


class EventCreate(BaseModel):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    category_id: str
    start_date: datetime
    end_date: datetime
    start_time: Optional[str] = Field(None, pattern=CLOCK_PATTERN)
    end_time: Optional[str] = Field(None, pattern=CLOCK_PATTERN)
    registration_deadline: Optional[datetime] = None
    location: Location
    capacity: int = Field(ge=1, le=10000)
    created_by: str
    status: str = "draft"


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    category_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    start_time: Optional[str] = Field(None, pattern=CLOCK_PATTERN)
    end_time: Optional[str] = Field(None, pattern=CLOCK_PATTERN)
    registration_deadline: Optional[datetime] = None
    location: Optional[Location] = None
    capacity: Optional[int] = Field(None, ge=1, le=10000)
    registration_count: Optional[int] = Field(None, ge=0)
    status: Optional[str] = None
    version: int  # required for optimistic locking


class PencilHoldInfo(BaseModel):
    pencil_hold_id: str
    expires_at: datetime
    notes: Optional[str] = None
    priority: int


class EventOut(BaseModel):
    event_id: str
    slug: str
    title: str
    description: Optional[str] = None
    category_id: str
    category_name: str
    start_date: datetime
    end_date: datetime
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    registration_deadline: Optional[datetime] = None
    location: Location
    capacity: int
    registration_count: int
    status: str
    pencil_hold_count: int
    pencil_hold_info: Optional[PencilHoldInfo] = None
    created_by: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    is_deleted: bool
    deleted_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
