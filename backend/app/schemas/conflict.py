"""Pydantic schemas for conflict detection."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from app.schemas.event import CLOCK_PATTERN


class ProposedLocation(BaseModel):
    city: str = Field(min_length=1, max_length=50)
    name: Optional[str] = None
    address: Optional[str] = None


class ConflictCheckRequest(BaseModel):
    category_id: str
    location: ProposedLocation
    start_date: datetime
    end_date: datetime
    start_time: Optional[str] = Field(None, pattern=CLOCK_PATTERN)
    end_time: Optional[str] = Field(None, pattern=CLOCK_PATTERN)
    exclude_event_id: Optional[str] = None


class ConflictingEvent(BaseModel):
    event_id: str
    title: str
    slug: str
    status: str
    category_name: str
    city: str
    start_date: datetime
    end_date: datetime
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    conflict_type: str
    conflict_date: Optional[str] = None
    message: str


class AlternativeSuggestions(BaseModel):
    alternative_times: list[str] = []
    alternative_dates: list[str] = []
    alternative_locations: list[str] = []
    nearby_venues: list[str] = []


class ConflictResult(BaseModel):
    has_conflict: bool
    conflict_type: Optional[str] = None
    conflicts: list[ConflictingEvent] = []
    message: str
    suggestions: AlternativeSuggestions = AlternativeSuggestions()
