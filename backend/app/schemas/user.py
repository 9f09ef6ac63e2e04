"""Pydantic schemas for Users."""
from datetime import datetime
from pydantic import BaseModel, Field


class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    role: str = Field("organizer", pattern="^(user|organizer|admin)$")


class UserOut(BaseModel):
    user_id: str
    name: str
    email: str
    role: str
    created_at: datetime

    model_config = {"from_attributes": True}
