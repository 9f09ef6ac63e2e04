"""Pydantic schemas for Categories."""
from datetime import datetime
from pydantic import BaseModel, Field


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)


class CategoryOut(BaseModel):
    category_id: str
    name: str
    created_at: datetime

    model_config = {"from_attributes": True}
