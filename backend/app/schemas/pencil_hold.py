"""Pydantic schemas for PencilHolds."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class PencilHoldCreate(BaseModel):
    event_id: str
    user_id: str
    notes: Optional[str] = Field(None, max_length=500)
    priority: int = Field(0, ge=0, le=10)
    expires_at: Optional[datetime] = None


class PencilHoldUpdate(BaseModel):
    user_id: str
    notes: Optional[str] = Field(None, max_length=500)
    priority: Optional[int] = Field(None, ge=0, le=10)


class PencilHoldConfirm(BaseModel):
    user_id: str


class PencilHoldApprove(BaseModel):
    approver_id: str


class PencilHoldCancel(BaseModel):
    reason: str = Field(min_length=1, max_length=200)
    actor_user_id: Optional[str] = None


class PencilHoldExtend(BaseModel):
    days: int = Field(7, ge=1, le=30)
    actor_user_id: Optional[str] = None


class PencilHoldOut(BaseModel):
    hold_id: str
    event_id: str
    user_id: str
    created_by: str
    status: str
    effective_status: str
    is_expired: bool
    days_until_expiration: int
    priority: int
    notes: Optional[str] = None
    expires_at: datetime
    confirmed_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    expired_at: Optional[datetime] = None
    version: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class PencilHoldPage(BaseModel):
    pencil_holds: list[PencilHoldOut]
    pagination: Pagination


class PencilHoldStats(BaseModel):
    total: int
    pending: int
    confirmed: int
    converted: int
    cancelled: int
    expired: int


class ExpirySweepResult(BaseModel):
    expired_count: int
