"""
Pydantic schemas shared by the staff and public queue routers.
"""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, model_validator

from admission.models import QueueEntryStatus


class QueueConfigBase(BaseModel):
    capacity_per_batch: Optional[int] = Field(None, ge=1, le=100)
    batch_interval_minutes: Optional[int] = Field(None, ge=1, le=60)
    max_wait_minutes: Optional[int] = Field(None, ge=15, le=480)
    max_queue_size: Optional[int] = Field(None, ge=10, le=5000)
    allow_rejoin: Optional[bool] = None
    require_check_in: Optional[bool] = None
    notification_lead_minutes: Optional[int] = Field(None, ge=1, le=60)
    expiry_minutes: Optional[int] = Field(None, ge=5, le=60)


class QueueConfigCreate(QueueConfigBase):
    """Unset fields fall back to the queue defaults."""
    name: Optional[str] = Field(None, max_length=100)


class QueueConfigUpdate(QueueConfigBase):
    """Schema for updating a queue (all fields optional)."""
    name: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None


class QueueConfigResponse(BaseModel):
    id: uuid.UUID
    attraction_id: uuid.UUID
    name: str
    is_active: bool
    is_paused: bool
    capacity_per_batch: int
    batch_interval_minutes: int
    max_wait_minutes: int
    max_queue_size: int
    allow_rejoin: bool
    require_check_in: bool
    notification_lead_minutes: int
    expiry_minutes: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class QueueEntryResponse(BaseModel):
    """Full entry as staff see it."""
    id: uuid.UUID
    confirmation_code: str
    ticket_id: Optional[uuid.UUID] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    party_size: int
    position: int
    status: QueueEntryStatus
    joined_at: datetime
    notified_at: Optional[datetime] = None
    called_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    left_at: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class JoinQueueRequest(BaseModel):
    guest_name: Optional[str] = Field(None, max_length=200)
    guest_phone: Optional[str] = Field(None, max_length=20)
    guest_email: Optional[EmailStr] = None
    party_size: int = Field(1, ge=1, le=20)
    ticket_id: Optional[uuid.UUID] = None
    notes: Optional[str] = Field(None, max_length=500)


class JoinQueueResponse(BaseModel):
    id: uuid.UUID
    confirmation_code: str
    position: int
    estimated_wait_minutes: int
    estimated_time: datetime
    party_size: int
    status: QueueEntryStatus
    status_url: str


class UpdateEntryRequest(BaseModel):
    status: Optional[QueueEntryStatus] = None
    notes: Optional[str] = Field(None, max_length=500)

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.status is None and self.notes is None:
            raise ValueError("Provide a status or notes to update")
        return self


class HourCount(BaseModel):
    hour: str  # "18:00"
    count: int


def hour_buckets(by_hour: dict[datetime, int]) -> list[HourCount]:
    return [HourCount(hour=hour.strftime("%H:00"), count=count) for hour, count in by_hour.items()]


class QueueStatsResponse(BaseModel):
    date: date
    total_joined: int
    total_served: int
    total_expired: int
    total_left: int
    total_no_show: int
    avg_wait_minutes: int
    max_wait_minutes: int
    current_waiting: int
    by_hour: list[HourCount]
    peak_hour: Optional[str] = None
