"""
Public virtual queue endpoints for guests.

No authentication: guests identify their place in line by confirmation code.
Mounted under ``/api/attractions/{slug}/queue``.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, EmailStr, Field

from admission.dependencies import get_queue_controller
from admission.models import QueueEntryStatus
from admission.routers.queue import join_response
from admission.schemas.queue import JoinQueueResponse
from admission.services.queue_service import JoinRequest, QueueAdmissionController

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class PublicQueueInfoResponse(BaseModel):
    """Current state of the line, shown before joining."""
    attraction_name: str
    queue_name: str
    is_open: bool
    is_paused: bool
    current_wait_minutes: int
    people_in_queue: int
    queue_size: int  # maximum waiting entries
    status: str  # accepting, paused, full, closed
    message: str


class PublicEntryStatusResponse(BaseModel):
    confirmation_code: str
    position: int
    status: QueueEntryStatus
    party_size: int
    people_ahead: int
    estimated_wait_minutes: int
    estimated_time: datetime
    joined_at: datetime
    queue_name: str
    attraction_name: str


class PublicJoinRequest(BaseModel):
    """Guests cannot link tickets or leave staff notes."""
    guest_name: Optional[str] = Field(None, max_length=200)
    guest_phone: Optional[str] = Field(None, max_length=20)
    guest_email: Optional[EmailStr] = None
    party_size: int = Field(1, ge=1, le=20)


class LeaveQueueRequest(BaseModel):
    confirmation_code: str = Field(..., min_length=4, max_length=12)


class LeaveQueueResponse(BaseModel):
    success: bool
    confirmation_code: str
    status: QueueEntryStatus


# =============================================================================
# Endpoints
# =============================================================================

@router.get("", response_model=PublicQueueInfoResponse)
async def get_queue_info(
    slug: str,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    info = await controller.get_public_info(slug)
    return PublicQueueInfoResponse(
        attraction_name=info.attraction.name,
        queue_name=info.config.name,
        is_open=info.is_open,
        is_paused=info.is_paused,
        current_wait_minutes=info.current_wait_minutes,
        people_in_queue=info.people_in_queue,
        queue_size=info.config.max_queue_size,
        status=info.status,
        message=info.message,
    )


@router.post("/join", response_model=JoinQueueResponse, status_code=status.HTTP_201_CREATED)
async def join_queue(
    slug: str,
    request: PublicJoinRequest,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    """
    Join the virtual queue.

    Returns 409 with the existing ``confirmation_code`` when the phone or
    email is already in line.
    """
    result = await controller.join_public(slug, JoinRequest(**request.model_dump()))
    return join_response(result)


@router.get("/status/{confirmation_code}", response_model=PublicEntryStatusResponse)
async def get_entry_status(
    slug: str,
    confirmation_code: str,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    view = await controller.get_public_status(slug, confirmation_code)
    entry = view.entry
    return PublicEntryStatusResponse(
        confirmation_code=entry.confirmation_code,
        position=entry.position,
        status=entry.status,
        party_size=entry.party_size,
        people_ahead=view.people_ahead,
        estimated_wait_minutes=view.estimated_wait_minutes,
        estimated_time=view.estimated_time,
        joined_at=entry.joined_at,
        queue_name=view.queue_name,
        attraction_name=view.attraction_name,
    )


@router.post("/leave", response_model=LeaveQueueResponse)
async def leave_queue(
    slug: str,
    request: LeaveQueueRequest,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    entry = await controller.leave_public(slug, request.confirmation_code)
    return LeaveQueueResponse(success=True, confirmation_code=entry.confirmation_code, status=entry.status)
