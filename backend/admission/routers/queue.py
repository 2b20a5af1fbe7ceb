"""
Virtual queue API endpoints for staff.

Mounted under ``/api/organizations/{org_id}/attractions/{attraction_id}/queue``.
Every route needs a staff token for the organization, and the organization
needs the virtual queue feature.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from admission.auth.dependencies import require_org_access
from admission.dependencies import get_queue_controller
from admission.models import QueueEntryStatus
from admission.schemas.queue import (
    JoinQueueRequest,
    JoinQueueResponse,
    QueueConfigCreate,
    QueueConfigResponse,
    QueueConfigUpdate,
    QueueEntryResponse,
    QueueStatsResponse,
    UpdateEntryRequest,
    hour_buckets,
)
from admission.services.queue_service import JoinRequest, JoinResult, QueueAdmissionController

router = APIRouter(dependencies=[Depends(require_org_access)])


# =============================================================================
# Response Models
# =============================================================================

class QueueSummaryResponse(BaseModel):
    total_waiting: int
    total_served_today: int
    avg_wait_minutes: int


class EntryListResponse(BaseModel):
    entries: list[QueueEntryResponse]
    summary: QueueSummaryResponse


class EntryNotificationResponse(BaseModel):
    """Result of notify / call."""
    entry: QueueEntryResponse
    notification_sent: bool


class EntryCheckInResponse(BaseModel):
    entry: QueueEntryResponse
    total_wait_minutes: Optional[int] = None


class SweepResponse(BaseModel):
    notified: list[str]
    expired: list[str]
    renumbered: int


def join_response(result: JoinResult) -> JoinQueueResponse:
    entry = result.entry
    return JoinQueueResponse(
        id=entry.id,
        confirmation_code=entry.confirmation_code,
        position=entry.position,
        estimated_wait_minutes=result.estimated_wait_minutes,
        estimated_time=result.estimated_time,
        party_size=entry.party_size,
        status=entry.status,
        status_url=result.status_url,
    )


# =============================================================================
# Config
# =============================================================================

@router.get("/config", response_model=QueueConfigResponse)
async def get_queue_config(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    return await controller.get_config(org_id, attraction_id)


@router.post("/config", response_model=QueueConfigResponse, status_code=status.HTTP_201_CREATED)
async def create_queue_config(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    request: QueueConfigCreate,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    return await controller.create_config(org_id, attraction_id, request.model_dump(exclude_unset=True))


@router.patch("/config", response_model=QueueConfigResponse)
async def update_queue_config(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    request: QueueConfigUpdate,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    return await controller.update_config(org_id, attraction_id, request.model_dump(exclude_unset=True))


@router.post("/pause", response_model=QueueConfigResponse)
async def pause_queue(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    """Stop accepting new joins. Guests already in line keep their place."""
    return await controller.pause(org_id, attraction_id)


@router.post("/resume", response_model=QueueConfigResponse)
async def resume_queue(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    return await controller.resume(org_id, attraction_id)


# =============================================================================
# Entries
# =============================================================================

@router.get("/entries", response_model=EntryListResponse)
async def list_entries(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    status_filter: Optional[QueueEntryStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    """
    List queue entries in line order.

    Search matches guest name or confirmation code.
    """
    entries, summary = await controller.list_entries(
        org_id, attraction_id, status_filter, search, limit, offset
    )
    return EntryListResponse(
        entries=[QueueEntryResponse.model_validate(e) for e in entries],
        summary=QueueSummaryResponse(**vars(summary)),
    )


@router.post("/entries", response_model=JoinQueueResponse, status_code=status.HTTP_201_CREATED)
async def add_entry(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    request: JoinQueueRequest,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    """Add a guest to the line from the staff console."""
    result = await controller.join(org_id, attraction_id, JoinRequest(**request.model_dump()))
    return join_response(result)


@router.get("/entries/{entry_id}", response_model=QueueEntryResponse)
async def get_entry(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    entry_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    return await controller.get_entry(org_id, attraction_id, entry_id)


@router.post("/entries/{entry_id}/notify", response_model=EntryNotificationResponse)
async def notify_entry(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    entry_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    entry, sent = await controller.notify(org_id, attraction_id, entry_id)
    return EntryNotificationResponse(entry=QueueEntryResponse.model_validate(entry), notification_sent=sent)


@router.post("/entries/{entry_id}/call", response_model=EntryNotificationResponse)
async def call_entry(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    entry_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    entry, sent = await controller.call(org_id, attraction_id, entry_id)
    return EntryNotificationResponse(entry=QueueEntryResponse.model_validate(entry), notification_sent=sent)


@router.post("/entries/{entry_id}/check-in", response_model=EntryCheckInResponse)
async def check_in_entry(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    entry_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    entry = await controller.check_in(org_id, attraction_id, entry_id)
    return EntryCheckInResponse(
        entry=QueueEntryResponse.model_validate(entry),
        total_wait_minutes=entry.wait_duration_minutes,
    )


@router.post("/entries/{entry_id}/no-show", response_model=QueueEntryResponse)
async def mark_no_show(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    entry_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    return await controller.mark_no_show(org_id, attraction_id, entry_id)


@router.patch("/entries/{entry_id}", response_model=QueueEntryResponse)
async def update_entry(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    entry_id: uuid.UUID,
    request: UpdateEntryRequest,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    return await controller.update_entry(org_id, attraction_id, entry_id, request.status, request.notes)


@router.delete("/entries/{entry_id}", response_model=QueueEntryResponse)
async def remove_entry(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    entry_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    return await controller.remove(org_id, attraction_id, entry_id)


# =============================================================================
# Maintenance and stats
# =============================================================================

@router.post("/sweep", response_model=SweepResponse)
async def sweep_queue(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    """
    Notify guests whose turn is near and expire notified guests who never
    showed up. Safe to call repeatedly (e.g. from a scheduler every minute).
    """
    result = await controller.sweep(org_id, attraction_id)
    return SweepResponse(**vars(result))


@router.get("/stats", response_model=QueueStatsResponse)
async def get_queue_stats(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    day: Optional[date] = Query(None, alias="date"),
    controller: QueueAdmissionController = Depends(get_queue_controller),
):
    stats = await controller.get_stats(org_id, attraction_id, day)
    return QueueStatsResponse(
        date=stats.day,
        total_joined=stats.total_joined,
        total_served=stats.total_served,
        total_expired=stats.total_expired,
        total_left=stats.total_left,
        total_no_show=stats.total_no_show,
        avg_wait_minutes=stats.avg_wait_minutes,
        max_wait_minutes=stats.max_wait_minutes,
        current_waiting=stats.current_waiting,
        by_hour=hour_buckets(stats.by_hour),
        peak_hour=stats.peak_hour.strftime("%H:00") if stats.peak_hour else None,
    )
