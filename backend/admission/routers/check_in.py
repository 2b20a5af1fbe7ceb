"""
Ticket check-in API endpoints.

Mounted under ``/api/organizations/{org_id}/attractions/{attraction_id}``.

Validate and scan always answer 200: a refused ticket comes back as
``{"valid": false, "error": ..., "message": ...}`` so the scanner can show it.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from admission.auth.dependencies import require_org_access
from admission.auth.jwt import StaffPrincipal
from admission.dependencies import get_ticket_controller
from admission.models import CheckInMethod, Ticket, TicketStatus
from admission.schemas.queue import HourCount, hour_buckets
from admission.services.ticket_service import (
    Arrival,
    ArrivalStatus,
    ScanRequest,
    TicketAdmissionController,
    ValidationResult,
    WalkUpRequest,
)
from admission.store.base import LookupField, TicketContext
from admission.utils.timezone import format_slot_time

router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class ValidateTicketRequest(BaseModel):
    barcode: str = Field(..., min_length=1, max_length=64)


class ScanTicketRequest(BaseModel):
    barcode: str = Field(..., min_length=1, max_length=64)
    station_id: Optional[str] = Field(None, max_length=50)
    method: CheckInMethod = CheckInMethod.BARCODE_SCAN
    guest_count: int = Field(1, ge=1, le=20)
    notes: Optional[str] = Field(None, max_length=500)


class TicketSummary(BaseModel):
    id: uuid.UUID
    ticket_number: str
    barcode: str
    status: TicketStatus
    guest_name: Optional[str] = None
    ticket_type: Optional[str] = None
    time_slot: Optional[str] = None  # "6:30 PM - 7:00 PM"
    order_number: Optional[str] = None
    checked_in_at: Optional[datetime] = None


class ValidationResponse(BaseModel):
    valid: bool
    ticket: Optional[TicketSummary] = None
    error: Optional[str] = None
    message: Optional[str] = None
    checked_in_at: Optional[datetime] = None


class ScanResponse(ValidationResponse):
    check_in_id: Optional[uuid.UUID] = None
    ticket_count: int = 0
    checked_in_count: int = 0


class TicketStatusRequest(BaseModel):
    status: TicketStatus


class TicketResponse(BaseModel):
    id: uuid.UUID
    order_id: uuid.UUID
    ticket_number: str
    barcode: str
    status: TicketStatus
    guest_name: Optional[str] = None
    checked_in_at: Optional[datetime] = None
    checked_in_by: Optional[uuid.UUID] = None

    class Config:
        from_attributes = True


class WalkUpSaleRequest(BaseModel):
    ticket_type_id: uuid.UUID
    quantity: int = Field(..., ge=1, le=50)
    guest_names: list[str] = Field(default_factory=list)
    payment_method: Optional[str] = Field(None, max_length=30)  # cash, card
    station_id: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)


class WalkUpOrderSummary(BaseModel):
    id: uuid.UUID
    order_number: str
    total: Decimal


class WalkUpSaleResponse(BaseModel):
    success: bool
    order: WalkUpOrderSummary
    tickets: list[TicketResponse]


class CheckInStatsResponse(BaseModel):
    date: date
    total_checked_in: int
    total_expected: int
    check_in_rate: int
    by_hour: list[HourCount]
    peak_hour: Optional[str] = None
    by_station: dict[str, int]
    by_method: dict[str, int]


class SlotCapacityResponse(BaseModel):
    slot_id: uuid.UUID
    slot: str
    capacity: Optional[int] = None
    booked: int
    checked_in: int


class CapacityResponse(BaseModel):
    checked_in_today: int
    checked_in_last_hour: int
    by_time_slot: list[SlotCapacityResponse]


class LookupOrder(BaseModel):
    order_id: uuid.UUID
    order_number: str
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    tickets: list[TicketSummary]


class LookupResponse(BaseModel):
    orders: list[LookupOrder]


class CheckInRecordResponse(BaseModel):
    id: uuid.UUID
    ticket_id: Optional[uuid.UUID] = None
    ticket_number: Optional[str] = None
    guest_name: Optional[str] = None
    time_slot_id: Optional[uuid.UUID] = None
    station_id: Optional[str] = None
    check_in_method: CheckInMethod
    guest_count: int
    checked_in_by: Optional[uuid.UUID] = None
    check_in_time: datetime
    notes: Optional[str] = None


class CheckInHistoryResponse(BaseModel):
    check_ins: list[CheckInRecordResponse]
    total: int
    limit: int
    offset: int


class ArrivalResponse(BaseModel):
    ticket_id: uuid.UUID
    ticket_number: str
    guest_name: Optional[str] = None
    time_slot_id: uuid.UUID
    time_slot: str
    status: ArrivalStatus
    minutes_until: int = 0
    minutes_late: int = 0


class ArrivalsResponse(BaseModel):
    pending: list[ArrivalResponse]
    late: list[ArrivalResponse]


def summarize(ticket: Ticket, ctx: Optional[TicketContext]) -> TicketSummary:
    slot = ctx.time_slot if ctx else None
    return TicketSummary(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        barcode=ticket.barcode,
        status=ticket.status,
        guest_name=ticket.guest_name,
        ticket_type=ctx.ticket_type.name if ctx and ctx.ticket_type else None,
        time_slot=(
            f"{format_slot_time(slot.start_time)} - {format_slot_time(slot.end_time)}" if slot else None
        ),
        order_number=ctx.order.order_number if ctx and ctx.order else None,
        checked_in_at=ticket.checked_in_at,
    )


def arrival_response(arrival: Arrival) -> ArrivalResponse:
    ticket = arrival.context.ticket
    slot = arrival.context.time_slot
    return ArrivalResponse(
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number,
        guest_name=ticket.guest_name,
        time_slot_id=slot.id,
        time_slot=format_slot_time(slot.start_time),
        status=arrival.status,
        minutes_until=arrival.minutes_until,
        minutes_late=arrival.minutes_late,
    )


def ticket_summary(result: ValidationResult) -> Optional[TicketSummary]:
    if result.ticket is None:
        return None
    return summarize(result.ticket, result.context)


# =============================================================================
# Tickets
# =============================================================================

@router.post("/tickets/validate", response_model=ValidationResponse)
async def validate_ticket(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    request: ValidateTicketRequest,
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    """Check a ticket without admitting it."""
    result = await controller.validate(org_id, attraction_id, request.barcode)
    return ValidationResponse(
        valid=result.valid,
        ticket=ticket_summary(result),
        error=result.error,
        message=result.message,
        checked_in_at=result.checked_in_at,
    )


@router.post("/tickets/scan", response_model=ScanResponse)
async def scan_ticket(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    request: ScanTicketRequest,
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    """Validate and admit a ticket. A ticket admits at most once."""
    result = await controller.scan(
        org_id,
        attraction_id,
        ScanRequest(**request.model_dump()),
        staff_id=staff.user_id,
    )
    return ScanResponse(
        valid=result.valid,
        ticket=ticket_summary(result),
        error=result.error,
        message=result.message,
        checked_in_at=result.checked_in_at,
        check_in_id=result.check_in_id,
        ticket_count=result.ticket_count,
        checked_in_count=result.checked_in_count,
    )


@router.get("/tickets/lookup", response_model=LookupResponse)
async def lookup_tickets(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    q: str = Query(..., max_length=100),
    by: LookupField = Query(LookupField.NAME),
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    """Find a guest's tickets by name, email, phone, order number or ticket number."""
    matches = await controller.lookup(org_id, attraction_id, q, by)
    return LookupResponse(
        orders=[
            LookupOrder(
                order_id=match.order.id,
                order_number=match.order.order_number,
                customer_name=match.order.customer_name,
                customer_email=match.order.customer_email,
                tickets=[summarize(ctx.ticket, ctx) for ctx in match.tickets],
            )
            for match in matches
        ]
    )


@router.patch("/tickets/{ticket_id}/status", response_model=TicketResponse)
async def update_ticket_status(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    ticket_id: uuid.UUID,
    request: TicketStatusRequest,
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    return await controller.update_ticket_status(
        org_id, attraction_id, ticket_id, request.status, staff_id=staff.user_id
    )


# =============================================================================
# Check-in desk
# =============================================================================

@router.post("/check-in/walk-up", response_model=WalkUpSaleResponse, status_code=status.HTTP_201_CREATED)
async def walk_up_sale(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    request: WalkUpSaleRequest,
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    """Sell tickets at the door and admit the guests immediately."""
    result = await controller.walk_up(
        org_id,
        attraction_id,
        WalkUpRequest(**request.model_dump()),
        staff_id=staff.user_id,
    )
    return WalkUpSaleResponse(
        success=True,
        order=WalkUpOrderSummary(
            id=result.order.id,
            order_number=result.order.order_number,
            total=result.order.total,
        ),
        tickets=[TicketResponse.model_validate(t) for t in result.tickets],
    )


@router.get("/check-in/history", response_model=CheckInHistoryResponse)
async def list_check_ins(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    start: Optional[datetime] = Query(None, alias="from"),
    end: Optional[datetime] = Query(None, alias="to"),
    station_id: Optional[str] = Query(None, max_length=50),
    method: Optional[CheckInMethod] = None,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    page = await controller.list_check_ins(
        org_id, attraction_id, start, end, station_id, method, limit, offset
    )
    return CheckInHistoryResponse(
        check_ins=[
            CheckInRecordResponse(
                id=record.check_in.id,
                ticket_id=record.check_in.ticket_id,
                ticket_number=record.ticket.ticket_number if record.ticket else None,
                guest_name=record.ticket.guest_name if record.ticket else None,
                time_slot_id=record.check_in.time_slot_id,
                station_id=record.check_in.station_id,
                check_in_method=record.check_in.check_in_method,
                guest_count=record.check_in.guest_count,
                checked_in_by=record.check_in.checked_in_by,
                check_in_time=record.check_in.check_in_time,
                notes=record.check_in.notes,
            )
            for record in page.records
        ],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
    )


@router.get("/check-in/arrivals", response_model=ArrivalsResponse)
async def get_arrivals(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    time_slot_id: Optional[uuid.UUID] = None,
    status_filter: Optional[ArrivalStatus] = Query(None, alias="status"),
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    """Tickets expected today that have not been scanned yet."""
    board = await controller.get_arrivals(org_id, attraction_id, time_slot_id, status_filter)
    return ArrivalsResponse(
        pending=[arrival_response(a) for a in board.pending],
        late=[arrival_response(a) for a in board.late],
    )


@router.get("/check-in/stats", response_model=CheckInStatsResponse)
async def get_check_in_stats(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    day: Optional[date] = Query(None, alias="date"),
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    stats = await controller.get_stats(org_id, attraction_id, day)
    return CheckInStatsResponse(
        date=stats.day,
        total_checked_in=stats.total_checked_in,
        total_expected=stats.total_expected,
        check_in_rate=stats.check_in_rate,
        by_hour=hour_buckets(stats.by_hour),
        peak_hour=stats.peak_hour.strftime("%H:00") if stats.peak_hour else None,
        by_station={str(k): v for k, v in stats.by_station.items()},
        by_method={str(k): v for k, v in stats.by_method.items()},
    )


@router.get("/check-in/capacity", response_model=CapacityResponse)
async def get_capacity(
    org_id: uuid.UUID,
    attraction_id: uuid.UUID,
    staff: StaffPrincipal = Depends(require_org_access),
    controller: TicketAdmissionController = Depends(get_ticket_controller),
):
    snapshot = await controller.get_capacity(org_id, attraction_id)
    return CapacityResponse(
        checked_in_today=snapshot.checked_in_today,
        checked_in_last_hour=snapshot.checked_in_last_hour,
        by_time_slot=[SlotCapacityResponse(**vars(s)) for s in snapshot.by_time_slot],
    )
