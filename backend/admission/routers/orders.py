"""
Order lifecycle endpoints that touch admission state.

Completing an order issues its tickets; canceling voids them and hands the
time slot seats back. Mounted under ``/api/organizations/{org_id}/orders``.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from admission.auth.dependencies import require_org_access
from admission.dependencies import get_booking_service
from admission.models import OrderStatus
from admission.routers.check_in import TicketResponse
from admission.services.booking_service import SlotBookingService

router = APIRouter(dependencies=[Depends(require_org_access)])


# =============================================================================
# Request/Response Models
# =============================================================================

class OrderResponse(BaseModel):
    id: uuid.UUID
    order_number: str
    status: OrderStatus
    customer_name: Optional[str] = None
    customer_email: str
    total: Decimal
    notes: Optional[str] = None
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CompleteOrderResponse(BaseModel):
    order: OrderResponse
    tickets: list[TicketResponse]


class CancelOrderRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/{order_id}/complete", response_model=CompleteOrderResponse)
async def complete_order(
    org_id: uuid.UUID,
    order_id: uuid.UUID,
    service: SlotBookingService = Depends(get_booking_service),
):
    order, tickets = await service.complete_order(org_id, order_id)
    return CompleteOrderResponse(
        order=OrderResponse.model_validate(order),
        tickets=[TicketResponse.model_validate(t) for t in tickets],
    )


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    org_id: uuid.UUID,
    order_id: uuid.UUID,
    request: Optional[CancelOrderRequest] = None,
    service: SlotBookingService = Depends(get_booking_service),
):
    return await service.cancel_order(org_id, order_id, request.reason if request else None)
