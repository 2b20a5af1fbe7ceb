"""
Slot booking service - the order side of time slot capacity.

Every seat added to ``TimeSlot.booked_count`` at reservation time is taken
back when the order is canceled or refunded. Both directions are single
conditional updates, so a slot can never be overbooked or go negative no
matter how many checkouts race for the last seat.
"""

import uuid
from datetime import datetime
from typing import Callable, Optional

from loguru import logger

from admission.exceptions import BadRequestError, ConflictError, NotFoundError
from admission.models import Order, OrderStatus, Ticket, TicketStatus
from admission.services.codes import generate_barcode, generate_ticket_number
from admission.store.base import AdmissionStore
from admission.utils.timezone import utc_now

COMPLETABLE = {OrderStatus.PENDING, OrderStatus.PROCESSING}
CANCELED = {OrderStatus.CANCELED, OrderStatus.REFUNDED}


class SlotBookingService:
    def __init__(self, store: AdmissionStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    async def reserve(self, slot_id: uuid.UUID, quantity: int) -> None:
        if quantity < 1:
            raise BadRequestError("Quantity must be at least 1", "INVALID_QUANTITY")
        if not await self.store.get_time_slot(slot_id):
            raise NotFoundError("Time slot not found")

        if not await self.store.reserve_slot_seats(slot_id, quantity):
            raise ConflictError("Not enough capacity left in this time slot", "TIME_SLOT_FULL")
        logger.debug(f"Reserved {quantity} seat(s) in slot {slot_id}")

    async def release(self, slot_id: uuid.UUID, quantity: int) -> None:
        if quantity < 1:
            raise BadRequestError("Quantity must be at least 1", "INVALID_QUANTITY")

        if not await self.store.release_slot_seats(slot_id, quantity):
            raise BadRequestError(
                f"Cannot release {quantity} seat(s) from slot {slot_id}",
                "SLOT_RELEASE_UNDERFLOW",
            )
        logger.debug(f"Released {quantity} seat(s) in slot {slot_id}")

    async def _get_order(self, org_id: uuid.UUID, order_id: uuid.UUID) -> Order:
        order = await self.store.get_order(org_id, order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def complete_order(self, org_id: uuid.UUID, order_id: uuid.UUID) -> tuple[Order, list[Ticket]]:
        """Mark a paid order completed and issue one ticket per purchased unit."""
        now = self.clock()

        async with self.store.transaction():
            order = await self._get_order(org_id, order_id)
            if OrderStatus(order.status) not in COMPLETABLE:
                raise BadRequestError(f"Cannot complete an order that is {order.status}", "INVALID_ORDER_STATUS")

            prefix = order.order_number.split("-", 1)[0]
            tickets = []
            for item in await self.store.list_order_items(order.id):
                for _ in range(item.quantity):
                    tickets.append(
                        Ticket(
                            id=uuid.uuid4(),
                            org_id=order.org_id,
                            order_id=order.id,
                            order_item_id=item.id,
                            ticket_type_id=item.ticket_type_id,
                            time_slot_id=item.time_slot_id,
                            ticket_number=generate_ticket_number(prefix),
                            barcode=generate_barcode(),
                            guest_name=order.customer_name,
                            status=TicketStatus.VALID.value,
                            created_at=now,
                            updated_at=now,
                        )
                    )

            await self.store.add_tickets(tickets)
            order = await self.store.update_order(
                order.id,
                {"status": OrderStatus.COMPLETED.value, "completed_at": now, "updated_at": now},
            )

        logger.info(f"Completed order {order.order_number}, issued {len(tickets)} ticket(s)")
        return order, tickets

    async def cancel_order(
        self,
        org_id: uuid.UUID,
        order_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> Order:
        """Void the order's tickets and give their slot seats back."""
        now = self.clock()

        async with self.store.transaction():
            order = await self._get_order(org_id, order_id)
            if OrderStatus(order.status) in CANCELED:
                raise BadRequestError("Order is already canceled", "ORDER_ALREADY_CANCELED")

            voided = await self.store.void_order_tickets(order.id, now)

            for item in await self.store.list_order_items(order.id):
                if item.time_slot_id:
                    await self.release(item.time_slot_id, item.quantity)

            notes = order.notes or ""
            if reason:
                notes = f"{notes}\nCanceled: {reason}".strip()

            order = await self.store.update_order(
                order.id,
                {"status": OrderStatus.CANCELED.value, "notes": notes or None, "updated_at": now},
            )

        logger.info(f"Canceled order {order.order_number}, voided {voided} ticket(s)")
        return order
