"""
Ticket check-in service.

Validation is read-only and always answers with data: a scanner needs to
show *why* a ticket was refused, so refusals are results, not exceptions.
Admission itself is a conditional ``valid -> used`` update; whoever loses a
concurrent scan of the same barcode re-reads the ticket and reports it as
already used.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Callable, Optional

from loguru import logger

from admission.config import Settings, get_settings
from admission.exceptions import BadRequestError, NotFoundError, StoreError
from admission.models import (
    Attraction,
    CheckIn,
    CheckInMethod,
    Order,
    OrderItem,
    OrderStatus,
    Ticket,
    TicketStatus,
)
from admission.models.ticket import can_transition
from admission.services.capacity import (
    check_in_rate,
    count_by,
    count_since,
    summarize_admissions,
)
from admission.services.codes import (
    generate_barcode,
    generate_order_number,
    generate_ticket_number,
    order_prefix,
)
from admission.store.base import AdmissionStore, CheckInRecord, LookupField, TicketContext
from admission.utils.timezone import format_slot_time, from_utc, local_day_bounds, to_utc, utc_now

# Refusal codes for tickets that are not in the valid state
STATUS_ERRORS: dict[TicketStatus, tuple[str, str]] = {
    TicketStatus.USED: ("TICKET_ALREADY_USED", "Ticket has already been used"),
    TicketStatus.VOIDED: ("TICKET_VOIDED", "Ticket has been voided"),
    TicketStatus.EXPIRED: ("TICKET_EXPIRED", "Ticket has expired"),
    TicketStatus.TRANSFERRED: ("TICKET_TRANSFERRED", "Ticket has been transferred"),
}

WALK_UP_PREFIX = "WLK"

LOOKUP_MIN_LENGTH = 2
LOOKUP_MAX_ORDERS = 10


@dataclass
class ValidationResult:
    valid: bool
    ticket: Optional[Ticket] = None
    context: Optional[TicketContext] = None
    error: Optional[str] = None
    message: Optional[str] = None
    checked_in_at: Optional[datetime] = None


@dataclass
class ScanResult(ValidationResult):
    check_in_id: Optional[uuid.UUID] = None
    ticket_count: int = 0
    checked_in_count: int = 0


@dataclass
class ScanRequest:
    barcode: str
    station_id: Optional[str] = None
    method: CheckInMethod = CheckInMethod.BARCODE_SCAN
    guest_count: int = 1
    notes: Optional[str] = None


@dataclass
class WalkUpRequest:
    ticket_type_id: uuid.UUID
    quantity: int
    guest_names: list[str] = field(default_factory=list)
    payment_method: Optional[str] = None
    station_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class WalkUpResult:
    order: Order
    tickets: list[Ticket]
    check_ins: list[CheckIn]


@dataclass
class CheckInStats:
    day: date
    total_checked_in: int
    total_expected: int
    check_in_rate: int
    by_hour: dict[datetime, int]
    peak_hour: Optional[datetime]
    peak_count: int
    by_station: dict[str, int]
    by_method: dict[str, int]


@dataclass
class SlotCapacity:
    slot_id: uuid.UUID
    slot: str
    capacity: Optional[int]
    booked: int
    checked_in: int


@dataclass
class CapacitySnapshot:
    checked_in_today: int
    checked_in_last_hour: int
    by_time_slot: list[SlotCapacity]


@dataclass
class LookupMatch:
    order: Order
    tickets: list[TicketContext]


@dataclass
class CheckInPage:
    records: list[CheckInRecord]
    total: int
    limit: int
    offset: int


class ArrivalStatus(str, Enum):
    PENDING = "pending"   # Slot not over yet
    LATE = "late"         # Slot ended without a scan


@dataclass
class Arrival:
    context: TicketContext
    status: ArrivalStatus
    minutes_until: int = 0
    minutes_late: int = 0


@dataclass
class ArrivalBoard:
    pending: list[Arrival]
    late: list[Arrival]


def _minutes(delta: timedelta) -> int:
    return round(delta.total_seconds() / 60)


def _refused(error: str, message: str, ctx: Optional[TicketContext] = None, **kwargs) -> ValidationResult:
    return ValidationResult(
        valid=False,
        ticket=ctx.ticket if ctx else None,
        context=ctx,
        error=error,
        message=message,
        **kwargs,
    )


class TicketAdmissionController:
    """Validate, scan and manage tickets at the door of one attraction."""

    def __init__(
        self,
        store: AdmissionStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock

    @property
    def grace(self) -> timedelta:
        return timedelta(hours=self.settings.ticket_grace_hours)

    async def _get_attraction(self, org_id: uuid.UUID, attraction_id: uuid.UUID) -> Attraction:
        attraction = await self.store.get_attraction(attraction_id)
        if not attraction or attraction.org_id != org_id:
            raise NotFoundError("Attraction not found")
        return attraction

    # =========================================================================
    # Validation and scanning
    # =========================================================================

    def evaluate(self, attraction: Attraction, ctx: Optional[TicketContext], now: datetime) -> ValidationResult:
        """Decide whether a ticket admits entry to ``attraction`` at ``now`` (naive UTC)."""
        if ctx is None:
            return _refused("TICKET_NOT_FOUND", "Ticket not found")

        ticket = ctx.ticket
        if ctx.ticket_type and ctx.ticket_type.attraction_id != attraction.id:
            return _refused("WRONG_ATTRACTION", "Ticket is not valid for this attraction", ctx)

        status = TicketStatus(ticket.status)
        if status != TicketStatus.VALID:
            error, message = STATUS_ERRORS[status]
            return _refused(error, message, ctx, checked_in_at=ticket.checked_in_at)

        slot = ctx.time_slot
        if slot:
            # Slots are wall-clock times at the venue
            local_now = from_utc(now, attraction.timezone)
            if local_now < slot.starts_at:
                return _refused(
                    "NOT_YET_VALID",
                    f"Ticket is valid from {format_slot_time(slot.start_time)}",
                    ctx,
                )
            if local_now > slot.ends_at + self.grace:
                return _refused("EXPIRED", "Ticket time slot has passed", ctx)

        return ValidationResult(valid=True, ticket=ticket, context=ctx)

    async def validate(self, org_id: uuid.UUID, attraction_id: uuid.UUID, barcode: str) -> ValidationResult:
        attraction = await self._get_attraction(org_id, attraction_id)
        ctx = await self.store.get_ticket_context(org_id, barcode.strip())
        return self.evaluate(attraction, ctx, self.clock())

    async def scan(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        request: ScanRequest,
        staff_id: Optional[uuid.UUID] = None,
    ) -> ScanResult:
        attraction = await self._get_attraction(org_id, attraction_id)
        now = self.clock()
        ctx = await self.store.get_ticket_context(org_id, request.barcode.strip())

        result = self.evaluate(attraction, ctx, now)
        if not result.valid:
            logger.info(f"Scan refused at {attraction.slug}: {result.error} ({request.barcode})")
            return ScanResult(**vars(result))

        ticket = ctx.ticket
        async with self.store.transaction():
            admitted = await self.store.compare_and_set_ticket_status(
                ticket.id,
                TicketStatus.VALID,
                TicketStatus.USED,
                {"checked_in_at": now, "checked_in_by": staff_id, "updated_at": now},
            )
            if admitted:
                check_in = await self.store.add_check_in(
                    CheckIn(
                        id=uuid.uuid4(),
                        org_id=org_id,
                        attraction_id=attraction.id,
                        ticket_id=ticket.id,
                        time_slot_id=ticket.time_slot_id,
                        station_id=request.station_id,
                        checked_in_by=staff_id,
                        check_in_method=CheckInMethod(request.method).value,
                        guest_count=request.guest_count,
                        notes=request.notes,
                        check_in_time=now,
                    )
                )

        current = await self.store.get_ticket(org_id, ticket.id)
        if not admitted:
            # Lost the race: somebody else changed the ticket since we read it
            status = TicketStatus(current.status)
            error, message = STATUS_ERRORS.get(status, STATUS_ERRORS[TicketStatus.USED])
            logger.info(f"Scan lost race for ticket {ticket.ticket_number}: now {status.value}")
            return ScanResult(
                valid=False,
                ticket=current,
                context=ctx,
                error=error,
                message=message,
                checked_in_at=current.checked_in_at,
            )

        logger.info(f"Admitted ticket {ticket.ticket_number} at {attraction.slug} via {request.method}")
        return ScanResult(
            valid=True,
            ticket=current,
            context=ctx,
            checked_in_at=now,
            check_in_id=check_in.id,
            ticket_count=await self.store.count_order_tickets(ticket.order_id),
            checked_in_count=await self.store.count_order_tickets(ticket.order_id, TicketStatus.USED),
        )

    # =========================================================================
    # Staff status changes
    # =========================================================================

    async def update_ticket_status(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        ticket_id: uuid.UUID,
        new_status: TicketStatus,
        staff_id: Optional[uuid.UUID] = None,
    ) -> Ticket:
        attraction = await self._get_attraction(org_id, attraction_id)
        ticket = await self.store.get_ticket(org_id, ticket_id)
        if not ticket:
            raise NotFoundError("Ticket not found")

        # Tickets of other attractions are not visible under this one
        ticket_type = await self.store.get_ticket_type(org_id, ticket.ticket_type_id)
        if not ticket_type or ticket_type.attraction_id != attraction.id:
            raise NotFoundError("Ticket not found")

        current = TicketStatus(ticket.status)
        target = TicketStatus(new_status)
        if not can_transition(current, target):
            raise self._invalid_status(current, target)

        now = self.clock()
        values = {"updated_at": now}
        if target == TicketStatus.USED:
            values.update(checked_in_at=now, checked_in_by=staff_id)

        async with self.store.transaction():
            changed = await self.store.compare_and_set_ticket_status(ticket.id, current, target, values)

        updated = await self.store.get_ticket(org_id, ticket_id)
        if not changed:
            raise self._invalid_status(TicketStatus(updated.status), target)

        logger.info(f"Ticket {ticket.ticket_number}: {current.value} -> {target.value}")
        return updated

    @staticmethod
    def _invalid_status(current: TicketStatus, target: TicketStatus) -> BadRequestError:
        return BadRequestError(
            f"Cannot transition ticket from {current.value} to {target.value}",
            "INVALID_STATUS_TRANSITION",
            current_status=current.value,
            requested_status=target.value,
        )

    # =========================================================================
    # Walk-up sales
    # =========================================================================

    async def walk_up(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        request: WalkUpRequest,
        staff_id: Optional[uuid.UUID] = None,
    ) -> WalkUpResult:
        """Sell and admit walk-up guests in one go: a completed order with used tickets."""
        max_quantity = self.settings.walk_up_max_quantity
        if not 1 <= request.quantity <= max_quantity:
            raise BadRequestError(f"Quantity must be between 1 and {max_quantity}", "INVALID_QUANTITY")

        attraction = await self._get_attraction(org_id, attraction_id)
        now = self.clock()

        async with self.store.transaction():
            ticket_type = await self.store.get_ticket_type(org_id, request.ticket_type_id)
            if not ticket_type or not ticket_type.is_active:
                raise NotFoundError("Ticket type not found or inactive")
            if ticket_type.attraction_id != attraction.id:
                raise BadRequestError("Ticket type does not belong to this attraction", "WRONG_ATTRACTION")

            price = Decimal(ticket_type.price)
            total = price * request.quantity
            prefix = order_prefix(attraction.name, default=WALK_UP_PREFIX)

            order = await self.store.add_order(
                Order(
                    id=uuid.uuid4(),
                    org_id=org_id,
                    attraction_id=attraction.id,
                    order_number=generate_order_number(prefix),
                    status=OrderStatus.COMPLETED.value,
                    customer_name=request.guest_names[0] if request.guest_names else "Walk-up Guest",
                    customer_email=self.settings.walk_up_customer_email,
                    subtotal=total,
                    discount_amount=Decimal("0"),
                    total=total,
                    notes=request.notes,
                    extra={"payment_method": request.payment_method, "source": "walk_up"},
                    created_at=now,
                    completed_at=now,
                    updated_at=now,
                )
            )
            item = await self.store.add_order_item(
                OrderItem(
                    id=uuid.uuid4(),
                    order_id=order.id,
                    ticket_type_id=ticket_type.id,
                    quantity=request.quantity,
                    unit_price=price,
                    total_price=total,
                )
            )

            tickets = [
                Ticket(
                    id=uuid.uuid4(),
                    org_id=org_id,
                    order_id=order.id,
                    order_item_id=item.id,
                    ticket_type_id=ticket_type.id,
                    ticket_number=generate_ticket_number(prefix),
                    barcode=generate_barcode(),
                    guest_name=(
                        request.guest_names[i]
                        if i < len(request.guest_names)
                        else f"Walk-up Guest {i + 1}"
                    ),
                    status=TicketStatus.USED.value,
                    checked_in_at=now,
                    checked_in_by=staff_id,
                    created_at=now,
                    updated_at=now,
                )
                for i in range(request.quantity)
            ]
            await self.store.add_tickets(tickets)

            check_ins = []
            for ticket in tickets:
                check_ins.append(
                    await self.store.add_check_in(
                        CheckIn(
                            id=uuid.uuid4(),
                            org_id=org_id,
                            attraction_id=attraction.id,
                            ticket_id=ticket.id,
                            station_id=request.station_id,
                            checked_in_by=staff_id,
                            check_in_method=CheckInMethod.WALK_UP.value,
                            guest_count=1,
                            notes=request.notes,
                            check_in_time=now,
                        )
                    )
                )

        logger.info(f"Walk-up order {order.order_number}: {request.quantity} x {ticket_type.name} = {total}")
        return WalkUpResult(order=order, tickets=tickets, check_ins=check_ins)

    # =========================================================================
    # Door desk
    # =========================================================================

    async def lookup(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        query: str,
        by: LookupField = LookupField.NAME,
    ) -> list[LookupMatch]:
        """
        Find tickets for guests whose barcode will not scan.

        Matches are substring and case-insensitive. Returns at most
        ``LOOKUP_MAX_ORDERS`` orders, newest first, each with only the
        tickets that belong to this attraction.
        """
        query = query.strip()
        if len(query) < LOOKUP_MIN_LENGTH:
            raise BadRequestError(
                f"Search query must be at least {LOOKUP_MIN_LENGTH} characters", "INVALID_LOOKUP_QUERY"
            )

        attraction = await self._get_attraction(org_id, attraction_id)
        contexts = await self.store.search_tickets(org_id, attraction.id, by, query, LOOKUP_MAX_ORDERS)

        matches: dict[uuid.UUID, LookupMatch] = {}
        for ctx in contexts:
            match = matches.setdefault(ctx.ticket.order_id, LookupMatch(order=ctx.order, tickets=[]))
            match.tickets.append(ctx)

        logger.debug(f"Lookup by {LookupField(by).value} at {attraction.slug}: {len(matches)} orders")
        return list(matches.values())

    async def list_check_ins(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        station_id: Optional[str] = None,
        method: Optional[CheckInMethod] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> CheckInPage:
        """Check-in history, newest first. Naive ``start``/``end`` are taken as UTC."""
        attraction = await self._get_attraction(org_id, attraction_id)
        records, total = await self.store.page_check_ins(
            attraction.id,
            start=to_utc(start) if start else None,
            end=to_utc(end) if end else None,
            station_id=station_id,
            method=method,
            limit=limit,
            offset=offset,
        )
        return CheckInPage(records=records, total=total, limit=limit, offset=offset)

    async def get_arrivals(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        time_slot_id: Optional[uuid.UUID] = None,
        status: Optional[ArrivalStatus] = None,
    ) -> ArrivalBoard:
        """Today's unscanned tickets in slot order, split into pending and late."""
        attraction = await self._get_attraction(org_id, attraction_id)
        local_now = from_utc(self.clock(), attraction.timezone)
        contexts = await self.store.list_day_tickets(
            attraction.id, local_now.date(), TicketStatus.VALID, time_slot_id
        )

        board = ArrivalBoard(pending=[], late=[])
        for ctx in contexts:
            slot = ctx.time_slot
            if local_now > slot.ends_at:
                board.late.append(
                    Arrival(ctx, ArrivalStatus.LATE, minutes_late=_minutes(local_now - slot.ends_at))
                )
            elif local_now < slot.starts_at:
                board.pending.append(
                    Arrival(ctx, ArrivalStatus.PENDING, minutes_until=_minutes(slot.starts_at - local_now))
                )
            else:
                board.pending.append(Arrival(ctx, ArrivalStatus.PENDING))

        if status == ArrivalStatus.PENDING:
            board.late = []
        elif status == ArrivalStatus.LATE:
            board.pending = []
        return board

    # =========================================================================
    # Stats and capacity
    # =========================================================================

    async def get_stats(self, org_id: uuid.UUID, attraction_id: uuid.UUID, day: Optional[date] = None) -> CheckInStats:
        attraction = await self._get_attraction(org_id, attraction_id)
        tz = attraction.timezone
        now = self.clock()
        day = day or from_utc(now, tz).date()
        start, end = local_day_bounds(day, tz)

        check_ins = await self.store.list_check_ins(attraction.id, start, end)
        summary = summarize_admissions(
            [from_utc(c.check_in_time, tz) for c in check_ins],
            from_utc(start, tz),
            from_utc(end, tz),
            from_utc(now, tz),
        )

        try:
            expected = await self.store.count_expected_tickets(attraction.id, day, start, end)
        except StoreError as e:
            logger.warning(f"Expected ticket count unavailable for {attraction.slug} on {day}: {e}")
            expected = 0

        return CheckInStats(
            day=day,
            total_checked_in=summary.total,
            total_expected=expected,
            check_in_rate=check_in_rate(summary.total, expected),
            by_hour=summary.by_hour,
            peak_hour=summary.peak_hour,
            peak_count=summary.peak_count,
            by_station=count_by(check_ins, lambda c: c.station_id or "unassigned"),
            by_method=count_by(check_ins, lambda c: c.check_in_method),
        )

    async def get_capacity(self, org_id: uuid.UUID, attraction_id: uuid.UUID) -> CapacitySnapshot:
        attraction = await self._get_attraction(org_id, attraction_id)
        tz = attraction.timezone
        now = self.clock()
        today = from_utc(now, tz).date()
        start, end = local_day_bounds(today, tz)

        check_ins = await self.store.list_check_ins(attraction.id, start, end)
        slots = await self.store.list_time_slots(attraction.id, today)
        per_slot = count_by(check_ins, lambda c: c.time_slot_id)

        return CapacitySnapshot(
            checked_in_today=len(check_ins),
            checked_in_last_hour=count_since([c.check_in_time for c in check_ins], now),
            by_time_slot=[
                SlotCapacity(
                    slot_id=slot.id,
                    slot=format_slot_time(slot.start_time),
                    capacity=slot.capacity,
                    booked=slot.booked_count,
                    checked_in=per_slot.get(slot.id, 0),
                )
                for slot in slots
            ],
        )
