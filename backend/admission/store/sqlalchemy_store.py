"""
PostgreSQL implementation of the admission store on an AsyncSession.

Atomicity comes from the database, never from process memory:
row locks (``SELECT ... FOR UPDATE``) for queue serialization,
conditional ``UPDATE ... WHERE`` for status and counter changes, and
unique indexes for codes and live contacts.
"""

import uuid
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import Any, AsyncIterator, Iterable, Optional

from loguru import logger
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from admission.exceptions import DuplicateKeyError, StoreError
from admission.models import (
    LIVE_STATUSES,
    TICKET_TRANSITIONS,
    Attraction,
    CheckIn,
    CheckInMethod,
    Order,
    OrderItem,
    QueueConfig,
    QueueEntry,
    QueueEntryStatus,
    Ticket,
    TicketStatus,
    TicketType,
    TimeSlot,
)
from admission.models.queue_entry import STATUS_TIMESTAMP_FIELDS
from admission.store.base import AdmissionStore, CheckInRecord, LookupField, TicketContext

_REFRESH = {"populate_existing": True}
_LIVE_VALUES = [s.value for s in LIVE_STATUSES]


def _values(statuses: Iterable[Any]) -> list[str]:
    return [getattr(s, "value", s) for s in statuses]


class SqlAlchemyAdmissionStore(AdmissionStore):
    """Admission store bound to one request-scoped session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self.session.in_transaction():
            async with self.session.begin_nested():
                yield
        else:
            async with self.session.begin():
                yield

    async def _update_returning(self, model, where, values: dict[str, Any]):
        stmt = update(model).where(*where).values(**values).returning(model)
        result = await self.session.scalars(stmt, execution_options=_REFRESH)
        return result.one_or_none()

    # ------------------------------------------------------------------
    # Attractions
    # ------------------------------------------------------------------

    async def get_attraction(self, attraction_id: uuid.UUID) -> Optional[Attraction]:
        return await self.session.get(Attraction, attraction_id)

    async def get_attraction_by_slug(self, slug: str) -> Optional[Attraction]:
        result = await self.session.execute(
            select(Attraction).where(Attraction.slug == slug)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Queue config
    # ------------------------------------------------------------------

    async def get_queue_config(self, attraction_id: uuid.UUID) -> Optional[QueueConfig]:
        result = await self.session.execute(
            select(QueueConfig).where(QueueConfig.attraction_id == attraction_id)
        )
        return result.scalar_one_or_none()

    async def lock_queue(self, queue_id: uuid.UUID) -> QueueConfig:
        result = await self.session.execute(
            select(QueueConfig)
            .where(QueueConfig.id == queue_id)
            .with_for_update()
            .execution_options(**_REFRESH)
        )
        return result.scalar_one()

    async def add_queue_config(self, config: QueueConfig) -> QueueConfig:
        try:
            async with self.session.begin_nested():
                self.session.add(config)
        except IntegrityError as exc:
            raise DuplicateKeyError(str(exc.orig)) from exc
        return config

    async def update_queue_config(self, queue_id: uuid.UUID, values: dict[str, Any]) -> Optional[QueueConfig]:
        return await self._update_returning(QueueConfig, [QueueConfig.id == queue_id], values)

    # ------------------------------------------------------------------
    # Queue entries
    # ------------------------------------------------------------------

    async def get_entry(self, entry_id: uuid.UUID) -> Optional[QueueEntry]:
        return await self.session.get(QueueEntry, entry_id, populate_existing=True)

    async def get_entry_by_code(self, confirmation_code: str) -> Optional[QueueEntry]:
        result = await self.session.execute(
            select(QueueEntry)
            .where(QueueEntry.confirmation_code == confirmation_code.upper())
            .execution_options(**_REFRESH)
        )
        return result.scalar_one_or_none()

    async def confirmation_code_exists(self, confirmation_code: str) -> bool:
        result = await self.session.execute(
            select(QueueEntry.id).where(QueueEntry.confirmation_code == confirmation_code)
        )
        return result.first() is not None

    async def count_entries(self, queue_id: uuid.UUID, statuses: Iterable[QueueEntryStatus]) -> int:
        result = await self.session.execute(
            select(func.count(QueueEntry.id)).where(
                QueueEntry.queue_id == queue_id,
                QueueEntry.status.in_(_values(statuses)),
            )
        )
        return result.scalar_one()

    async def find_entry_by_contact(
        self,
        queue_id: uuid.UUID,
        statuses: Iterable[QueueEntryStatus],
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[QueueEntry]:
        if phone:
            contact = QueueEntry.guest_phone == phone
        elif email:
            contact = QueueEntry.guest_email == email
        else:
            return None

        result = await self.session.execute(
            select(QueueEntry)
            .where(
                QueueEntry.queue_id == queue_id,
                QueueEntry.status.in_(_values(statuses)),
                contact,
            )
            .order_by(QueueEntry.joined_at)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def next_position(self, queue_id: uuid.UUID) -> int:
        result = await self.session.execute(
            select(func.coalesce(func.max(QueueEntry.position), 0)).where(
                QueueEntry.queue_id == queue_id,
                QueueEntry.status.in_(_LIVE_VALUES),
            )
        )
        return result.scalar_one() + 1

    async def add_entry(self, entry: QueueEntry) -> QueueEntry:
        # Savepoint so a unique violation leaves the outer transaction usable
        try:
            async with self.session.begin_nested():
                self.session.add(entry)
        except IntegrityError as exc:
            raise DuplicateKeyError(str(exc.orig)) from exc
        return entry

    async def transition_entry(
        self,
        entry_id: uuid.UUID,
        from_statuses: Iterable[QueueEntryStatus],
        to_status: QueueEntryStatus,
        at: datetime,
    ) -> Optional[QueueEntry]:
        values: dict[str, Any] = {"status": to_status.value}
        field = STATUS_TIMESTAMP_FIELDS.get(to_status)
        if field:
            values[field] = at

        return await self._update_returning(
            QueueEntry,
            [QueueEntry.id == entry_id, QueueEntry.status.in_(_values(from_statuses))],
            values,
        )

    async def update_entry(self, entry_id: uuid.UUID, values: dict[str, Any]) -> Optional[QueueEntry]:
        return await self._update_returning(QueueEntry, [QueueEntry.id == entry_id], values)

    async def list_live_entries(self, queue_id: uuid.UUID) -> list[QueueEntry]:
        result = await self.session.execute(
            select(QueueEntry)
            .where(
                QueueEntry.queue_id == queue_id,
                QueueEntry.status.in_(_LIVE_VALUES),
            )
            .order_by(QueueEntry.position, QueueEntry.joined_at)
            .execution_options(**_REFRESH)
        )
        return list(result.scalars().all())

    async def set_positions(self, positions: list[tuple[uuid.UUID, int]]) -> None:
        if not positions:
            return
        # ORM bulk UPDATE by primary key
        await self.session.execute(
            update(QueueEntry),
            [{"id": entry_id, "position": position} for entry_id, position in positions],
        )

    async def waiting_party_total(self, queue_id: uuid.UUID, before_position: Optional[int] = None) -> int:
        query = select(func.coalesce(func.sum(QueueEntry.party_size), 0)).where(
            QueueEntry.queue_id == queue_id,
            QueueEntry.status == QueueEntryStatus.WAITING.value,
        )
        if before_position is not None:
            query = query.where(QueueEntry.position < before_position)

        result = await self.session.execute(query)
        return int(result.scalar_one())

    async def list_entries(
        self,
        queue_id: uuid.UUID,
        status: Optional[QueueEntryStatus] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[QueueEntry]:
        query = select(QueueEntry).where(QueueEntry.queue_id == queue_id)

        if status:
            query = query.where(QueueEntry.status == QueueEntryStatus(status).value)
        if search:
            pattern = f"%{search}%"
            query = query.where(
                or_(
                    QueueEntry.guest_name.ilike(pattern),
                    QueueEntry.confirmation_code.ilike(pattern),
                )
            )

        query = query.order_by(QueueEntry.position, QueueEntry.joined_at).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        # Positions may have been rewritten by a bulk update in this session
        result = await self.session.execute(query.execution_options(**_REFRESH))
        return list(result.scalars().all())

    async def list_entries_joined_between(
        self,
        queue_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> list[QueueEntry]:
        result = await self.session.execute(
            select(QueueEntry)
            .where(
                QueueEntry.queue_id == queue_id,
                QueueEntry.joined_at >= start,
                QueueEntry.joined_at < end,
            )
            .order_by(QueueEntry.joined_at)
        )
        return list(result.scalars().all())

    async def count_checked_in_since(self, queue_id: uuid.UUID, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count(QueueEntry.id)).where(
                QueueEntry.queue_id == queue_id,
                QueueEntry.status == QueueEntryStatus.CHECKED_IN.value,
                QueueEntry.checked_in_at >= since,
            )
        )
        return result.scalar_one()

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    async def get_ticket_context(self, org_id: uuid.UUID, barcode: str) -> Optional[TicketContext]:
        result = await self.session.execute(
            select(Ticket, TicketType, TimeSlot, Order)
            .outerjoin(TicketType, Ticket.ticket_type_id == TicketType.id)
            .outerjoin(TimeSlot, Ticket.time_slot_id == TimeSlot.id)
            .outerjoin(Order, Ticket.order_id == Order.id)
            .where(Ticket.barcode == barcode, Ticket.org_id == org_id)
            .execution_options(**_REFRESH)
        )
        row = result.one_or_none()
        if row is None:
            return None

        ticket, ticket_type, time_slot, order = row
        return TicketContext(ticket=ticket, ticket_type=ticket_type, time_slot=time_slot, order=order)

    async def get_ticket(self, org_id: uuid.UUID, ticket_id: uuid.UUID) -> Optional[Ticket]:
        result = await self.session.execute(
            select(Ticket)
            .where(Ticket.id == ticket_id, Ticket.org_id == org_id)
            .execution_options(**_REFRESH)
        )
        return result.scalar_one_or_none()

    async def compare_and_set_ticket_status(
        self,
        ticket_id: uuid.UUID,
        expected: TicketStatus,
        new: TicketStatus,
        values: Optional[dict[str, Any]] = None,
    ) -> bool:
        stmt = (
            update(Ticket)
            .where(Ticket.id == ticket_id, Ticket.status == TicketStatus(expected).value)
            .values(status=TicketStatus(new).value, **(values or {}))
        )
        result = await self.session.execute(stmt, execution_options={"synchronize_session": "fetch"})
        return result.rowcount == 1

    async def add_tickets(self, tickets: list[Ticket]) -> list[Ticket]:
        try:
            async with self.session.begin_nested():
                self.session.add_all(tickets)
        except IntegrityError as exc:
            raise DuplicateKeyError(str(exc.orig)) from exc
        return tickets

    async def list_order_tickets(self, order_id: uuid.UUID) -> list[Ticket]:
        result = await self.session.execute(
            select(Ticket)
            .where(Ticket.order_id == order_id)
            .order_by(Ticket.ticket_number)
            .execution_options(**_REFRESH)
        )
        return list(result.scalars().all())

    async def count_order_tickets(self, order_id: uuid.UUID, status: Optional[TicketStatus] = None) -> int:
        query = select(func.count(Ticket.id)).where(Ticket.order_id == order_id)
        if status:
            query = query.where(Ticket.status == TicketStatus(status).value)

        result = await self.session.execute(query)
        return result.scalar_one()

    async def count_expected_tickets(
        self,
        attraction_id: uuid.UUID,
        day: date,
        start: datetime,
        end: datetime,
    ) -> int:
        not_voided = Ticket.status != TicketStatus.VOIDED.value
        slotted = (
            select(func.count(Ticket.id))
            .join(TimeSlot, Ticket.time_slot_id == TimeSlot.id)
            .where(TimeSlot.attraction_id == attraction_id, TimeSlot.date == day, not_voided)
        )
        slotless = (
            select(func.count(Ticket.id))
            .join(TicketType, Ticket.ticket_type_id == TicketType.id)
            .where(
                TicketType.attraction_id == attraction_id,
                Ticket.time_slot_id.is_(None),
                and_(Ticket.created_at >= start, Ticket.created_at < end),
                not_voided,
            )
        )

        try:
            async with self.session.begin_nested():
                with_slot = (await self.session.execute(slotted)).scalar_one()
                without_slot = (await self.session.execute(slotless)).scalar_one()
        except SQLAlchemyError as exc:
            logger.warning(f"Expected ticket count failed for attraction {attraction_id}: {exc}")
            raise StoreError(str(exc)) from exc

        return with_slot + without_slot

    async def get_ticket_type(self, org_id: uuid.UUID, ticket_type_id: uuid.UUID) -> Optional[TicketType]:
        result = await self.session.execute(
            select(TicketType).where(TicketType.id == ticket_type_id, TicketType.org_id == org_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _orders_with_tickets(org_id: uuid.UUID, column, pattern: str):
        return Order.id.in_(
            select(Ticket.order_id).where(Ticket.org_id == org_id, column.ilike(pattern))
        )

    async def search_tickets(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        field: LookupField,
        query: str,
        limit: int,
    ) -> list[TicketContext]:
        pattern = f"%{query}%"
        field = LookupField(field)
        if field == LookupField.EMAIL:
            criteria = Order.customer_email.ilike(pattern)
        elif field == LookupField.PHONE:
            criteria = Order.customer_phone.ilike(pattern)
        elif field == LookupField.ORDER_NUMBER:
            criteria = Order.order_number.ilike(pattern)
        elif field == LookupField.TICKET_NUMBER:
            criteria = self._orders_with_tickets(org_id, Ticket.ticket_number, pattern)
        else:
            criteria = or_(
                Order.customer_name.ilike(pattern),
                self._orders_with_tickets(org_id, Ticket.guest_name, pattern),
            )

        for_attraction = (
            select(Ticket.order_id)
            .join(TicketType, Ticket.ticket_type_id == TicketType.id)
            .where(Ticket.org_id == org_id, TicketType.attraction_id == attraction_id)
        )
        order_ids = (
            select(Order.id)
            .where(Order.org_id == org_id, criteria, Order.id.in_(for_attraction))
            .order_by(Order.created_at.desc())
            .limit(limit)
        )

        result = await self.session.execute(
            select(Ticket, TicketType, TimeSlot, Order)
            .join(TicketType, Ticket.ticket_type_id == TicketType.id)
            .join(Order, Ticket.order_id == Order.id)
            .outerjoin(TimeSlot, Ticket.time_slot_id == TimeSlot.id)
            .where(Ticket.order_id.in_(order_ids), TicketType.attraction_id == attraction_id)
            .order_by(Order.created_at.desc(), Order.id, Ticket.ticket_number)
            .execution_options(**_REFRESH)
        )
        return [
            TicketContext(ticket=ticket, ticket_type=ticket_type, time_slot=time_slot, order=order)
            for ticket, ticket_type, time_slot, order in result.all()
        ]

    async def list_day_tickets(
        self,
        attraction_id: uuid.UUID,
        day: date,
        status: TicketStatus,
        time_slot_id: Optional[uuid.UUID] = None,
    ) -> list[TicketContext]:
        query = (
            select(Ticket, TicketType, TimeSlot, Order)
            .join(TimeSlot, Ticket.time_slot_id == TimeSlot.id)
            .outerjoin(TicketType, Ticket.ticket_type_id == TicketType.id)
            .outerjoin(Order, Ticket.order_id == Order.id)
            .where(
                TimeSlot.attraction_id == attraction_id,
                TimeSlot.date == day,
                Ticket.status == TicketStatus(status).value,
            )
        )
        if time_slot_id:
            query = query.where(TimeSlot.id == time_slot_id)

        result = await self.session.execute(
            query.order_by(TimeSlot.start_time, Ticket.ticket_number).execution_options(**_REFRESH)
        )
        return [
            TicketContext(ticket=ticket, ticket_type=ticket_type, time_slot=time_slot, order=order)
            for ticket, ticket_type, time_slot, order in result.all()
        ]

    # ------------------------------------------------------------------
    # Check-ins
    # ------------------------------------------------------------------

    async def add_check_in(self, check_in: CheckIn) -> CheckIn:
        self.session.add(check_in)
        await self.session.flush()
        return check_in

    async def list_check_ins(self, attraction_id: uuid.UUID, start: datetime, end: datetime) -> list[CheckIn]:
        result = await self.session.execute(
            select(CheckIn)
            .where(
                CheckIn.attraction_id == attraction_id,
                CheckIn.check_in_time >= start,
                CheckIn.check_in_time < end,
            )
            .order_by(CheckIn.check_in_time)
        )
        return list(result.scalars().all())

    async def page_check_ins(
        self,
        attraction_id: uuid.UUID,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        station_id: Optional[str] = None,
        method: Optional[CheckInMethod] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[CheckInRecord], int]:
        filters = [CheckIn.attraction_id == attraction_id]
        if start:
            filters.append(CheckIn.check_in_time >= start)
        if end:
            filters.append(CheckIn.check_in_time < end)
        if station_id:
            filters.append(CheckIn.station_id == station_id)
        if method:
            filters.append(CheckIn.check_in_method == CheckInMethod(method).value)

        total = (await self.session.execute(select(func.count(CheckIn.id)).where(*filters))).scalar_one()
        result = await self.session.execute(
            select(CheckIn, Ticket)
            .outerjoin(Ticket, CheckIn.ticket_id == Ticket.id)
            .where(*filters)
            .order_by(CheckIn.check_in_time.desc())
            .offset(offset)
            .limit(limit)
        )
        return [CheckInRecord(check_in=c, ticket=t) for c, t in result.all()], total

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    async def get_order(self, org_id: uuid.UUID, order_id: uuid.UUID) -> Optional[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.id == order_id, Order.org_id == org_id)
            .execution_options(**_REFRESH)
        )
        return result.scalar_one_or_none()

    async def list_order_items(self, order_id: uuid.UUID) -> list[OrderItem]:
        result = await self.session.execute(
            select(OrderItem).where(OrderItem.order_id == order_id)
        )
        return list(result.scalars().all())

    async def add_order(self, order: Order) -> Order:
        try:
            async with self.session.begin_nested():
                self.session.add(order)
        except IntegrityError as exc:
            raise DuplicateKeyError(str(exc.orig)) from exc
        return order

    async def add_order_item(self, item: OrderItem) -> OrderItem:
        self.session.add(item)
        await self.session.flush()
        return item

    async def update_order(self, order_id: uuid.UUID, values: dict[str, Any]) -> Optional[Order]:
        return await self._update_returning(Order, [Order.id == order_id], values)

    async def void_order_tickets(self, order_id: uuid.UUID, at: datetime) -> int:
        voidable = [
            status.value
            for status, targets in TICKET_TRANSITIONS.items()
            if TicketStatus.VOIDED in targets
        ]
        result = await self.session.execute(
            update(Ticket)
            .where(Ticket.order_id == order_id, Ticket.status.in_(voidable))
            .values(status=TicketStatus.VOIDED.value, updated_at=at),
            execution_options={"synchronize_session": "fetch"},
        )
        return result.rowcount

    # ------------------------------------------------------------------
    # Time slots
    # ------------------------------------------------------------------

    async def get_time_slot(self, slot_id: uuid.UUID) -> Optional[TimeSlot]:
        return await self.session.get(TimeSlot, slot_id, populate_existing=True)

    async def list_time_slots(self, attraction_id: uuid.UUID, day: date) -> list[TimeSlot]:
        result = await self.session.execute(
            select(TimeSlot)
            .where(TimeSlot.attraction_id == attraction_id, TimeSlot.date == day)
            .order_by(TimeSlot.start_time)
            .execution_options(**_REFRESH)
        )
        return list(result.scalars().all())

    async def reserve_slot_seats(self, slot_id: uuid.UUID, quantity: int) -> bool:
        result = await self.session.execute(
            update(TimeSlot)
            .where(
                TimeSlot.id == slot_id,
                or_(
                    TimeSlot.capacity.is_(None),
                    TimeSlot.booked_count + quantity <= TimeSlot.capacity,
                ),
            )
            .values(booked_count=TimeSlot.booked_count + quantity),
            execution_options={"synchronize_session": "fetch"},
        )
        return result.rowcount == 1

    async def release_slot_seats(self, slot_id: uuid.UUID, quantity: int) -> bool:
        result = await self.session.execute(
            update(TimeSlot)
            .where(TimeSlot.id == slot_id, TimeSlot.booked_count >= quantity)
            .values(booked_count=TimeSlot.booked_count - quantity),
            execution_options={"synchronize_session": "fetch"},
        )
        return result.rowcount == 1
