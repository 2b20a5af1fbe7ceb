"""
Persistence contract for the admission core.

The controllers never talk to a session directly. Everything that must be
atomic across server instances is an explicit primitive here:

- ``lock_queue`` serializes joins, removals and sweeps of one queue;
- ``next_position`` is only meaningful while the queue lock is held;
- ``transition_entry`` / ``compare_and_set_ticket_status`` are conditional
  updates that report whether they won;
- ``reserve_slot_seats`` / ``release_slot_seats`` never leave a slot
  overbooked or negative.

Multi-step writes run inside ``transaction()``; leaving the block with an
exception undoes every write made inside it.
"""

import abc
import uuid
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Iterable, Optional

from admission.models import (
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


@dataclass
class TicketContext:
    """A ticket with its related rows resolved to single objects (or None)."""
    ticket: Ticket
    ticket_type: Optional[TicketType]
    time_slot: Optional[TimeSlot]
    order: Optional[Order]


@dataclass
class CheckInRecord:
    check_in: CheckIn
    ticket: Optional[Ticket]


class LookupField(str, Enum):
    """What a door-desk search matches against."""
    NAME = "name"                   # Customer or guest name
    EMAIL = "email"
    PHONE = "phone"
    ORDER_NUMBER = "order_number"
    TICKET_NUMBER = "ticket_number"


class AdmissionStore(abc.ABC):
    """Storage operations required by the queue and ticket controllers."""

    @abc.abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Open a transaction (or a savepoint when one is already open)."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Attractions
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def get_attraction(self, attraction_id: uuid.UUID) -> Optional[Attraction]:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_attraction_by_slug(self, slug: str) -> Optional[Attraction]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Queue config
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def get_queue_config(self, attraction_id: uuid.UUID) -> Optional[QueueConfig]:
        raise NotImplementedError

    @abc.abstractmethod
    async def lock_queue(self, queue_id: uuid.UUID) -> QueueConfig:
        """Lock the queue until the surrounding transaction ends and return a fresh read."""
        raise NotImplementedError

    @abc.abstractmethod
    async def add_queue_config(self, config: QueueConfig) -> QueueConfig:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_queue_config(self, queue_id: uuid.UUID, values: dict[str, Any]) -> Optional[QueueConfig]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Queue entries
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def get_entry(self, entry_id: uuid.UUID) -> Optional[QueueEntry]:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_entry_by_code(self, confirmation_code: str) -> Optional[QueueEntry]:
        raise NotImplementedError

    @abc.abstractmethod
    async def confirmation_code_exists(self, confirmation_code: str) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    async def count_entries(self, queue_id: uuid.UUID, statuses: Iterable[QueueEntryStatus]) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    async def find_entry_by_contact(
        self,
        queue_id: uuid.UUID,
        statuses: Iterable[QueueEntryStatus],
        phone: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[QueueEntry]:
        """First entry in ``statuses`` matching the phone, or the email when no phone is given."""
        raise NotImplementedError

    @abc.abstractmethod
    async def next_position(self, queue_id: uuid.UUID) -> int:
        """One past the highest live position. Call with the queue locked."""
        raise NotImplementedError

    @abc.abstractmethod
    async def add_entry(self, entry: QueueEntry) -> QueueEntry:
        """Insert an entry; raises ``DuplicateKeyError`` on a unique violation."""
        raise NotImplementedError

    @abc.abstractmethod
    async def transition_entry(
        self,
        entry_id: uuid.UUID,
        from_statuses: Iterable[QueueEntryStatus],
        to_status: QueueEntryStatus,
        at: datetime,
    ) -> Optional[QueueEntry]:
        """
        Move an entry to ``to_status`` only if it is currently in one of
        ``from_statuses``, stamping the matching timestamp column.

        Returns the updated entry, or None when the condition did not hold.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def update_entry(self, entry_id: uuid.UUID, values: dict[str, Any]) -> Optional[QueueEntry]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_live_entries(self, queue_id: uuid.UUID) -> list[QueueEntry]:
        """Live entries ordered by position, then join time."""
        raise NotImplementedError

    @abc.abstractmethod
    async def set_positions(self, positions: list[tuple[uuid.UUID, int]]) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def waiting_party_total(self, queue_id: uuid.UUID, before_position: Optional[int] = None) -> int:
        """Sum of party sizes of waiting entries, optionally only those ahead of ``before_position``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def list_entries(
        self,
        queue_id: uuid.UUID,
        status: Optional[QueueEntryStatus] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[QueueEntry]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_entries_joined_between(
        self,
        queue_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> list[QueueEntry]:
        raise NotImplementedError

    @abc.abstractmethod
    async def count_checked_in_since(self, queue_id: uuid.UUID, since: datetime) -> int:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Tickets
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def get_ticket_context(self, org_id: uuid.UUID, barcode: str) -> Optional[TicketContext]:
        raise NotImplementedError

    @abc.abstractmethod
    async def get_ticket(self, org_id: uuid.UUID, ticket_id: uuid.UUID) -> Optional[Ticket]:
        raise NotImplementedError

    @abc.abstractmethod
    async def compare_and_set_ticket_status(
        self,
        ticket_id: uuid.UUID,
        expected: TicketStatus,
        new: TicketStatus,
        values: Optional[dict[str, Any]] = None,
    ) -> bool:
        """Set ``new`` (plus ``values``) only if the status is still ``expected``."""
        raise NotImplementedError

    @abc.abstractmethod
    async def add_tickets(self, tickets: list[Ticket]) -> list[Ticket]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_order_tickets(self, order_id: uuid.UUID) -> list[Ticket]:
        raise NotImplementedError

    @abc.abstractmethod
    async def count_order_tickets(self, order_id: uuid.UUID, status: Optional[TicketStatus] = None) -> int:
        raise NotImplementedError

    @abc.abstractmethod
    async def count_expected_tickets(
        self,
        attraction_id: uuid.UUID,
        day: date,
        start: datetime,
        end: datetime,
    ) -> int:
        """
        Tickets expected on ``day``: non-voided tickets bound to a slot on
        that day, plus slotless tickets created within ``[start, end)``.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def get_ticket_type(self, org_id: uuid.UUID, ticket_type_id: uuid.UUID) -> Optional[TicketType]:
        raise NotImplementedError

    @abc.abstractmethod
    async def search_tickets(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        field: LookupField,
        query: str,
        limit: int,
    ) -> list[TicketContext]:
        """
        Tickets for ``attraction_id`` on the newest ``limit`` orders matching
        ``query`` (case-insensitive substring), grouped by order.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def list_day_tickets(
        self,
        attraction_id: uuid.UUID,
        day: date,
        status: TicketStatus,
        time_slot_id: Optional[uuid.UUID] = None,
    ) -> list[TicketContext]:
        """Tickets in ``status`` booked into the attraction's slots on ``day``, in slot order."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Check-ins
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def add_check_in(self, check_in: CheckIn) -> CheckIn:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_check_ins(self, attraction_id: uuid.UUID, start: datetime, end: datetime) -> list[CheckIn]:
        """Check-ins with ``start <= check_in_time < end``, oldest first."""
        raise NotImplementedError

    @abc.abstractmethod
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
        """One page of check-ins, newest first, and the number matching the filters."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Orders
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def get_order(self, org_id: uuid.UUID, order_id: uuid.UUID) -> Optional[Order]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_order_items(self, order_id: uuid.UUID) -> list[OrderItem]:
        raise NotImplementedError

    @abc.abstractmethod
    async def add_order(self, order: Order) -> Order:
        raise NotImplementedError

    @abc.abstractmethod
    async def add_order_item(self, item: OrderItem) -> OrderItem:
        raise NotImplementedError

    @abc.abstractmethod
    async def update_order(self, order_id: uuid.UUID, values: dict[str, Any]) -> Optional[Order]:
        raise NotImplementedError

    @abc.abstractmethod
    async def void_order_tickets(self, order_id: uuid.UUID, at: datetime) -> int:
        """Void every ticket of the order that the transition table allows; returns the count."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Time slots
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def get_time_slot(self, slot_id: uuid.UUID) -> Optional[TimeSlot]:
        raise NotImplementedError

    @abc.abstractmethod
    async def list_time_slots(self, attraction_id: uuid.UUID, day: date) -> list[TimeSlot]:
        raise NotImplementedError

    @abc.abstractmethod
    async def reserve_slot_seats(self, slot_id: uuid.UUID, quantity: int) -> bool:
        """Atomically add ``quantity`` to ``booked_count`` unless that exceeds capacity."""
        raise NotImplementedError

    @abc.abstractmethod
    async def release_slot_seats(self, slot_id: uuid.UUID, quantity: int) -> bool:
        """Atomically subtract ``quantity`` from ``booked_count`` unless that goes negative."""
        raise NotImplementedError
