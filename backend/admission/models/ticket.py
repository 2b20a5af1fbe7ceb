"""Ticket model - a single admission unit identified by its barcode."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from admission.database import Base
from admission.utils.timezone import utc_now


class TicketStatus(str, Enum):
    VALID = "valid"
    USED = "used"
    VOIDED = "voided"
    EXPIRED = "expired"
    TRANSFERRED = "transferred"


TICKET_TRANSITIONS: dict[TicketStatus, frozenset[TicketStatus]] = {
    TicketStatus.VALID: frozenset({
        TicketStatus.USED,
        TicketStatus.VOIDED,
        TicketStatus.EXPIRED,
        TicketStatus.TRANSFERRED,
    }),
    # A used ticket can still be voided when the order is refunded
    TicketStatus.USED: frozenset({TicketStatus.VOIDED}),
    TicketStatus.VOIDED: frozenset(),
    TicketStatus.EXPIRED: frozenset(),
    TicketStatus.TRANSFERRED: frozenset({TicketStatus.VALID, TicketStatus.VOIDED}),
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return TicketStatus(target) in TICKET_TRANSITIONS[TicketStatus(current)]


class Ticket(Base):
    """
    Issued once per purchased unit. Tickets are never deleted; refunds and
    cancellations void them so the admission history stays intact.
    """

    __tablename__ = "tickets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id"),
        nullable=False,
        index=True,
    )
    order_item_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("order_items.id"),
    )
    ticket_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("ticket_types.id"),
        nullable=False,
    )
    time_slot_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("time_slots.id"),
    )

    ticket_number: Mapped[str] = mapped_column(String(32), nullable=False)
    barcode: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    guest_name: Mapped[str | None] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(20), default=TicketStatus.VALID.value, nullable=False)

    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime)
    checked_in_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<Ticket {self.ticket_number} ({self.status})>"
