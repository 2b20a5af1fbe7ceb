"""CheckIn model - immutable record of a guest physically entering."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from admission.database import Base
from admission.utils.timezone import utc_now


class CheckInMethod(str, Enum):
    BARCODE_SCAN = "barcode_scan"
    QR_SCAN = "qr_scan"
    MANUAL_LOOKUP = "manual_lookup"
    ORDER_NUMBER = "order_number"
    WALK_UP = "walk_up"


class CheckIn(Base):
    """Append-only admission event. Rows are never updated or deleted."""

    __tablename__ = "check_ins"
    __table_args__ = (
        Index("ix_check_ins_attraction_time", "attraction_id", "check_in_time"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    attraction_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("attractions.id"),
        nullable=False,
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tickets.id"),
        nullable=False,
    )
    time_slot_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("time_slots.id"),
    )
    station_id: Mapped[str | None] = mapped_column(String(50))
    checked_in_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    check_in_method: Mapped[str] = mapped_column(String(20), nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    check_in_time: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<CheckIn {self.ticket_id} via {self.check_in_method} @ {self.check_in_time}>"
