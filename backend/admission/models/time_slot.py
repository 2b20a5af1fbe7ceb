"""TimeSlot model - a capacity-bounded admission window."""

import uuid
import datetime as dt

from sqlalchemy import CheckConstraint, Date, ForeignKey, Integer, Time
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from admission.database import Base


class TimeSlot(Base):
    """
    Admission window on a given day, in the attraction's local time.

    ``booked_count`` only moves through conditional updates (see
    ``AdmissionStore.reserve_slot_seats``); the check constraints are the
    last line against overbooking.
    """

    __tablename__ = "time_slots"
    __table_args__ = (
        CheckConstraint("booked_count >= 0", name="ck_time_slots_booked_non_negative"),
        CheckConstraint(
            "capacity IS NULL OR booked_count <= capacity",
            name="ck_time_slots_booked_within_capacity",
        ),
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
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    capacity: Mapped[int | None] = mapped_column(Integer)  # None = unlimited
    booked_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def __repr__(self) -> str:
        return f"<TimeSlot {self.date} {self.start_time}-{self.end_time} ({self.booked_count}/{self.capacity})>"

    @property
    def starts_at(self) -> dt.datetime:
        return dt.datetime.combine(self.date, self.start_time)

    @property
    def ends_at(self) -> dt.datetime:
        # A slot that runs past midnight ends on the following day
        if self.end_time <= self.start_time:
            return dt.datetime.combine(self.date + dt.timedelta(days=1), self.end_time)
        return dt.datetime.combine(self.date, self.end_time)

    @property
    def remaining(self) -> int | None:
        if self.capacity is None:
            return None
        return self.capacity - self.booked_count
