"""QueueEntry model - one guest party's place in a virtual queue."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from admission.database import Base
from admission.utils.timezone import utc_now


class QueueEntryStatus(str, Enum):
    """Lifecycle of a queue entry."""
    WAITING = "waiting"
    NOTIFIED = "notified"    # Told their turn is coming up
    CALLED = "called"        # Told to come to the entrance now
    CHECKED_IN = "checked_in"
    NO_SHOW = "no_show"
    LEFT = "left"
    EXPIRED = "expired"


# Entries holding a place in line
LIVE_STATUSES = frozenset({
    QueueEntryStatus.WAITING,
    QueueEntryStatus.NOTIFIED,
    QueueEntryStatus.CALLED,
})

TERMINAL_STATUSES = frozenset({
    QueueEntryStatus.CHECKED_IN,
    QueueEntryStatus.NO_SHOW,
    QueueEntryStatus.LEFT,
    QueueEntryStatus.EXPIRED,
})

QUEUE_TRANSITIONS: dict[QueueEntryStatus, frozenset[QueueEntryStatus]] = {
    QueueEntryStatus.WAITING: frozenset({
        QueueEntryStatus.NOTIFIED,
        QueueEntryStatus.CALLED,
        QueueEntryStatus.LEFT,
        QueueEntryStatus.EXPIRED,
    }),
    QueueEntryStatus.NOTIFIED: frozenset({
        QueueEntryStatus.CALLED,
        QueueEntryStatus.CHECKED_IN,
        QueueEntryStatus.LEFT,
        QueueEntryStatus.EXPIRED,
    }),
    QueueEntryStatus.CALLED: frozenset({
        QueueEntryStatus.CHECKED_IN,
        QueueEntryStatus.NO_SHOW,
    }),
    QueueEntryStatus.CHECKED_IN: frozenset(),
    QueueEntryStatus.NO_SHOW: frozenset(),
    QueueEntryStatus.LEFT: frozenset(),
    QueueEntryStatus.EXPIRED: frozenset(),
}

# Timestamp column stamped when an entry enters a status
STATUS_TIMESTAMP_FIELDS: dict[QueueEntryStatus, str] = {
    QueueEntryStatus.NOTIFIED: "notified_at",
    QueueEntryStatus.CALLED: "called_at",
    QueueEntryStatus.CHECKED_IN: "checked_in_at",
    QueueEntryStatus.EXPIRED: "expired_at",
    QueueEntryStatus.LEFT: "left_at",
}


def can_transition(current: QueueEntryStatus, target: QueueEntryStatus) -> bool:
    return target in QUEUE_TRANSITIONS[QueueEntryStatus(current)]


_LIVE_SQL = "status IN ('waiting', 'notified', 'called')"


class QueueEntry(Base):
    """
    A guest party in a virtual queue.

    ``position`` is meaningful only while the entry is live; live positions
    of a queue always form the dense sequence 1..N.
    """

    __tablename__ = "queue_entries"
    __table_args__ = (
        Index("ix_queue_entries_queue_status_position", "queue_id", "status", "position"),
        # One live entry per contact per queue
        Index(
            "uq_queue_entries_live_phone",
            "queue_id",
            "guest_phone",
            unique=True,
            postgresql_where=text(f"guest_phone IS NOT NULL AND {_LIVE_SQL}"),
        ),
        Index(
            "uq_queue_entries_live_email",
            "queue_id",
            "guest_email",
            unique=True,
            postgresql_where=text(f"guest_email IS NOT NULL AND {_LIVE_SQL}"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    queue_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("queue_configs.id"),
        nullable=False,
    )
    ticket_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tickets.id"),
    )

    confirmation_code: Mapped[str] = mapped_column(String(12), unique=True, nullable=False)

    # Guest contact (phone or email is used for de-duplication)
    guest_name: Mapped[str | None] = mapped_column(String(200))
    guest_phone: Mapped[str | None] = mapped_column(String(20))
    guest_email: Mapped[str | None] = mapped_column(String(255))
    party_size: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    position: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=QueueEntryStatus.WAITING.value,
        nullable=False,
    )

    # Transition timestamps
    joined_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime)
    called_at: Mapped[datetime | None] = mapped_column(DateTime)
    checked_in_at: Mapped[datetime | None] = mapped_column(DateTime)
    expired_at: Mapped[datetime | None] = mapped_column(DateTime)
    left_at: Mapped[datetime | None] = mapped_column(DateTime)

    notes: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<QueueEntry {self.confirmation_code} #{self.position} ({self.status})>"

    @property
    def is_live(self) -> bool:
        return QueueEntryStatus(self.status) in LIVE_STATUSES

    @property
    def wait_duration_minutes(self) -> int | None:
        """Minutes between joining and checking in."""
        if not self.checked_in_at:
            return None
        delta = self.checked_in_at - self.joined_at
        return round(delta.total_seconds() / 60)
