"""QueueConfig model - virtual queue settings for one attraction."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from admission.database import Base
from admission.utils.timezone import utc_now

# Defaults applied when staff create a queue without specifying a field
QUEUE_CONFIG_DEFAULTS = {
    "is_active": True,
    "is_paused": False,
    "capacity_per_batch": 10,
    "batch_interval_minutes": 5,
    "max_wait_minutes": 120,
    "max_queue_size": 500,
    "allow_rejoin": False,
    "require_check_in": True,
    "notification_lead_minutes": 10,
    "expiry_minutes": 15,
}


class QueueConfig(Base):
    """
    One virtual queue per attraction.

    The config row doubles as the per-queue lock: joins, removals and
    sweeps select it ``FOR UPDATE`` before touching entries.
    """

    __tablename__ = "queue_configs"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    org_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    attraction_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("attractions.id"),
        unique=True,
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Batching
    capacity_per_batch: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    batch_interval_minutes: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    max_wait_minutes: Mapped[int] = mapped_column(Integer, default=120, nullable=False)
    max_queue_size: Mapped[int] = mapped_column(Integer, default=500, nullable=False)

    # Guest handling
    allow_rejoin: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    require_check_in: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    notification_lead_minutes: Mapped[int] = mapped_column(Integer, default=10, nullable=False)
    expiry_minutes: Mapped[int] = mapped_column(Integer, default=15, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    def __repr__(self) -> str:
        state = "paused" if self.is_paused else ("open" if self.is_active else "closed")
        return f"<QueueConfig {self.name} ({state})>"
