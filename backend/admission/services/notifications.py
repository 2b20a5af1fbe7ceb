"""
Outbound guest notifications.

Queue transitions only *enqueue* a message; delivery (SMS, email, push) is
somebody else's problem. The default gateway writes each message to the log
and keeps nothing in memory, so one instance can live for the whole process.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Protocol

from loguru import logger

from admission.models import QueueEntry
from admission.utils.timezone import utc_now


class NotificationKind(str, Enum):
    ALMOST_READY = "almost_ready"   # Sent on notify / sweep
    READY = "ready"                 # Sent on call


@dataclass
class QueueNotification:
    kind: NotificationKind
    entry_id: str
    confirmation_code: str
    phone: Optional[str]
    email: Optional[str]
    message: str
    created_at: datetime = field(default_factory=utc_now)


class NotificationGateway(Protocol):
    async def enqueue(self, entry: QueueEntry, kind: NotificationKind, queue_name: str) -> bool:
        """Queue a message for the entry; returns whether anything was queued."""
        ...


def render_message(kind: NotificationKind, queue_name: str, code: str) -> str:
    if kind == NotificationKind.READY:
        return f"{queue_name}: it's your turn! Please come to the entrance now. Code {code}."
    return f"{queue_name}: you're almost up. Please head towards the entrance. Code {code}."


def build_notification(entry: QueueEntry, kind: NotificationKind, queue_name: str) -> Optional[QueueNotification]:
    """The message for ``entry``, or None when the guest left no phone or email."""
    if not entry.guest_phone and not entry.guest_email:
        return None

    return QueueNotification(
        kind=kind,
        entry_id=str(entry.id),
        confirmation_code=entry.confirmation_code,
        phone=entry.guest_phone,
        email=entry.guest_email,
        message=render_message(kind, queue_name, entry.confirmation_code),
    )


class LoggingNotificationGateway:
    """Writes every message to the log."""

    async def enqueue(self, entry: QueueEntry, kind: NotificationKind, queue_name: str) -> bool:
        notification = build_notification(entry, kind, queue_name)
        if notification is None:
            logger.info(f"No contact for queue entry {entry.confirmation_code}, skipping {kind.value} notification")
            return False

        self.deliver(notification)
        return True

    def deliver(self, notification: QueueNotification) -> None:
        logger.info(
            f"Queued {notification.kind.value} notification for {notification.confirmation_code}: "
            f"{notification.message}"
        )
