# Database models
from admission.models.attraction import Attraction
from admission.models.check_in import CheckIn, CheckInMethod
from admission.models.order import Order, OrderItem, OrderStatus
from admission.models.queue_config import QUEUE_CONFIG_DEFAULTS, QueueConfig
from admission.models.queue_entry import (
    LIVE_STATUSES,
    QUEUE_TRANSITIONS,
    TERMINAL_STATUSES,
    QueueEntry,
    QueueEntryStatus,
)
from admission.models.ticket import TICKET_TRANSITIONS, Ticket, TicketStatus
from admission.models.ticket_type import TicketType
from admission.models.time_slot import TimeSlot

__all__ = [
    "Attraction",
    "CheckIn",
    "CheckInMethod",
    "Order",
    "OrderItem",
    "OrderStatus",
    "QueueConfig",
    "QUEUE_CONFIG_DEFAULTS",
    "QueueEntry",
    "QueueEntryStatus",
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
    "QUEUE_TRANSITIONS",
    "Ticket",
    "TicketStatus",
    "TICKET_TRANSITIONS",
    "TicketType",
    "TimeSlot",
]
