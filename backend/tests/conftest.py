import uuid
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

from admission.config import Settings
from admission.models import (
    QUEUE_CONFIG_DEFAULTS,
    Attraction,
    Order,
    OrderItem,
    OrderStatus,
    QueueConfig,
    Ticket,
    TicketStatus,
    TicketType,
    TimeSlot,
)
from admission.services.booking_service import SlotBookingService
from admission.services.entitlements import SettingsFeatureGate
from admission.services.notifications import LoggingNotificationGateway, QueueNotification
from admission.services.queue_service import QueueAdmissionController
from admission.services.ticket_service import TicketAdmissionController
from tests.fake_store import FakeAdmissionStore

ORG_ID = uuid.UUID("6f1c1a52-5a8e-4d0a-9a0e-1d5f1f7a0c01")
OTHER_ORG_ID = uuid.UUID("6f1c1a52-5a8e-4d0a-9a0e-1d5f1f7a0c02")
START = datetime(2026, 10, 30, 22, 0)  # naive UTC


class FakeClock:
    """Controllable replacement for ``utc_now``."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        virtual_queue_enabled_orgs=[str(ORG_ID)],
        public_base_url="https://haunt.test",
        log_file=None,
    )


@pytest.fixture
def store():
    return FakeAdmissionStore()


class RecordingNotificationGateway(LoggingNotificationGateway):
    """Logs like the real gateway and also keeps every message in ``outbox``."""

    def __init__(self) -> None:
        self.outbox: list[QueueNotification] = []

    def deliver(self, notification: QueueNotification) -> None:
        super().deliver(notification)
        self.outbox.append(notification)


@pytest.fixture
def notifier():
    return RecordingNotificationGateway()


@pytest.fixture
def attraction(store):
    attraction = Attraction(
        id=uuid.uuid4(),
        org_id=ORG_ID,
        name="Haunted Hollow Manor",
        slug="haunted-hollow",
        timezone="UTC",
        is_active=True,
        created_at=START,
    )
    store.put(attraction)
    return attraction


@pytest.fixture
def make_queue(store, attraction, clock):
    def _make(**overrides) -> QueueConfig:
        values = {**QUEUE_CONFIG_DEFAULTS, **overrides}
        config = QueueConfig(
            id=uuid.uuid4(),
            org_id=attraction.org_id,
            attraction_id=attraction.id,
            name=values.pop("name", "Main Line"),
            created_at=clock(),
            updated_at=clock(),
            **values,
        )
        store.put(config)
        return config

    return _make


@pytest.fixture
def queue_config(make_queue):
    return make_queue()


@pytest.fixture
def queue_controller(store, notifier, settings, clock):
    return QueueAdmissionController(store, notifier, SettingsFeatureGate(settings), settings, clock)


@pytest.fixture
def ticket_controller(store, settings, clock):
    return TicketAdmissionController(store, settings, clock)


@pytest.fixture
def booking_service(store, clock):
    return SlotBookingService(store, clock)


@pytest.fixture
def ticket_type(store, attraction):
    ticket_type = TicketType(
        id=uuid.uuid4(),
        org_id=attraction.org_id,
        attraction_id=attraction.id,
        name="General Admission",
        price=Decimal("25.00"),
        is_active=True,
    )
    store.put(ticket_type)
    return ticket_type


@pytest.fixture
def make_slot(store, attraction):
    def _make(day: date, start: time, end: time, capacity=None, booked=0) -> TimeSlot:
        slot = TimeSlot(
            id=uuid.uuid4(),
            org_id=attraction.org_id,
            attraction_id=attraction.id,
            date=day,
            start_time=start,
            end_time=end,
            capacity=capacity,
            booked_count=booked,
        )
        store.put(slot)
        return slot

    return _make


@pytest.fixture
def make_order(store, attraction, ticket_type, clock):
    def _make(quantity=1, slot=None, status=OrderStatus.PENDING) -> Order:
        total = ticket_type.price * quantity
        order = Order(
            id=uuid.uuid4(),
            org_id=attraction.org_id,
            attraction_id=attraction.id,
            order_number=f"HHM-{uuid.uuid4().hex[:8].upper()}",
            status=status.value,
            customer_name="Morticia Addams",
            customer_email="morticia@example.com",
            subtotal=total,
            discount_amount=Decimal("0"),
            total=total,
            created_at=clock(),
            updated_at=clock(),
        )
        item = OrderItem(
            id=uuid.uuid4(),
            order_id=order.id,
            ticket_type_id=ticket_type.id,
            time_slot_id=slot.id if slot else None,
            quantity=quantity,
            unit_price=ticket_type.price,
            total_price=total,
        )
        store.put(order, item)
        return order

    return _make


@pytest.fixture
def make_ticket(store, attraction, ticket_type, make_order, clock):
    def _make(status=TicketStatus.VALID, slot=None, barcode=None, order=None, **fields) -> Ticket:
        order = order or make_order(slot=slot, status=OrderStatus.COMPLETED)
        ticket = Ticket(
            id=uuid.uuid4(),
            org_id=attraction.org_id,
            order_id=order.id,
            ticket_type_id=ticket_type.id,
            time_slot_id=slot.id if slot else None,
            ticket_number=f"HHM-T-{uuid.uuid4().hex[:8].upper()}",
            barcode=barcode or uuid.uuid4().hex[:12].upper(),
            guest_name="Wednesday Addams",
            status=TicketStatus(status).value,
            created_at=clock(),
            updated_at=clock(),
            **fields,
        )
        store.put(ticket)
        return ticket

    return _make
