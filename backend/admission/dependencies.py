"""
Service wiring for FastAPI.

Each request gets a store bound to its own session; controllers are cheap
and built per request. Tests override ``get_store`` (and friends) through
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from admission.config import get_settings
from admission.database import get_db
from admission.services.booking_service import SlotBookingService
from admission.services.entitlements import FeatureGate, SettingsFeatureGate
from admission.services.notifications import LoggingNotificationGateway, NotificationGateway
from admission.services.queue_service import QueueAdmissionController
from admission.services.ticket_service import TicketAdmissionController
from admission.store.base import AdmissionStore
from admission.store.sqlalchemy_store import SqlAlchemyAdmissionStore


async def get_store(db: AsyncSession = Depends(get_db)) -> AdmissionStore:
    return SqlAlchemyAdmissionStore(db)


@lru_cache
def get_notifier() -> NotificationGateway:
    return LoggingNotificationGateway()


def get_feature_gate() -> FeatureGate:
    return SettingsFeatureGate(get_settings())


def get_queue_controller(
    store: AdmissionStore = Depends(get_store),
    notifier: NotificationGateway = Depends(get_notifier),
    gate: FeatureGate = Depends(get_feature_gate),
) -> QueueAdmissionController:
    return QueueAdmissionController(store, notifier, gate)


def get_ticket_controller(store: AdmissionStore = Depends(get_store)) -> TicketAdmissionController:
    return TicketAdmissionController(store)


def get_booking_service(store: AdmissionStore = Depends(get_store)) -> SlotBookingService:
    return SlotBookingService(store)
