"""Feature entitlements per organization."""

import uuid
from typing import Protocol

from admission.config import Settings
from admission.exceptions import ForbiddenError

VIRTUAL_QUEUE = "virtual_queue"


class FeatureGate(Protocol):
    async def is_enabled(self, org_id: uuid.UUID, feature: str) -> bool:
        ...


class SettingsFeatureGate:
    """Entitlements from settings: a global switch plus an allow-list of org ids."""

    def __init__(self, settings: Settings):
        self.enabled_for_all = settings.virtual_queue_enabled_for_all
        self.enabled_orgs = {org.strip().lower() for org in settings.virtual_queue_enabled_orgs}

    async def is_enabled(self, org_id: uuid.UUID, feature: str) -> bool:
        if feature != VIRTUAL_QUEUE:
            return False
        return self.enabled_for_all or str(org_id).lower() in self.enabled_orgs


async def require_feature(gate: FeatureGate, org_id: uuid.UUID, feature: str = VIRTUAL_QUEUE) -> None:
    if not await gate.is_enabled(org_id, feature):
        raise ForbiddenError(
            f"The {feature.replace('_', ' ')} feature is not enabled for this organization",
            "FEATURE_NOT_ENABLED",
        )
