"""
Virtual queue service - guests join remotely, staff admit them in batches.

Entry lifecycle:
    waiting -> notified -> called -> checked_in
                  \\          \\
                   left/expired  no_show

Live entries (waiting, notified, called) of a queue always hold the dense
positions 1..N in join order. Every write that takes an entry out of the
live set renumbers the rest inside the same transaction, with the queue row
locked so concurrent joins and removals serialize per queue.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from statistics import mean
from typing import Any, Callable, Optional

from loguru import logger

from admission.config import Settings, get_settings
from admission.exceptions import (
    BadRequestError,
    ConflictError,
    DuplicateKeyError,
    NotFoundError,
)
from admission.models import (
    LIVE_STATUSES,
    QUEUE_CONFIG_DEFAULTS,
    QUEUE_TRANSITIONS,
    TERMINAL_STATUSES,
    Attraction,
    QueueConfig,
    QueueEntry,
    QueueEntryStatus,
)
from admission.services.capacity import estimate_wait_minutes, hourly_histogram, peak_bucket
from admission.services.codes import generate_confirmation_code
from admission.services.entitlements import FeatureGate, require_feature
from admission.services.notifications import NotificationGateway, NotificationKind
from admission.store.base import AdmissionStore
from admission.utils.timezone import from_utc, local_day_bounds, utc_now

MIN_PARTY_SIZE = 1
MAX_PARTY_SIZE = 20
CODE_ATTEMPTS = 10


@dataclass
class JoinRequest:
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None
    guest_email: Optional[str] = None
    party_size: int = 1
    ticket_id: Optional[uuid.UUID] = None
    notes: Optional[str] = None


@dataclass
class JoinResult:
    entry: QueueEntry
    estimated_wait_minutes: int
    estimated_time: datetime
    status_url: str


@dataclass
class EntryStatusView:
    """What a guest sees when looking up their confirmation code."""
    entry: QueueEntry
    people_ahead: int
    estimated_wait_minutes: int
    estimated_time: datetime
    queue_name: str
    attraction_name: str


@dataclass
class PublicQueueInfo:
    attraction: Attraction
    config: QueueConfig
    is_open: bool
    is_paused: bool
    current_wait_minutes: int
    people_in_queue: int
    status: str  # accepting, paused, full, closed
    message: str


@dataclass
class QueueSummary:
    total_waiting: int
    total_served_today: int
    avg_wait_minutes: int


@dataclass
class SweepResult:
    notified: list[str] = field(default_factory=list)
    expired: list[str] = field(default_factory=list)
    renumbered: int = 0


@dataclass
class QueueStats:
    day: date
    total_joined: int
    total_served: int
    total_expired: int
    total_left: int
    total_no_show: int
    avg_wait_minutes: int
    max_wait_minutes: int
    current_waiting: int
    by_hour: dict[datetime, int]
    peak_hour: Optional[datetime]


def _status(entry: QueueEntry) -> QueueEntryStatus:
    return QueueEntryStatus(entry.status)


def _invalid_transition(entry: QueueEntry, action: str) -> BadRequestError:
    return BadRequestError(
        f"Cannot {action} an entry that is {entry.status}",
        "INVALID_QUEUE_TRANSITION",
        current_status=entry.status,
    )


class QueueAdmissionController:
    """
    Queue operations for staff and guests.

    Staff methods take ``(org_id, attraction_id)``; public methods take the
    attraction slug. Both check the virtual queue entitlement first.
    """

    def __init__(
        self,
        store: AdmissionStore,
        notifier: NotificationGateway,
        gate: FeatureGate,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.notifier = notifier
        self.gate = gate
        self.settings = settings or get_settings()
        self.clock = clock

    # =========================================================================
    # Resolution
    # =========================================================================

    async def _get_attraction(self, org_id: uuid.UUID, attraction_id: uuid.UUID) -> Attraction:
        await require_feature(self.gate, org_id)
        attraction = await self.store.get_attraction(attraction_id)
        if not attraction or attraction.org_id != org_id:
            raise NotFoundError("Attraction not found")
        return attraction

    async def _get_public_attraction(self, slug: str) -> Attraction:
        attraction = await self.store.get_attraction_by_slug(slug)
        if not attraction or not attraction.is_active:
            raise NotFoundError("Attraction not found")
        await require_feature(self.gate, attraction.org_id)
        return attraction

    async def _get_config(self, attraction: Attraction) -> QueueConfig:
        config = await self.store.get_queue_config(attraction.id)
        if not config:
            raise NotFoundError("Queue not configured for this attraction")
        return config

    async def _resolve(self, org_id: uuid.UUID, attraction_id: uuid.UUID) -> tuple[Attraction, QueueConfig]:
        attraction = await self._get_attraction(org_id, attraction_id)
        return attraction, await self._get_config(attraction)

    async def _get_entry(self, config: QueueConfig, entry_id: uuid.UUID) -> QueueEntry:
        entry = await self.store.get_entry(entry_id)
        if not entry or entry.queue_id != config.id:
            raise NotFoundError("Queue entry not found")
        return entry

    # =========================================================================
    # Config
    # =========================================================================

    async def get_config(self, org_id: uuid.UUID, attraction_id: uuid.UUID) -> QueueConfig:
        _, config = await self._resolve(org_id, attraction_id)
        return config

    async def create_config(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        values: dict[str, Any],
    ) -> QueueConfig:
        attraction = await self._get_attraction(org_id, attraction_id)
        if await self.store.get_queue_config(attraction.id):
            raise ConflictError("Queue already exists for this attraction", "QUEUE_ALREADY_EXISTS")

        now = self.clock()
        settings = {**QUEUE_CONFIG_DEFAULTS, **{k: v for k, v in values.items() if v is not None}}
        name = settings.pop("name", None) or f"{attraction.name} Queue"
        config = QueueConfig(
            id=uuid.uuid4(),
            org_id=org_id,
            attraction_id=attraction.id,
            name=name,
            created_at=now,
            updated_at=now,
            **settings,
        )

        try:
            await self.store.add_queue_config(config)
        except DuplicateKeyError:
            raise ConflictError("Queue already exists for this attraction", "QUEUE_ALREADY_EXISTS")

        logger.info(f"Created queue '{config.name}' for attraction {attraction.id}")
        return config

    async def update_config(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        values: dict[str, Any],
    ) -> QueueConfig:
        _, config = await self._resolve(org_id, attraction_id)
        if not values:
            return config

        updated = await self.store.update_queue_config(config.id, {**values, "updated_at": self.clock()})
        logger.info(f"Updated queue {config.id}: {sorted(values)}")
        return updated

    async def pause(self, org_id: uuid.UUID, attraction_id: uuid.UUID) -> QueueConfig:
        return await self._set_paused(org_id, attraction_id, True)

    async def resume(self, org_id: uuid.UUID, attraction_id: uuid.UUID) -> QueueConfig:
        return await self._set_paused(org_id, attraction_id, False)

    async def _set_paused(self, org_id: uuid.UUID, attraction_id: uuid.UUID, paused: bool) -> QueueConfig:
        _, config = await self._resolve(org_id, attraction_id)
        if config.is_paused == paused:
            return config

        updated = await self.store.update_queue_config(
            config.id, {"is_paused": paused, "updated_at": self.clock()}
        )
        logger.info(f"Queue {config.id} {'paused' if paused else 'resumed'}")
        return updated

    # =========================================================================
    # Join
    # =========================================================================

    async def join(self, org_id: uuid.UUID, attraction_id: uuid.UUID, request: JoinRequest) -> JoinResult:
        attraction, config = await self._resolve(org_id, attraction_id)
        return await self._join(attraction, config, request)

    async def join_public(self, slug: str, request: JoinRequest) -> JoinResult:
        attraction = await self._get_public_attraction(slug)
        config = await self._get_config(attraction)
        return await self._join(attraction, config, request)

    async def _join(self, attraction: Attraction, config: QueueConfig, request: JoinRequest) -> JoinResult:
        if not MIN_PARTY_SIZE <= request.party_size <= MAX_PARTY_SIZE:
            raise BadRequestError(
                f"Party size must be between {MIN_PARTY_SIZE} and {MAX_PARTY_SIZE}",
                "INVALID_PARTY_SIZE",
            )

        phone = (request.guest_phone or "").strip() or None
        email = (request.guest_email or "").strip().lower() or None
        now = self.clock()

        async with self.store.transaction():
            config = await self.store.lock_queue(config.id)

            if not config.is_active:
                raise BadRequestError("Queue is currently closed", "QUEUE_CLOSED")
            if config.is_paused:
                raise BadRequestError("Queue is temporarily paused", "QUEUE_PAUSED")

            waiting = await self.store.count_entries(config.id, [QueueEntryStatus.WAITING])
            if waiting >= config.max_queue_size:
                raise BadRequestError("Queue is full, please try again later", "QUEUE_FULL")

            if phone or email:
                existing = await self._find_live_contact(config.id, phone, email)
                if existing:
                    raise self._already_in_queue(existing)

                if not config.allow_rejoin:
                    previous = await self._find_contact(
                        config.id, [QueueEntryStatus.EXPIRED, QueueEntryStatus.NO_SHOW], phone, email
                    )
                    if previous:
                        raise BadRequestError("Rejoining this queue is not allowed", "REJOIN_NOT_ALLOWED")

            position = await self.store.next_position(config.id)
            people_ahead = await self.store.waiting_party_total(config.id, before_position=position)
            entry = QueueEntry(
                id=uuid.uuid4(),
                org_id=config.org_id,
                queue_id=config.id,
                ticket_id=request.ticket_id,
                confirmation_code=await self._unique_code(),
                guest_name=request.guest_name,
                guest_phone=phone,
                guest_email=email,
                party_size=request.party_size,
                position=position,
                status=QueueEntryStatus.WAITING.value,
                joined_at=now,
                notes=request.notes,
            )

            try:
                await self.store.add_entry(entry)
            except DuplicateKeyError:
                existing = await self._find_live_contact(config.id, phone, email)
                if existing:
                    raise self._already_in_queue(existing)
                raise

        wait = estimate_wait_minutes(people_ahead, config.capacity_per_batch, config.batch_interval_minutes)
        logger.info(
            f"{entry.confirmation_code} joined queue {config.id} at position {position} "
            f"(party of {entry.party_size}, ~{wait} min)"
        )

        return JoinResult(
            entry=entry,
            estimated_wait_minutes=wait,
            estimated_time=now + timedelta(minutes=wait),
            status_url=self.status_url(attraction, entry.confirmation_code),
        )

    def status_url(self, attraction: Attraction, confirmation_code: str) -> str:
        base = self.settings.public_base_url.rstrip("/")
        return f"{base}/{attraction.slug}/queue/status/{confirmation_code}"

    @staticmethod
    def _already_in_queue(existing: QueueEntry) -> ConflictError:
        return ConflictError(
            "You are already in the queue",
            "ALREADY_IN_QUEUE",
            confirmation_code=existing.confirmation_code,
        )

    async def _find_contact(
        self,
        queue_id: uuid.UUID,
        statuses,
        phone: Optional[str],
        email: Optional[str],
    ) -> Optional[QueueEntry]:
        found = None
        if phone:
            found = await self.store.find_entry_by_contact(queue_id, statuses, phone=phone)
        if not found and email:
            found = await self.store.find_entry_by_contact(queue_id, statuses, email=email)
        return found

    async def _find_live_contact(self, queue_id, phone, email) -> Optional[QueueEntry]:
        return await self._find_contact(queue_id, LIVE_STATUSES, phone, email)

    async def _unique_code(self) -> str:
        for _ in range(CODE_ATTEMPTS):
            code = generate_confirmation_code()
            if not await self.store.confirmation_code_exists(code):
                return code
        raise ConflictError("Could not allocate a confirmation code, please retry", "CODE_EXHAUSTED")

    # =========================================================================
    # Staff actions
    # =========================================================================

    async def get_entry(self, org_id: uuid.UUID, attraction_id: uuid.UUID, entry_id: uuid.UUID) -> QueueEntry:
        _, config = await self._resolve(org_id, attraction_id)
        return await self._get_entry(config, entry_id)

    async def notify(self, org_id: uuid.UUID, attraction_id: uuid.UUID, entry_id: uuid.UUID) -> tuple[QueueEntry, bool]:
        """Tell a waiting guest their turn is coming up."""
        _, config = await self._resolve(org_id, attraction_id)
        entry = await self._transition(
            config, entry_id, QueueEntryStatus.NOTIFIED, {QueueEntryStatus.WAITING}, "notify"
        )
        sent = await self.notifier.enqueue(entry, NotificationKind.ALMOST_READY, config.name)
        return entry, sent

    async def call(self, org_id: uuid.UUID, attraction_id: uuid.UUID, entry_id: uuid.UUID) -> tuple[QueueEntry, bool]:
        """Ask a waiting guest to come to the entrance now."""
        _, config = await self._resolve(org_id, attraction_id)
        entry = await self._transition(
            config, entry_id, QueueEntryStatus.CALLED, {QueueEntryStatus.WAITING}, "call"
        )
        sent = await self.notifier.enqueue(entry, NotificationKind.READY, config.name)
        return entry, sent

    async def check_in(self, org_id: uuid.UUID, attraction_id: uuid.UUID, entry_id: uuid.UUID) -> QueueEntry:
        _, config = await self._resolve(org_id, attraction_id)
        return await self._transition(
            config,
            entry_id,
            QueueEntryStatus.CHECKED_IN,
            {QueueEntryStatus.CALLED, QueueEntryStatus.NOTIFIED},
            "check in",
        )

    async def mark_no_show(self, org_id: uuid.UUID, attraction_id: uuid.UUID, entry_id: uuid.UUID) -> QueueEntry:
        _, config = await self._resolve(org_id, attraction_id)
        return await self._transition(
            config, entry_id, QueueEntryStatus.NO_SHOW, {QueueEntryStatus.CALLED}, "mark as no-show"
        )

    async def remove(self, org_id: uuid.UUID, attraction_id: uuid.UUID, entry_id: uuid.UUID) -> QueueEntry:
        _, config = await self._resolve(org_id, attraction_id)
        return await self._transition(
            config,
            entry_id,
            QueueEntryStatus.LEFT,
            {QueueEntryStatus.WAITING, QueueEntryStatus.NOTIFIED},
            "remove",
        )

    async def update_entry(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        entry_id: uuid.UUID,
        status: Optional[QueueEntryStatus] = None,
        notes: Optional[str] = None,
    ) -> QueueEntry:
        if status is None and notes is None:
            raise BadRequestError("No fields to update")

        _, config = await self._resolve(org_id, attraction_id)
        entry = await self._get_entry(config, entry_id)

        if status is not None:
            target = QueueEntryStatus(status)
            sources = {s for s, targets in QUEUE_TRANSITIONS.items() if target in targets}
            entry = await self._transition(config, entry_id, target, sources, f"move to {target.value}")

        if notes is not None:
            entry = await self.store.update_entry(entry.id, {"notes": notes})

        return entry

    async def _transition(
        self,
        config: QueueConfig,
        entry_id: uuid.UUID,
        target: QueueEntryStatus,
        sources: set[QueueEntryStatus],
        action: str,
    ) -> QueueEntry:
        leaves_line = target in TERMINAL_STATUSES

        async with self.store.transaction():
            if leaves_line:
                await self.store.lock_queue(config.id)

            entry = await self._get_entry(config, entry_id)
            if _status(entry) not in sources:
                raise _invalid_transition(entry, action)
            previous = entry.status

            updated = await self.store.transition_entry(entry.id, sources, target, self.clock())
            if updated is None:
                # Someone else moved it between our read and write
                current = await self._get_entry(config, entry_id)
                raise _invalid_transition(current, action)

            if leaves_line:
                await self.renumber(config.id)

        logger.info(f"Queue entry {updated.confirmation_code}: {previous} -> {target.value}")
        return updated

    async def renumber(self, queue_id: uuid.UUID) -> int:
        """
        Reassign positions 1..N to live entries in current order.
        Must run inside a transaction holding the queue lock.
        """
        live = await self.store.list_live_entries(queue_id)
        changes = [
            (entry.id, position)
            for position, entry in enumerate(live, start=1)
            if entry.position != position
        ]
        await self.store.set_positions(changes)
        return len(changes)

    # =========================================================================
    # Listing, sweep and stats
    # =========================================================================

    async def list_entries(
        self,
        org_id: uuid.UUID,
        attraction_id: uuid.UUID,
        status: Optional[QueueEntryStatus] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> tuple[list[QueueEntry], QueueSummary]:
        attraction, config = await self._resolve(org_id, attraction_id)
        entries = await self.store.list_entries(config.id, status, search, limit, offset)

        today = from_utc(self.clock(), attraction.timezone).date()
        start, end = local_day_bounds(today, attraction.timezone)
        served = [
            e for e in await self.store.list_entries_joined_between(config.id, start, end)
            if e.checked_in_at
        ]
        summary = QueueSummary(
            total_waiting=await self.store.count_entries(config.id, [QueueEntryStatus.WAITING]),
            total_served_today=await self.store.count_checked_in_since(config.id, start),
            avg_wait_minutes=round(mean(e.wait_duration_minutes for e in served)) if served else 0,
        )
        return entries, summary

    async def sweep(self, org_id: uuid.UUID, attraction_id: uuid.UUID) -> SweepResult:
        """
        Advance the queue on the clock:
        notify waiting guests whose estimated wait is within the lead time,
        expire notified guests who never showed up, then renumber.

        Estimates use the line as it stood when the sweep started.
        """
        _, config = await self._resolve(org_id, attraction_id)
        now = self.clock()
        result = SweepResult()
        to_notify: list[QueueEntry] = []

        async with self.store.transaction():
            config = await self.store.lock_queue(config.id)
            expiry = timedelta(minutes=config.expiry_minutes)
            people_ahead = 0

            for entry in await self.store.list_live_entries(config.id):
                status = _status(entry)

                if status == QueueEntryStatus.NOTIFIED:
                    if entry.notified_at and entry.notified_at + expiry <= now:
                        expired = await self.store.transition_entry(
                            entry.id, [QueueEntryStatus.NOTIFIED], QueueEntryStatus.EXPIRED, now
                        )
                        if expired:
                            result.expired.append(expired.confirmation_code)

                elif status == QueueEntryStatus.WAITING:
                    wait = estimate_wait_minutes(
                        people_ahead, config.capacity_per_batch, config.batch_interval_minutes
                    )
                    people_ahead += entry.party_size
                    if wait <= config.notification_lead_minutes:
                        notified = await self.store.transition_entry(
                            entry.id, [QueueEntryStatus.WAITING], QueueEntryStatus.NOTIFIED, now
                        )
                        if notified:
                            to_notify.append(notified)
                            result.notified.append(notified.confirmation_code)

            if result.expired:
                result.renumbered = await self.renumber(config.id)

        for entry in to_notify:
            await self.notifier.enqueue(entry, NotificationKind.ALMOST_READY, config.name)

        if result.notified or result.expired:
            logger.info(
                f"Sweep of queue {config.id}: notified {len(result.notified)}, expired {len(result.expired)}"
            )
        return result

    async def get_stats(self, org_id: uuid.UUID, attraction_id: uuid.UUID, day: Optional[date] = None) -> QueueStats:
        attraction, config = await self._resolve(org_id, attraction_id)
        tz = attraction.timezone
        day = day or from_utc(self.clock(), tz).date()
        start, end = local_day_bounds(day, tz)

        entries = await self.store.list_entries_joined_between(config.id, start, end)

        def with_status(status: QueueEntryStatus) -> list[QueueEntry]:
            return [e for e in entries if e.status == status.value]

        waits = [e.wait_duration_minutes for e in with_status(QueueEntryStatus.CHECKED_IN)]
        by_hour = hourly_histogram(from_utc(e.joined_at, tz) for e in entries)
        peak = peak_bucket(by_hour)

        return QueueStats(
            day=day,
            total_joined=len(entries),
            total_served=len(waits),
            total_expired=len(with_status(QueueEntryStatus.EXPIRED)),
            total_left=len(with_status(QueueEntryStatus.LEFT)),
            total_no_show=len(with_status(QueueEntryStatus.NO_SHOW)),
            avg_wait_minutes=round(mean(waits)) if waits else 0,
            max_wait_minutes=max(waits) if waits else 0,
            current_waiting=await self.store.count_entries(config.id, [QueueEntryStatus.WAITING]),
            by_hour=by_hour,
            peak_hour=peak[0] if peak else None,
        )

    # =========================================================================
    # Public (guest) operations
    # =========================================================================

    async def get_public_info(self, slug: str) -> PublicQueueInfo:
        attraction = await self._get_public_attraction(slug)
        config = await self._get_config(attraction)

        people_in_queue = await self.store.count_entries(config.id, [QueueEntryStatus.WAITING])
        party_total = await self.store.waiting_party_total(config.id)
        wait = estimate_wait_minutes(party_total, config.capacity_per_batch, config.batch_interval_minutes)

        if not config.is_active:
            status, message = "closed", "The queue is currently closed"
        elif config.is_paused:
            status, message = "paused", "The queue is temporarily paused"
        elif people_in_queue >= config.max_queue_size:
            status, message = "full", "The queue is full, please check back soon"
        else:
            status, message = "accepting", "Join the queue to hold your place in line"

        return PublicQueueInfo(
            attraction=attraction,
            config=config,
            is_open=config.is_active and not config.is_paused,
            is_paused=config.is_paused,
            current_wait_minutes=wait,
            people_in_queue=people_in_queue,
            status=status,
            message=message,
        )

    async def get_public_status(self, slug: str, confirmation_code: str) -> EntryStatusView:
        attraction = await self._get_public_attraction(slug)
        config = await self._get_config(attraction)
        entry = await self._get_entry_by_code(config, confirmation_code)

        if _status(entry) == QueueEntryStatus.WAITING:
            people_ahead = await self.store.waiting_party_total(config.id, before_position=entry.position)
            wait = estimate_wait_minutes(people_ahead, config.capacity_per_batch, config.batch_interval_minutes)
        elif entry.is_live:
            people_ahead = await self.store.waiting_party_total(config.id, before_position=entry.position)
            wait = 0
        else:
            people_ahead, wait = 0, 0

        return EntryStatusView(
            entry=entry,
            people_ahead=people_ahead,
            estimated_wait_minutes=wait,
            estimated_time=self.clock() + timedelta(minutes=wait),
            queue_name=config.name,
            attraction_name=attraction.name,
        )

    async def leave_public(self, slug: str, confirmation_code: str) -> QueueEntry:
        attraction = await self._get_public_attraction(slug)
        config = await self._get_config(attraction)
        entry = await self._get_entry_by_code(config, confirmation_code)
        return await self._transition(
            config,
            entry.id,
            QueueEntryStatus.LEFT,
            {QueueEntryStatus.WAITING, QueueEntryStatus.NOTIFIED},
            "leave",
        )

    async def _get_entry_by_code(self, config: QueueConfig, confirmation_code: str) -> QueueEntry:
        entry = await self.store.get_entry_by_code(confirmation_code.strip().upper())
        if not entry or entry.queue_id != config.id:
            raise NotFoundError("Queue entry not found")
        return entry
