import asyncio
import random
import uuid

import pytest
from loguru import logger

from admission.exceptions import BadRequestError, ConflictError, ForbiddenError, NotFoundError
from admission.models import QueueEntry, QueueEntryStatus
from admission.services.codes import CODE_ALPHABET
from admission.services.notifications import LoggingNotificationGateway, NotificationKind
from admission.services.queue_service import JoinRequest
from tests.conftest import ORG_ID, OTHER_ORG_ID


def guest(n: int, party_size: int = 1, **fields) -> JoinRequest:
    return JoinRequest(
        guest_name=f"Guest {n}",
        guest_phone=f"+1555000{n:04d}",
        party_size=party_size,
        **fields,
    )


@pytest.fixture
def join(queue_controller, attraction):
    async def _join(request: JoinRequest):
        return await queue_controller.join(ORG_ID, attraction.id, request)

    return _join


@pytest.mark.unit
class TestJoin:
    @pytest.mark.asyncio
    async def test_first_guest_is_at_front(self, join, queue_config):
        result = await join(guest(1, party_size=4))

        entry = result.entry
        assert entry.position == 1
        assert entry.status == QueueEntryStatus.WAITING.value
        assert entry.party_size == 4
        assert result.estimated_wait_minutes == 0
        assert len(entry.confirmation_code) == 6
        assert set(entry.confirmation_code) <= set(CODE_ALPHABET)
        assert result.status_url == (
            f"https://haunt.test/haunted-hollow/queue/status/{entry.confirmation_code}"
        )

    @pytest.mark.asyncio
    async def test_batch_example_fills_queue(self, join, make_queue):
        make_queue(capacity_per_batch=10, batch_interval_minutes=5, max_queue_size=2)

        a = await join(guest(1))
        b = await join(guest(2))
        with pytest.raises(BadRequestError) as exc:
            await join(guest(3))

        assert (a.entry.position, a.estimated_wait_minutes) == (1, 0)
        assert (b.entry.position, b.estimated_wait_minutes) == (2, 0)
        assert exc.value.code == "QUEUE_FULL"

    @pytest.mark.asyncio
    async def test_wait_grows_by_batch(self, join, make_queue):
        make_queue(capacity_per_batch=2, batch_interval_minutes=5)

        waits = [(await join(guest(n))).estimated_wait_minutes for n in range(5)]

        assert waits == [0, 0, 5, 5, 10]

    @pytest.mark.asyncio
    async def test_paused_queue_rejects(self, join, make_queue):
        make_queue(is_paused=True)

        with pytest.raises(BadRequestError) as exc:
            await join(guest(1))
        assert exc.value.code == "QUEUE_PAUSED"

    @pytest.mark.asyncio
    async def test_closed_check_comes_before_paused(self, join, make_queue):
        make_queue(is_active=False, is_paused=True)

        with pytest.raises(BadRequestError) as exc:
            await join(guest(1))
        assert exc.value.code == "QUEUE_CLOSED"

    @pytest.mark.asyncio
    async def test_missing_queue(self, join, attraction):
        with pytest.raises(NotFoundError) as exc:
            await join(guest(1))
        assert exc.value.message == "Queue not configured for this attraction"

    @pytest.mark.asyncio
    async def test_feature_gate(self, queue_controller, attraction, queue_config):
        with pytest.raises(ForbiddenError) as exc:
            await queue_controller.join(OTHER_ORG_ID, attraction.id, guest(1))
        assert exc.value.code == "FEATURE_NOT_ENABLED"

    @pytest.mark.asyncio
    async def test_party_size_bounds(self, join, queue_config):
        with pytest.raises(BadRequestError):
            await join(guest(1, party_size=21))

    @pytest.mark.asyncio
    async def test_same_phone_is_rejected_with_existing_code(self, join, queue_config):
        first = await join(guest(1))

        with pytest.raises(ConflictError) as exc:
            await join(JoinRequest(guest_name="Someone else", guest_phone=first.entry.guest_phone))

        assert exc.value.code == "ALREADY_IN_QUEUE"
        assert exc.value.extra["confirmation_code"] == first.entry.confirmation_code

    @pytest.mark.asyncio
    async def test_same_email_is_rejected(self, join, queue_config):
        await join(JoinRequest(guest_email="Lily@Munster.example"))

        with pytest.raises(ConflictError):
            await join(JoinRequest(guest_email="lily@munster.example"))

    @pytest.mark.asyncio
    async def test_guest_may_rejoin_after_leaving(self, queue_controller, join, attraction, queue_config):
        first = await join(guest(1))
        await queue_controller.remove(ORG_ID, attraction.id, first.entry.id)

        again = await join(guest(1))

        assert again.entry.position == 1
        assert again.entry.confirmation_code != first.entry.confirmation_code

    @pytest.mark.asyncio
    async def test_no_rejoin_after_no_show(self, queue_controller, join, attraction, queue_config):
        first = await join(guest(1))
        await queue_controller.call(ORG_ID, attraction.id, first.entry.id)
        await queue_controller.mark_no_show(ORG_ID, attraction.id, first.entry.id)

        with pytest.raises(BadRequestError) as exc:
            await join(guest(1))
        assert exc.value.code == "REJOIN_NOT_ALLOWED"

    @pytest.mark.asyncio
    async def test_rejoin_allowed_by_config(self, queue_controller, join, attraction, make_queue):
        make_queue(allow_rejoin=True)
        first = await join(guest(1))
        await queue_controller.call(ORG_ID, attraction.id, first.entry.id)
        await queue_controller.mark_no_show(ORG_ID, attraction.id, first.entry.id)

        again = await join(guest(1))

        assert again.entry.status == QueueEntryStatus.WAITING.value

    @pytest.mark.asyncio
    async def test_concurrent_joins_with_one_phone(self, join, store, queue_config):
        results = await asyncio.gather(
            join(guest(7)),
            join(guest(7)),
            return_exceptions=True,
        )

        joined = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, ConflictError)]
        assert len(joined) == 1
        assert len(rejected) == 1
        assert rejected[0].extra["confirmation_code"] == joined[0].entry.confirmation_code
        assert store.live_positions(queue_config.id) == [1]

    @pytest.mark.asyncio
    async def test_concurrent_joins_get_distinct_positions(self, join, store, queue_config):
        await asyncio.gather(*(join(guest(n)) for n in range(12)))

        assert store.live_positions(queue_config.id) == list(range(1, 13))


@pytest.mark.unit
class TestTransitions:
    @pytest.mark.asyncio
    async def test_call_sends_ready_notification(self, queue_controller, join, attraction, queue_config, notifier):
        result = await join(guest(1))

        entry, sent = await queue_controller.call(ORG_ID, attraction.id, result.entry.id)

        assert entry.status == QueueEntryStatus.CALLED.value
        assert entry.called_at is not None
        assert sent is True
        assert [n.kind for n in notifier.outbox] == [NotificationKind.READY]

    @pytest.mark.asyncio
    async def test_call_without_contact_sends_nothing(self, queue_controller, join, attraction, queue_config):
        result = await join(JoinRequest(guest_name="No phone"))

        _, sent = await queue_controller.call(ORG_ID, attraction.id, result.entry.id)

        assert sent is False

    @pytest.mark.asyncio
    async def test_call_twice_is_invalid(self, queue_controller, join, attraction, queue_config):
        result = await join(guest(1))
        await queue_controller.call(ORG_ID, attraction.id, result.entry.id)

        with pytest.raises(BadRequestError) as exc:
            await queue_controller.call(ORG_ID, attraction.id, result.entry.id)

        assert exc.value.code == "INVALID_QUEUE_TRANSITION"
        assert exc.value.extra["current_status"] == "called"

    @pytest.mark.asyncio
    async def test_check_in_requires_call_or_notify(self, queue_controller, join, attraction, queue_config):
        result = await join(guest(1))

        with pytest.raises(BadRequestError):
            await queue_controller.check_in(ORG_ID, attraction.id, result.entry.id)

    @pytest.mark.asyncio
    async def test_check_in_reports_wait(self, queue_controller, join, attraction, queue_config, clock):
        result = await join(guest(1))
        clock.advance(minutes=12)
        await queue_controller.call(ORG_ID, attraction.id, result.entry.id)
        clock.advance(minutes=5, seconds=20)

        entry = await queue_controller.check_in(ORG_ID, attraction.id, result.entry.id)

        assert entry.status == QueueEntryStatus.CHECKED_IN.value
        assert entry.wait_duration_minutes == 17

    @pytest.mark.asyncio
    async def test_check_in_from_notified(self, queue_controller, join, attraction, queue_config):
        result = await join(guest(1))
        await queue_controller.notify(ORG_ID, attraction.id, result.entry.id)

        entry = await queue_controller.check_in(ORG_ID, attraction.id, result.entry.id)

        assert entry.status == QueueEntryStatus.CHECKED_IN.value

    @pytest.mark.asyncio
    async def test_no_show_only_after_call(self, queue_controller, join, attraction, queue_config):
        result = await join(guest(1))

        with pytest.raises(BadRequestError):
            await queue_controller.mark_no_show(ORG_ID, attraction.id, result.entry.id)

    @pytest.mark.asyncio
    async def test_cannot_remove_called_entry(self, queue_controller, join, attraction, queue_config):
        result = await join(guest(1))
        await queue_controller.call(ORG_ID, attraction.id, result.entry.id)

        with pytest.raises(BadRequestError):
            await queue_controller.remove(ORG_ID, attraction.id, result.entry.id)

    @pytest.mark.asyncio
    async def test_unknown_entry(self, queue_controller, attraction, queue_config):
        with pytest.raises(NotFoundError):
            await queue_controller.call(ORG_ID, attraction.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_terminal_states_are_final(self, queue_controller, join, attraction, queue_config):
        result = await join(guest(1))
        await queue_controller.remove(ORG_ID, attraction.id, result.entry.id)

        for action in (queue_controller.notify, queue_controller.call, queue_controller.check_in):
            with pytest.raises(BadRequestError):
                await action(ORG_ID, attraction.id, result.entry.id)


@pytest.mark.unit
class TestPositions:
    @pytest.mark.asyncio
    async def test_removing_second_of_five_shifts_the_rest(self, queue_controller, join, attraction, queue_config):
        entries = [(await join(guest(n))).entry for n in range(5)]

        await queue_controller.remove(ORG_ID, attraction.id, entries[1].id)

        assert [e.position for e in entries[2:]] == [2, 3, 4]
        assert entries[0].position == 1
        assert entries[1].status == QueueEntryStatus.LEFT.value
        assert entries[1].left_at is not None

    @pytest.mark.asyncio
    async def test_positions_stay_dense(self, queue_controller, join, attraction, queue_config, store):
        rng = random.Random(1031)
        live = []
        for n in range(40):
            if live and rng.random() < 0.4:
                entry = live.pop(rng.randrange(len(live)))
                await queue_controller.remove(ORG_ID, attraction.id, entry.id)
            else:
                live.append((await join(guest(n))).entry)

            assert store.live_positions(queue_config.id) == list(range(1, len(live) + 1))

    @pytest.mark.asyncio
    async def test_checked_in_entries_leave_the_numbering(self, queue_controller, join, attraction, queue_config):
        entries = [(await join(guest(n))).entry for n in range(3)]
        await queue_controller.call(ORG_ID, attraction.id, entries[0].id)
        await queue_controller.check_in(ORG_ID, attraction.id, entries[0].id)

        assert [e.position for e in entries[1:]] == [1, 2]

    @pytest.mark.asyncio
    async def test_wait_is_non_decreasing_in_position(self, queue_controller, join, attraction, make_queue):
        make_queue(capacity_per_batch=3, batch_interval_minutes=4)
        for n in range(10):
            await join(guest(n, party_size=1 + n % 3))

        views = []
        entries, _ = await queue_controller.list_entries(ORG_ID, attraction.id)
        for entry in entries:
            views.append(await queue_controller.get_public_status("haunted-hollow", entry.confirmation_code))

        views.sort(key=lambda v: v.entry.position)
        waits = [v.estimated_wait_minutes for v in views]
        assert waits == sorted(waits)
        assert waits[-1] > 0


@pytest.mark.unit
class TestUpdateEntry:
    @pytest.mark.asyncio
    async def test_empty_update(self, queue_controller, join, attraction, queue_config):
        result = await join(guest(1))

        with pytest.raises(BadRequestError):
            await queue_controller.update_entry(ORG_ID, attraction.id, result.entry.id)

    @pytest.mark.asyncio
    async def test_notes_only(self, queue_controller, join, attraction, queue_config):
        result = await join(guest(1))

        entry = await queue_controller.update_entry(
            ORG_ID, attraction.id, result.entry.id, notes="Wheelchair access"
        )

        assert entry.notes == "Wheelchair access"
        assert entry.status == QueueEntryStatus.WAITING.value

    @pytest.mark.asyncio
    async def test_status_follows_transition_table(self, queue_controller, join, attraction, queue_config):
        first = (await join(guest(1))).entry
        second = (await join(guest(2))).entry

        await queue_controller.update_entry(ORG_ID, attraction.id, first.id, status=QueueEntryStatus.EXPIRED)

        assert first.expired_at is not None
        assert second.position == 1
        with pytest.raises(BadRequestError):
            await queue_controller.update_entry(
                ORG_ID, attraction.id, first.id, status=QueueEntryStatus.WAITING
            )


@pytest.mark.unit
class TestSweep:
    @pytest.mark.asyncio
    async def test_notifies_near_front_then_expires(
        self, queue_controller, join, attraction, make_queue, clock, notifier
    ):
        make_queue(capacity_per_batch=1, batch_interval_minutes=10, notification_lead_minutes=10, expiry_minutes=15)
        entries = [(await join(guest(n))).entry for n in range(3)]

        first = await queue_controller.sweep(ORG_ID, attraction.id)

        assert first.notified == [entries[0].confirmation_code, entries[1].confirmation_code]
        assert first.expired == []
        assert entries[2].status == QueueEntryStatus.WAITING.value
        assert len(notifier.outbox) == 2

        clock.advance(minutes=15)
        second = await queue_controller.sweep(ORG_ID, attraction.id)

        assert second.expired == [entries[0].confirmation_code, entries[1].confirmation_code]
        assert second.notified == [entries[2].confirmation_code]
        assert entries[0].expired_at == clock()
        assert entries[2].position == 1

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, queue_controller, join, attraction, queue_config):
        await join(guest(1))
        await queue_controller.sweep(ORG_ID, attraction.id)

        again = await queue_controller.sweep(ORG_ID, attraction.id)

        assert again.notified == [] and again.expired == []


@pytest.mark.unit
class TestPublic:
    @pytest.mark.asyncio
    async def test_status_lookup_is_case_insensitive(self, queue_controller, join, queue_config):
        await join(guest(1, party_size=3))
        await join(guest(2, party_size=2))
        target = (await join(guest(3))).entry

        view = await queue_controller.get_public_status("haunted-hollow", target.confirmation_code.lower())

        assert view.entry.id == target.id
        assert view.people_ahead == 5
        assert view.queue_name == "Main Line"
        assert view.attraction_name == "Haunted Hollow Manor"

    @pytest.mark.asyncio
    async def test_unknown_code(self, queue_controller, queue_config):
        with pytest.raises(NotFoundError):
            await queue_controller.get_public_status("haunted-hollow", "ZZZZZZ")

    @pytest.mark.asyncio
    async def test_unknown_slug(self, queue_controller, queue_config):
        with pytest.raises(NotFoundError):
            await queue_controller.get_public_info("nowhere")

    @pytest.mark.asyncio
    async def test_leave_by_code(self, queue_controller, join, queue_config):
        first = (await join(guest(1))).entry
        second = (await join(guest(2))).entry

        left = await queue_controller.leave_public("haunted-hollow", first.confirmation_code)

        assert left.status == QueueEntryStatus.LEFT.value
        assert second.position == 1

    @pytest.mark.asyncio
    async def test_info_reports_state(self, queue_controller, join, attraction, make_queue):
        make_queue(capacity_per_batch=2, batch_interval_minutes=5, max_queue_size=3)
        for n in range(3):
            await join(guest(n, party_size=2))

        info = await queue_controller.get_public_info("haunted-hollow")

        assert info.status == "full"
        assert info.people_in_queue == 3
        assert info.current_wait_minutes == 15

        await queue_controller.pause(ORG_ID, attraction.id)
        info = await queue_controller.get_public_info("haunted-hollow")
        assert info.status == "paused"
        assert info.is_open is False


@pytest.mark.unit
class TestConfigAndStats:
    @pytest.mark.asyncio
    async def test_create_uses_defaults(self, queue_controller, attraction):
        config = await queue_controller.create_config(ORG_ID, attraction.id, {"capacity_per_batch": 6})

        assert config.capacity_per_batch == 6
        assert config.batch_interval_minutes == 5
        assert config.max_queue_size == 500
        assert config.name == "Haunted Hollow Manor Queue"

    @pytest.mark.asyncio
    async def test_second_config_conflicts(self, queue_controller, attraction, queue_config):
        with pytest.raises(ConflictError):
            await queue_controller.create_config(ORG_ID, attraction.id, {})

    @pytest.mark.asyncio
    async def test_pause_and_resume_are_idempotent(self, queue_controller, attraction, queue_config):
        await queue_controller.pause(ORG_ID, attraction.id)
        config = await queue_controller.pause(ORG_ID, attraction.id)
        assert config.is_paused is True

        config = await queue_controller.resume(ORG_ID, attraction.id)
        assert config.is_paused is False

    @pytest.mark.asyncio
    async def test_stats_and_summary(self, queue_controller, join, attraction, queue_config, clock):
        entries = [(await join(guest(n))).entry for n in range(4)]
        clock.advance(minutes=20)
        await queue_controller.call(ORG_ID, attraction.id, entries[0].id)
        await queue_controller.check_in(ORG_ID, attraction.id, entries[0].id)
        await queue_controller.remove(ORG_ID, attraction.id, entries[1].id)

        stats = await queue_controller.get_stats(ORG_ID, attraction.id)
        listed, summary = await queue_controller.list_entries(
            ORG_ID, attraction.id, status=QueueEntryStatus.WAITING
        )

        assert stats.total_joined == 4
        assert stats.total_served == 1
        assert stats.total_left == 1
        assert stats.avg_wait_minutes == 20
        assert stats.current_waiting == 2
        assert stats.peak_hour == clock().replace(hour=22, minute=0)
        assert [e.position for e in listed] == [1, 2]
        assert summary.total_waiting == 2
        assert summary.total_served_today == 1
        assert summary.avg_wait_minutes == 20


@pytest.mark.unit
class TestLoggingGateway:
    @pytest.fixture
    def log_lines(self):
        lines = []
        sink = logger.add(lambda message: lines.append(message.record["message"]), level="INFO")
        yield lines
        logger.remove(sink)

    @pytest.mark.asyncio
    async def test_logs_message_and_keeps_nothing(self, log_lines):
        gateway = LoggingNotificationGateway()
        entry = QueueEntry(id=uuid.uuid4(), confirmation_code="ABC123", guest_phone="+15550001")

        for _ in range(3):
            assert await gateway.enqueue(entry, NotificationKind.READY, "Main Line") is True

        assert vars(gateway) == {}
        assert sum("it's your turn" in line for line in log_lines) == 3

    @pytest.mark.asyncio
    async def test_no_contact(self, log_lines):
        entry = QueueEntry(id=uuid.uuid4(), confirmation_code="ABC123", guest_name="Thing")

        sent = await LoggingNotificationGateway().enqueue(entry, NotificationKind.ALMOST_READY, "Main Line")

        assert sent is False
        assert any("No contact for queue entry ABC123" in line for line in log_lines)
