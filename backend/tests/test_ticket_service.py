import asyncio
import uuid
from datetime import datetime, time, timedelta
from decimal import Decimal

import pytest

from admission.exceptions import BadRequestError, NotFoundError, StoreError
from admission.models import Attraction, CheckInMethod, OrderStatus, TicketStatus, TicketType
from admission.services.ticket_service import ArrivalStatus, ScanRequest, WalkUpRequest
from admission.store.base import LookupField
from admission.utils.timezone import to_utc
from tests.conftest import ORG_ID, OTHER_ORG_ID, START

DAY = START.date()


@pytest.fixture
def early_slot(make_slot):
    return make_slot(DAY, time(18, 0), time(18, 30), capacity=100, booked=4)


@pytest.fixture
def current_slot(make_slot):
    # START is 22:00 UTC
    return make_slot(DAY, time(21, 30), time(22, 30), capacity=50, booked=2)


@pytest.mark.unit
class TestValidate:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "start, end, local, error",
        [
            (time(18, 0), time(18, 30), datetime(2026, 10, 30, 17, 59), "NOT_YET_VALID"),
            (time(18, 0), time(18, 30), datetime(2026, 10, 30, 18, 0), None),
            (time(18, 0), time(18, 30), datetime(2026, 10, 30, 20, 29), None),
            (time(18, 0), time(18, 30), datetime(2026, 10, 30, 20, 30), None),
            (time(18, 0), time(18, 30), datetime(2026, 10, 30, 20, 31), "EXPIRED"),
            # Runs past midnight into the 31st
            (time(23, 0), time(0, 30), datetime(2026, 10, 30, 22, 59), "NOT_YET_VALID"),
            (time(23, 0), time(0, 30), datetime(2026, 10, 30, 23, 30), None),
            (time(23, 0), time(0, 30), datetime(2026, 10, 31, 0, 15), None),
            (time(23, 0), time(0, 30), datetime(2026, 10, 31, 2, 30), None),
            (time(23, 0), time(0, 30), datetime(2026, 10, 31, 2, 31), "EXPIRED"),
        ],
    )
    async def test_slot_window_with_grace(
        self, ticket_controller, attraction, make_ticket, make_slot, clock, start, end, local, error
    ):
        ticket = make_ticket(slot=make_slot(DAY, start, end))
        clock.now = to_utc(local, attraction.timezone)

        result = await ticket_controller.validate(ORG_ID, attraction.id, ticket.barcode)

        assert result.valid is (error is None)
        assert result.error == error

    @pytest.mark.asyncio
    async def test_slot_compared_in_venue_time(
        self, ticket_controller, attraction, make_ticket, early_slot, clock
    ):
        attraction.timezone = "America/New_York"
        ticket = make_ticket(slot=early_slot)

        clock.now = to_utc(datetime(2026, 10, 30, 18, 15), "America/New_York")
        assert (await ticket_controller.validate(ORG_ID, attraction.id, ticket.barcode)).valid

        # 18:15 UTC is still early afternoon in New York
        clock.now = datetime(2026, 10, 30, 18, 15)
        result = await ticket_controller.validate(ORG_ID, attraction.id, ticket.barcode)
        assert result.error == "NOT_YET_VALID"
        assert result.message == "Ticket is valid from 6:00 PM"

    @pytest.mark.asyncio
    async def test_ticket_without_slot_is_always_in_window(self, ticket_controller, attraction, make_ticket):
        ticket = make_ticket()

        result = await ticket_controller.validate(ORG_ID, attraction.id, ticket.barcode)

        assert result.valid
        assert result.ticket is ticket

    @pytest.mark.asyncio
    async def test_unknown_barcode(self, ticket_controller, attraction):
        result = await ticket_controller.validate(ORG_ID, attraction.id, "NOPE")

        assert result.valid is False
        assert result.error == "TICKET_NOT_FOUND"
        assert result.ticket is None

    @pytest.mark.asyncio
    async def test_barcode_from_other_org_is_not_found(self, ticket_controller, attraction, make_ticket):
        ticket = make_ticket()
        ticket.org_id = OTHER_ORG_ID

        result = await ticket_controller.validate(ORG_ID, attraction.id, ticket.barcode)

        assert result.error == "TICKET_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_wrong_attraction(self, ticket_controller, attraction, make_ticket, store):
        other = TicketType(
            id=uuid.uuid4(),
            org_id=ORG_ID,
            attraction_id=uuid.uuid4(),
            name="Corn Maze",
            price=Decimal("15.00"),
            is_active=True,
        )
        store.put(other)
        ticket = make_ticket()
        ticket.ticket_type_id = other.id

        result = await ticket_controller.validate(ORG_ID, attraction.id, ticket.barcode)

        assert result.error == "WRONG_ATTRACTION"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, error",
        [
            (TicketStatus.USED, "TICKET_ALREADY_USED"),
            (TicketStatus.VOIDED, "TICKET_VOIDED"),
            (TicketStatus.EXPIRED, "TICKET_EXPIRED"),
            (TicketStatus.TRANSFERRED, "TICKET_TRANSFERRED"),
        ],
    )
    async def test_status_refusals(self, ticket_controller, attraction, make_ticket, status, error):
        ticket = make_ticket(status=status)

        result = await ticket_controller.validate(ORG_ID, attraction.id, ticket.barcode)

        assert result.valid is False
        assert result.error == error

    @pytest.mark.asyncio
    async def test_validate_does_not_admit(self, ticket_controller, attraction, make_ticket, store):
        ticket = make_ticket()

        await ticket_controller.validate(ORG_ID, attraction.id, ticket.barcode)

        assert ticket.status == TicketStatus.VALID.value
        assert store.check_ins == {}

    @pytest.mark.asyncio
    async def test_unknown_attraction(self, ticket_controller, make_ticket):
        ticket = make_ticket()

        with pytest.raises(NotFoundError):
            await ticket_controller.validate(ORG_ID, uuid.uuid4(), ticket.barcode)


@pytest.mark.unit
class TestScan:
    @pytest.mark.asyncio
    async def test_admits_and_records_check_in(
        self, ticket_controller, attraction, make_ticket, make_order, current_slot, store, clock
    ):
        order = make_order(quantity=2, slot=current_slot, status=OrderStatus.COMPLETED)
        ticket = make_ticket(slot=current_slot, order=order)
        make_ticket(slot=current_slot, order=order)
        staff = uuid.uuid4()

        result = await ticket_controller.scan(
            ORG_ID, attraction.id, ScanRequest(barcode=f" {ticket.barcode} ", station_id="north-gate"), staff
        )

        assert result.valid
        assert result.ticket_count == 2
        assert result.checked_in_count == 1
        assert ticket.status == TicketStatus.USED.value
        assert ticket.checked_in_at == clock()
        assert ticket.checked_in_by == staff

        check_in = store.check_ins[result.check_in_id]
        assert check_in.ticket_id == ticket.id
        assert check_in.time_slot_id == current_slot.id
        assert check_in.station_id == "north-gate"
        assert check_in.check_in_method == CheckInMethod.BARCODE_SCAN.value

    @pytest.mark.asyncio
    async def test_second_scan_reports_first_check_in(self, ticket_controller, attraction, make_ticket, clock):
        ticket = make_ticket()
        first = await ticket_controller.scan(ORG_ID, attraction.id, ScanRequest(barcode=ticket.barcode))
        clock.advance(minutes=3)

        second = await ticket_controller.scan(ORG_ID, attraction.id, ScanRequest(barcode=ticket.barcode))

        assert second.valid is False
        assert second.error == "TICKET_ALREADY_USED"
        assert second.checked_in_at == first.checked_in_at

    @pytest.mark.asyncio
    async def test_concurrent_scans_admit_once(self, ticket_controller, attraction, make_ticket, store):
        ticket = make_ticket()
        request = ScanRequest(barcode=ticket.barcode)

        results = await asyncio.gather(
            ticket_controller.scan(ORG_ID, attraction.id, request),
            ticket_controller.scan(ORG_ID, attraction.id, request),
        )

        assert sorted(r.valid for r in results) == [False, True]
        loser = next(r for r in results if not r.valid)
        assert loser.error == "TICKET_ALREADY_USED"
        assert len(store.check_ins) == 1

    @pytest.mark.asyncio
    async def test_refused_scan_writes_nothing(self, ticket_controller, attraction, make_ticket, early_slot, store):
        ticket = make_ticket(slot=early_slot)  # slot ended hours ago

        result = await ticket_controller.scan(ORG_ID, attraction.id, ScanRequest(barcode=ticket.barcode))

        assert result.error == "EXPIRED"
        assert ticket.status == TicketStatus.VALID.value
        assert store.check_ins == {}

    @pytest.mark.asyncio
    async def test_failed_check_in_write_rolls_back(self, ticket_controller, attraction, make_ticket, store):
        ticket = make_ticket()
        store.fail_on["add_check_in"] = StoreError("connection lost")

        with pytest.raises(StoreError):
            await ticket_controller.scan(ORG_ID, attraction.id, ScanRequest(barcode=ticket.barcode))

        assert ticket.status == TicketStatus.VALID.value
        assert ticket.checked_in_at is None


@pytest.mark.unit
class TestStatusChanges:
    @pytest.mark.asyncio
    async def test_mark_used_stamps_check_in(self, ticket_controller, attraction, make_ticket, clock):
        ticket = make_ticket()
        staff = uuid.uuid4()

        updated = await ticket_controller.update_ticket_status(
            ORG_ID, attraction.id, ticket.id, TicketStatus.USED, staff
        )

        assert updated.status == TicketStatus.USED.value
        assert updated.checked_in_at == clock()
        assert updated.checked_in_by == staff

    @pytest.mark.asyncio
    async def test_void_used_ticket(self, ticket_controller, attraction, make_ticket):
        ticket = make_ticket(status=TicketStatus.USED)

        updated = await ticket_controller.update_ticket_status(ORG_ID, attraction.id, ticket.id, TicketStatus.VOIDED)

        assert updated.status == TicketStatus.VOIDED.value

    @pytest.mark.asyncio
    async def test_voided_is_final(self, ticket_controller, attraction, make_ticket):
        ticket = make_ticket(status=TicketStatus.VOIDED)

        with pytest.raises(BadRequestError) as exc:
            await ticket_controller.update_ticket_status(ORG_ID, attraction.id, ticket.id, TicketStatus.VALID)

        assert exc.value.code == "INVALID_STATUS_TRANSITION"
        assert exc.value.extra == {"current_status": "voided", "requested_status": "valid"}

    @pytest.mark.asyncio
    async def test_ticket_of_other_org(self, ticket_controller, attraction, make_ticket):
        ticket = make_ticket()

        with pytest.raises(NotFoundError):
            await ticket_controller.update_ticket_status(OTHER_ORG_ID, attraction.id, ticket.id, TicketStatus.USED)

    @pytest.mark.asyncio
    async def test_ticket_of_other_attraction(self, ticket_controller, attraction, make_ticket, ticket_type):
        ticket = make_ticket()
        ticket_type.attraction_id = uuid.uuid4()

        with pytest.raises(NotFoundError):
            await ticket_controller.update_ticket_status(ORG_ID, attraction.id, ticket.id, TicketStatus.VOIDED)

        assert ticket.status == TicketStatus.VALID.value

    @pytest.mark.asyncio
    async def test_unknown_attraction(self, ticket_controller, make_ticket):
        ticket = make_ticket()

        with pytest.raises(NotFoundError):
            await ticket_controller.update_ticket_status(ORG_ID, uuid.uuid4(), ticket.id, TicketStatus.VOIDED)


@pytest.mark.unit
class TestWalkUp:
    @pytest.mark.asyncio
    async def test_sells_and_admits(self, ticket_controller, attraction, ticket_type, store, clock):
        request = WalkUpRequest(
            ticket_type_id=ticket_type.id,
            quantity=3,
            guest_names=["Gomez"],
            payment_method="cash",
            station_id="box-office",
        )

        result = await ticket_controller.walk_up(ORG_ID, attraction.id, request)

        order = result.order
        assert order.status == OrderStatus.COMPLETED.value
        assert order.total == Decimal("75.00")
        assert order.order_number.startswith("HHM-")
        assert order.customer_name == "Gomez"
        assert order.extra == {"payment_method": "cash", "source": "walk_up"}
        assert [t.guest_name for t in result.tickets] == ["Gomez", "Walk-up Guest 2", "Walk-up Guest 3"]
        assert all(t.status == TicketStatus.USED.value for t in result.tickets)
        assert all(t.checked_in_at == clock() for t in result.tickets)
        assert len(store.check_ins) == 3
        assert {c.check_in_method for c in store.check_ins.values()} == {"walk_up"}

    @pytest.mark.asyncio
    async def test_failure_leaves_nothing_behind(self, ticket_controller, attraction, ticket_type, store):
        store.fail_on["add_check_in"] = RuntimeError("disk full")

        with pytest.raises(RuntimeError):
            await ticket_controller.walk_up(
                ORG_ID, attraction.id, WalkUpRequest(ticket_type_id=ticket_type.id, quantity=2)
            )

        assert store.orders == {}
        assert store.order_items == {}
        assert store.tickets == {}
        assert store.check_ins == {}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, 51])
    async def test_quantity_bounds(self, ticket_controller, attraction, ticket_type, quantity):
        with pytest.raises(BadRequestError) as exc:
            await ticket_controller.walk_up(
                ORG_ID, attraction.id, WalkUpRequest(ticket_type_id=ticket_type.id, quantity=quantity)
            )
        assert exc.value.code == "INVALID_QUANTITY"

    @pytest.mark.asyncio
    async def test_inactive_ticket_type(self, ticket_controller, attraction, ticket_type):
        ticket_type.is_active = False

        with pytest.raises(NotFoundError):
            await ticket_controller.walk_up(
                ORG_ID, attraction.id, WalkUpRequest(ticket_type_id=ticket_type.id, quantity=1)
            )

    @pytest.mark.asyncio
    async def test_ticket_type_of_other_attraction(self, ticket_controller, attraction, ticket_type):
        ticket_type.attraction_id = uuid.uuid4()

        with pytest.raises(BadRequestError) as exc:
            await ticket_controller.walk_up(
                ORG_ID, attraction.id, WalkUpRequest(ticket_type_id=ticket_type.id, quantity=1)
            )
        assert exc.value.code == "WRONG_ATTRACTION"


@pytest.mark.unit
class TestLookup:
    @pytest.fixture
    def corn_maze(self, store):
        corn_maze = TicketType(
            id=uuid.uuid4(),
            org_id=ORG_ID,
            attraction_id=uuid.uuid4(),
            name="Corn Maze",
            price=Decimal("15.00"),
            is_active=True,
        )
        store.put(corn_maze)
        return corn_maze

    @pytest.mark.asyncio
    async def test_by_customer_name_groups_by_order(
        self, ticket_controller, attraction, make_order, make_ticket, corn_maze
    ):
        order = make_order(quantity=2, status=OrderStatus.COMPLETED)
        tickets = [make_ticket(order=order), make_ticket(order=order)]
        make_ticket(order=order).ticket_type_id = corn_maze.id

        matches = await ticket_controller.lookup(ORG_ID, attraction.id, "  morticia ")

        assert len(matches) == 1
        assert matches[0].order is order
        assert sorted(c.ticket.id for c in matches[0].tickets) == sorted(t.id for t in tickets)
        assert {c.ticket_type.name for c in matches[0].tickets} == {"General Admission"}

    @pytest.mark.asyncio
    async def test_by_guest_name(self, ticket_controller, attraction, make_ticket):
        ticket = make_ticket()
        ticket.guest_name = "Uncle Fester"

        matches = await ticket_controller.lookup(ORG_ID, attraction.id, "fester")

        assert [c.ticket for m in matches for c in m.tickets] == [ticket]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "by, query",
        [
            (LookupField.EMAIL, "MORTICIA@EXAMPLE"),
            (LookupField.ORDER_NUMBER, "HHM-"),
            (LookupField.TICKET_NUMBER, "HHM-T-"),
        ],
    )
    async def test_other_fields(self, ticket_controller, attraction, make_ticket, by, query):
        ticket = make_ticket()

        matches = await ticket_controller.lookup(ORG_ID, attraction.id, query, by)

        assert [c.ticket for m in matches for c in m.tickets] == [ticket]

    @pytest.mark.asyncio
    async def test_phone_does_not_match_name(self, ticket_controller, attraction, make_ticket):
        make_ticket()

        assert await ticket_controller.lookup(ORG_ID, attraction.id, "morticia", LookupField.PHONE) == []

    @pytest.mark.asyncio
    async def test_orders_for_other_attractions_are_skipped(
        self, ticket_controller, attraction, make_ticket, corn_maze
    ):
        make_ticket().ticket_type_id = corn_maze.id

        assert await ticket_controller.lookup(ORG_ID, attraction.id, "morticia") == []

    @pytest.mark.asyncio
    async def test_at_most_ten_orders(self, ticket_controller, attraction, make_ticket, clock):
        for _ in range(12):
            make_ticket()
            clock.advance(minutes=1)

        matches = await ticket_controller.lookup(ORG_ID, attraction.id, "addams")

        assert len(matches) == 10
        stamps = [m.order.created_at for m in matches]
        assert stamps == sorted(stamps, reverse=True)

    @pytest.mark.asyncio
    async def test_query_too_short(self, ticket_controller, attraction):
        with pytest.raises(BadRequestError) as exc:
            await ticket_controller.lookup(ORG_ID, attraction.id, " a ")

        assert exc.value.code == "INVALID_LOOKUP_QUERY"


@pytest.mark.unit
class TestCheckInHistory:
    @pytest.fixture
    def scan_round(self, ticket_controller, attraction, make_ticket, clock):
        """Scan one fresh ticket per station, ten minutes apart."""
        async def _scan(stations=("north-gate", "south-gate", "north-gate")):
            tickets = []
            for station in stations:
                ticket = make_ticket()
                await ticket_controller.scan(
                    ORG_ID, attraction.id, ScanRequest(barcode=ticket.barcode, station_id=station)
                )
                tickets.append(ticket)
                clock.advance(minutes=10)
            return tickets

        return _scan

    @pytest.mark.asyncio
    async def test_newest_first_with_total(self, ticket_controller, attraction, scan_round):
        scanned = await scan_round()

        page = await ticket_controller.list_check_ins(ORG_ID, attraction.id, limit=2)

        assert page.total == 3
        assert [r.ticket for r in page.records] == [scanned[2], scanned[1]]

        rest = await ticket_controller.list_check_ins(ORG_ID, attraction.id, limit=2, offset=2)
        assert [r.ticket for r in rest.records] == [scanned[0]]
        assert rest.total == 3

    @pytest.mark.asyncio
    async def test_filters(self, ticket_controller, attraction, ticket_type, scan_round):
        scanned = await scan_round()
        await ticket_controller.walk_up(
            ORG_ID, attraction.id, WalkUpRequest(ticket_type_id=ticket_type.id, quantity=1)
        )

        north = await ticket_controller.list_check_ins(ORG_ID, attraction.id, station_id="north-gate")
        assert north.total == 2

        walk_ups = await ticket_controller.list_check_ins(ORG_ID, attraction.id, method=CheckInMethod.WALK_UP)
        assert walk_ups.total == 1
        assert walk_ups.records[0].check_in.check_in_method == "walk_up"

        window = await ticket_controller.list_check_ins(
            ORG_ID, attraction.id, start=START + timedelta(minutes=5), end=START + timedelta(minutes=20)
        )
        assert [r.ticket for r in window.records] == [scanned[1]]

    @pytest.mark.asyncio
    async def test_other_attraction_sees_nothing(self, ticket_controller, store, scan_round):
        await scan_round()
        other = Attraction(
            id=uuid.uuid4(),
            org_id=ORG_ID,
            name="Corn Maze",
            slug="corn-maze",
            timezone="UTC",
            is_active=True,
        )
        store.put(other)

        page = await ticket_controller.list_check_ins(ORG_ID, other.id)

        assert page.total == 0
        assert page.records == []


@pytest.mark.unit
class TestArrivals:
    @pytest.mark.asyncio
    async def test_pending_and_late_in_slot_order(
        self, ticket_controller, attraction, make_ticket, make_slot, early_slot, current_slot
    ):
        later_slot = make_slot(DAY, time(23, 0), time(23, 30))
        tomorrow = make_slot(DAY + timedelta(days=1), time(18, 0), time(18, 30))
        late = make_ticket(slot=early_slot)
        now = make_ticket(slot=current_slot)
        soon = make_ticket(slot=later_slot)
        make_ticket(slot=current_slot, status=TicketStatus.USED)
        make_ticket(slot=tomorrow)
        make_ticket()

        board = await ticket_controller.get_arrivals(ORG_ID, attraction.id)

        assert [(a.context.ticket, a.minutes_until) for a in board.pending] == [(now, 0), (soon, 60)]
        assert [(a.context.ticket, a.minutes_late) for a in board.late] == [(late, 210)]
        assert {a.status for a in board.pending} == {ArrivalStatus.PENDING}
        assert board.late[0].status == ArrivalStatus.LATE

    @pytest.mark.asyncio
    async def test_filters(self, ticket_controller, attraction, make_ticket, early_slot, current_slot):
        make_ticket(slot=early_slot)
        on_time = make_ticket(slot=current_slot)

        late_only = await ticket_controller.get_arrivals(ORG_ID, attraction.id, status=ArrivalStatus.LATE)
        assert late_only.pending == []
        assert len(late_only.late) == 1

        one_slot = await ticket_controller.get_arrivals(ORG_ID, attraction.id, time_slot_id=current_slot.id)
        assert [a.context.ticket for a in one_slot.pending] == [on_time]
        assert one_slot.late == []

    @pytest.mark.asyncio
    async def test_scanned_ticket_leaves_the_board(
        self, ticket_controller, attraction, make_ticket, current_slot
    ):
        ticket = make_ticket(slot=current_slot)
        await ticket_controller.scan(ORG_ID, attraction.id, ScanRequest(barcode=ticket.barcode))

        board = await ticket_controller.get_arrivals(ORG_ID, attraction.id)

        assert board.pending == []
        assert board.late == []

@pytest.mark.unit
class TestStats:
    @pytest.mark.asyncio
    async def test_rate_against_expected(self, ticket_controller, attraction, make_ticket, current_slot):
        tickets = [make_ticket(slot=current_slot) for _ in range(4)]
        make_ticket(slot=current_slot, status=TicketStatus.VOIDED)
        await ticket_controller.scan(
            ORG_ID, attraction.id, ScanRequest(barcode=tickets[0].barcode, station_id="north-gate")
        )

        stats = await ticket_controller.get_stats(ORG_ID, attraction.id)

        assert stats.day == DAY
        assert stats.total_checked_in == 1
        assert stats.total_expected == 4
        assert stats.check_in_rate == 25
        assert stats.by_hour == {datetime(2026, 10, 30, 22, 0): 1}
        assert stats.peak_hour == datetime(2026, 10, 30, 22, 0)
        assert stats.peak_count == 1
        assert stats.by_station == {"north-gate": 1}
        assert stats.by_method == {"barcode_scan": 1}

    @pytest.mark.asyncio
    async def test_empty_day(self, ticket_controller, attraction):
        stats = await ticket_controller.get_stats(ORG_ID, attraction.id)

        assert stats.total_checked_in == 0
        assert stats.check_in_rate == 0
        assert stats.peak_hour is None

    @pytest.mark.asyncio
    async def test_expected_count_failure_degrades_to_zero(
        self, ticket_controller, attraction, ticket_type, store
    ):
        await ticket_controller.walk_up(
            ORG_ID, attraction.id, WalkUpRequest(ticket_type_id=ticket_type.id, quantity=2)
        )
        store.fail_on["count_expected_tickets"] = StoreError("statement timeout")

        stats = await ticket_controller.get_stats(ORG_ID, attraction.id)

        assert stats.total_checked_in == 2
        assert stats.total_expected == 0
        assert stats.check_in_rate == 0
        assert stats.by_station == {"unassigned": 2}

    @pytest.mark.asyncio
    async def test_capacity_snapshot(
        self, ticket_controller, attraction, make_ticket, early_slot, current_slot, clock
    ):
        ticket = make_ticket(slot=current_slot)
        await ticket_controller.scan(ORG_ID, attraction.id, ScanRequest(barcode=ticket.barcode))
        clock.advance(minutes=61)

        snapshot = await ticket_controller.get_capacity(ORG_ID, attraction.id)

        assert snapshot.checked_in_today == 1
        assert snapshot.checked_in_last_hour == 0
        assert [(s.slot, s.capacity, s.booked, s.checked_in) for s in snapshot.by_time_slot] == [
            ("6:00 PM", 100, 4, 0),
            ("9:30 PM", 50, 2, 1),
        ]
