"""
Tests for the reservation lifecycle orchestrator.
"""

import asyncio
from datetime import timedelta

import pytest

from motel.config.database import Collections
from motel.models.reservation import ReservationCreate, ReservationUpdate
from motel.services.customer_service import new_customer_defaults
from motel.services.reservation_service import assert_transition
from motel.utils.exceptions import NotFoundError, ReservationConflictError, ValidationError

from tests.conftest import hours_from_now


def booking(room=None, check_in=None, check_out=None, **fields):
    data = {
        "checkIn": check_in,
        "checkOut": check_out,
        "periodType": fields.pop("period_type", "4h"),
        "customerName": fields.pop("customer_name", "Carla"),
    }
    if room is not None:
        data["roomId"] = str(room["_id"])
    data.update(fields)
    return ReservationCreate(**data)


async def room_status(fake_db, room):
    return (await fake_db.get_by_id(Collections.ROOMS, str(room["_id"])))["status"]


class TestCreateReservation:

    async def test_creates_confirmed_reservation_with_room_price(self, pms, fake_db, make_room, admin_user, anchor):
        room = await make_room("101", prices={"4h": 65.0})
        created, changed = await pms.reservation_service.create(
            booking(room, anchor, anchor + timedelta(hours=4)), admin_user)
        assert changed is False
        assert created["status"] == "confirmed"
        assert created["room_number"] == "101"
        assert created["total_price"] == 65.0
        assert created["period_name"] == "4 Horas"
        assert created["reservation_number"].startswith("RES")
        assert created["shift"]["shift_id"].startswith("shift_")
        assert len(fake_db.all(Collections.RESERVATIONS)) == 1

    async def test_explicit_total_price_wins(self, pms, make_room, admin_user, anchor):
        room = await make_room("101")
        created, _ = await pms.reservation_service.create(
            booking(room, anchor, anchor + timedelta(hours=4), totalPrice=42.5), admin_user)
        assert created["total_price"] == 42.5

    async def test_period_base_price_when_room_has_no_entry(self, pms, make_room, admin_user, anchor):
        room = await make_room("101", prices={})
        created, _ = await pms.reservation_service.create(
            booking(room, anchor, anchor + timedelta(hours=12), period_type="pernoite"), admin_user)
        assert created["total_price"] == 100.0
        assert created["period_name"] == "Pernoite"

    async def test_unknown_period_rejected(self, pms, make_room, admin_user, anchor):
        room = await make_room("101")
        with pytest.raises(ValidationError):
            await pms.reservation_service.create(
                booking(room, anchor, anchor + timedelta(hours=4), period_type="3h"), admin_user)

    async def test_checkout_must_follow_checkin(self, pms, fake_db, make_room, admin_user, anchor):
        room = await make_room("101")
        with pytest.raises(ValidationError):
            await pms.reservation_service.create(booking(room, anchor, anchor), admin_user)
        assert fake_db.all(Collections.RESERVATIONS) == []

    async def test_unknown_room_is_not_found(self, pms, admin_user, anchor):
        with pytest.raises(NotFoundError):
            await pms.reservation_service.create(
                booking({"_id": "64b000000000000000000000"}, anchor, anchor + timedelta(hours=4)), admin_user)

    async def test_auto_picks_first_bookable_room(self, pms, make_room, admin_user, anchor):
        await make_room("103")
        await make_room("101", status="maintenance")
        await make_room("102", status="cleaning")
        created, changed = await pms.reservation_service.create(
            booking(None, anchor, anchor + timedelta(hours=4)), admin_user)
        assert created["room_number"] == "102"
        assert changed is False

    async def test_no_bookable_room_at_all(self, pms, make_room, admin_user, anchor):
        await make_room("101", status="maintenance")
        with pytest.raises(ReservationConflictError) as error:
            await pms.reservation_service.create(booking(None, anchor, anchor + timedelta(hours=4)), admin_user)
        assert error.value.payload["suggestedRooms"] == []

    async def test_substitutes_same_category_room(self, pms, make_room, make_reservation, admin_user, anchor):
        """Taken room: the first free room of the same category is used."""
        taken = await make_room("101", category="suite")
        await make_room("102", category="standard")
        await make_room("103", category="suite")
        await make_reservation(taken, anchor, anchor + timedelta(hours=6))

        created, changed = await pms.reservation_service.create(
            booking(taken, anchor + timedelta(hours=1), anchor + timedelta(hours=5)), admin_user)
        assert changed is True
        assert created["room_number"] == "103"
        assert created["original_room_number"] == "101"
        assert created["room_changed"] is True

    async def test_substitutes_any_room_when_no_category_match(self, pms, make_room, make_reservation,
                                                              admin_user, anchor):
        taken = await make_room("101", category="suite")
        await make_room("102", category="standard")
        await make_reservation(taken, anchor, anchor + timedelta(hours=6))
        created, changed = await pms.reservation_service.create(
            booking(taken, anchor, anchor + timedelta(hours=4)), admin_user)
        assert changed is True
        assert created["room_number"] == "102"

    async def test_rejects_without_writing_when_no_alternative(self, pms, fake_db, make_room, make_reservation,
                                                               admin_user, anchor):
        """No alternative: 409 payload and the reservation count is unchanged."""
        only = await make_room("101")
        await make_room("102", status="maintenance")
        await make_reservation(only, anchor, anchor + timedelta(hours=4), customer_name="Bruno")
        before = len(fake_db.all(Collections.RESERVATIONS))

        with pytest.raises(ReservationConflictError) as error:
            await pms.reservation_service.create(
                booking(only, anchor + timedelta(hours=2), anchor + timedelta(hours=6)), admin_user)

        assert len(fake_db.all(Collections.RESERVATIONS)) == before
        payload = error.value.payload
        assert payload["suggestedRooms"] == []
        assert len(payload["conflicts"]) == 1
        assert payload["conflicts"][0]["customerName"] == "Bruno"

    async def test_room_deleted_while_waiting_for_lock(self, pms, fake_db, make_room, admin_user, anchor):
        """A create queued behind a room deletion must not book the deleted room."""
        room = await make_room("101")
        room_id = str(room["_id"])
        async with pms.locks.hold(room_id):
            pending = asyncio.create_task(
                pms.reservation_service.create(booking(room, anchor, anchor + timedelta(hours=4)), admin_user))
            for _ in range(20):
                await asyncio.sleep(0)
            assert not pending.done()
            await fake_db.delete(Collections.ROOMS, room_id)

        with pytest.raises(NotFoundError):
            await pending
        assert fake_db.all(Collections.RESERVATIONS) == []

    async def test_concurrent_requests_cannot_double_book(self, pms, fake_db, make_room, admin_user, anchor):
        """Two overlapping requests for the only room: exactly one wins."""
        room = await make_room("101")
        request = booking(room, anchor, anchor + timedelta(hours=4))
        results = await asyncio.gather(
            pms.reservation_service.create(request, admin_user),
            pms.reservation_service.create(request, admin_user),
            return_exceptions=True,
        )
        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, ReservationConflictError)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert len(fake_db.all(Collections.RESERVATIONS)) == 1
        assert len(pms.locks) == 0

    async def test_check_in_now_occupies_room(self, pms, fake_db, make_room, admin_user):
        room = await make_room("101")
        await pms.reservation_service.create(booking(room, hours_from_now(0), hours_from_now(4)), admin_user)
        assert await room_status(fake_db, room) == "occupied"

    async def test_check_in_ten_days_out_leaves_room(self, pms, fake_db, make_room, admin_user):
        room = await make_room("101")
        await pms.reservation_service.create(
            booking(room, hours_from_now(240), hours_from_now(244)), admin_user)
        assert await room_status(fake_db, room) == "available"

    async def test_substituted_room_is_the_one_reconciled(self, pms, fake_db, make_room, make_reservation,
                                                          admin_user):
        taken = await make_room("101")
        other = await make_room("102")
        await make_reservation(taken, hours_from_now(-1), hours_from_now(5))
        await pms.reservation_service.create(booking(taken, hours_from_now(0), hours_from_now(4)), admin_user)
        assert await room_status(fake_db, other) == "occupied"
        assert await room_status(fake_db, taken) == "available"

    async def test_fills_contact_fields_from_customer(self, pms, fake_db, make_room, admin_user, anchor):
        customer = await fake_db.create(Collections.CUSTOMERS, {
            "name": "Diana Prado", "phone": "11999990000", "email": "diana@example.com", **new_customer_defaults()})
        room = await make_room("101")
        request = ReservationCreate(checkIn=anchor, checkOut=anchor + timedelta(hours=4), periodType="4h",
                                    roomId=str(room["_id"]), customerId=str(customer["_id"]))
        created, _ = await pms.reservation_service.create(request, admin_user)
        assert created["customer_name"] == "Diana Prado"
        assert created["customer_phone"] == "11999990000"

    async def test_walk_in_without_name(self, pms, make_room, admin_user, anchor):
        room = await make_room("101")
        request = ReservationCreate(checkIn=anchor, checkOut=anchor + timedelta(hours=4), periodType="4h",
                                    roomId=str(room["_id"]))
        created, _ = await pms.reservation_service.create(request, admin_user)
        assert created["customer_name"] == "Walk-in guest"


class TestStatusChanges:

    @pytest.mark.parametrize("current, target", [
        ("cancelled", "checked-in"),
        ("checked-out", "confirmed"),
        ("confirmed", "checked-out"),
        ("pending", "checked-in"),
        ("checked-in", "confirmed"),
    ])
    def test_invalid_transitions(self, current, target):
        with pytest.raises(ValidationError):
            assert_transition(current, target)

    async def test_check_out_sets_room_cleaning(self, pms, fake_db, make_room, make_reservation, admin_user):
        room = await make_room("101", status="occupied")
        reservation = await make_reservation(room, hours_from_now(-2), hours_from_now(2), status="checked-in")
        updated = await pms.reservation_service.change_status(str(reservation["_id"]), "checked-out", admin_user)
        assert updated["status"] == "checked-out"
        assert updated["checked_out_at"] is not None
        assert await room_status(fake_db, room) == "cleaning"

    @pytest.mark.parametrize("status", ["pending", "confirmed", "checked-in"])
    async def test_cancel_frees_room(self, pms, fake_db, make_room, make_reservation, admin_user, status):
        room = await make_room("101", status="occupied")
        reservation = await make_reservation(room, hours_from_now(1), hours_from_now(5), status=status)
        await pms.reservation_service.change_status(str(reservation["_id"]), "cancelled", admin_user)
        assert await room_status(fake_db, room) == "available"

    async def test_check_in_occupies_room(self, pms, fake_db, make_room, make_reservation, admin_user, anchor):
        room = await make_room("101")
        reservation = await make_reservation(room, anchor, anchor + timedelta(hours=4))
        await pms.reservation_service.change_status(str(reservation["_id"]), "checked-in", admin_user)
        assert await room_status(fake_db, room) == "occupied"

    async def test_invalid_transition_leaves_status(self, pms, fake_db, make_room, make_reservation, admin_user,
                                                    anchor):
        room = await make_room("101")
        reservation = await make_reservation(room, anchor, anchor + timedelta(hours=4), status="cancelled")
        with pytest.raises(ValidationError):
            await pms.reservation_service.change_status(str(reservation["_id"]), "checked-in", admin_user)
        stored = await fake_db.get_by_id(Collections.RESERVATIONS, str(reservation["_id"]))
        assert stored["status"] == "cancelled"
        assert await room_status(fake_db, room) == "available"

    async def test_confirm_pending_rechecks_conflicts(self, pms, make_room, make_reservation, admin_user, anchor):
        room = await make_room("101")
        await make_reservation(room, anchor, anchor + timedelta(hours=4))
        pending = await make_reservation(room, anchor + timedelta(hours=2), anchor + timedelta(hours=6),
                                         status="pending")
        with pytest.raises(ReservationConflictError):
            await pms.reservation_service.change_status(str(pending["_id"]), "confirmed", admin_user)

    async def test_confirm_pending_without_conflict(self, pms, make_room, make_reservation, admin_user, anchor):
        room = await make_room("101")
        pending = await make_reservation(room, anchor, anchor + timedelta(hours=4), status="pending")
        updated = await pms.reservation_service.change_status(str(pending["_id"]), "confirmed", admin_user)
        assert updated["status"] == "confirmed"

    async def test_stale_status_write_is_rejected(self, pms, fake_db, make_room, make_reservation, admin_user,
                                                  anchor):
        """Conditional write fails when another request moved the reservation first."""
        room = await make_room("101")
        reservation = await make_reservation(room, anchor, anchor + timedelta(hours=4))
        with pytest.raises(ValidationError):
            await pms.reservation_service._write_status(str(reservation["_id"]), "pending", "confirmed", {})

    async def test_check_out_records_customer_visit(self, pms, fake_db, make_room, make_reservation, admin_user):
        customer = await fake_db.create(Collections.CUSTOMERS, {"name": "Eva", "phone": "11988887777",
                                                                **new_customer_defaults()})
        room = await make_room("101", status="occupied")
        reservation = await make_reservation(room, hours_from_now(-4), hours_from_now(0), status="checked-in",
                                             customer_id=str(customer["_id"]), total_price=250.0)
        await pms.reservation_service.change_status(str(reservation["_id"]), "checked-out", admin_user)
        stored = await fake_db.get_by_id(Collections.CUSTOMERS, str(customer["_id"]))
        assert stored["stats"]["total_visits"] == 1
        assert stored["stats"]["total_spent"] == 250.0
        assert stored["stats"]["last_room"] == "101"
        assert stored["loyalty"]["points"] == 25


class TestEditReservation:

    async def test_date_change_into_conflict_rejected(self, pms, fake_db, make_room, make_reservation, anchor):
        room = await make_room("101")
        await make_reservation(room, anchor + timedelta(hours=6), anchor + timedelta(hours=10))
        mine = await make_reservation(room, anchor, anchor + timedelta(hours=4))
        with pytest.raises(ReservationConflictError):
            await pms.reservation_service.update(
                str(mine["_id"]), ReservationUpdate(checkOut=anchor + timedelta(hours=7)))
        stored = await fake_db.get_by_id(Collections.RESERVATIONS, str(mine["_id"]))
        assert stored["check_out"] == anchor + timedelta(hours=4)

    async def test_extending_own_stay_is_allowed(self, pms, make_room, make_reservation, anchor):
        room = await make_room("101")
        mine = await make_reservation(room, anchor, anchor + timedelta(hours=4))
        updated = await pms.reservation_service.update(
            str(mine["_id"]), ReservationUpdate(checkOut=anchor + timedelta(hours=6), notes="  late checkout "))
        assert updated["check_out"] == anchor + timedelta(hours=6)
        assert updated["notes"] == "late checkout"

    async def test_terminal_reservation_cannot_be_edited(self, pms, make_room, make_reservation, anchor):
        room = await make_room("101")
        done = await make_reservation(room, anchor, anchor + timedelta(hours=4), status="checked-out")
        with pytest.raises(ValidationError):
            await pms.reservation_service.update(str(done["_id"]), ReservationUpdate(notes="x"))

    async def test_empty_update_rejected(self, pms, make_room, make_reservation, anchor):
        room = await make_room("101")
        mine = await make_reservation(room, anchor, anchor + timedelta(hours=4))
        with pytest.raises(ValidationError):
            await pms.reservation_service.update(str(mine["_id"]), ReservationUpdate())
