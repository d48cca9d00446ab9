"""
Reservation lifecycle orchestrator.

Creation runs "conflict check -> persist -> reconcile room" while holding the
lock of the room being written. When the requested room is taken, its lock
is released and each alternative is locked and re-checked in turn, so two
room locks are never held at once.
"""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from motel.database.repositories import (
    BLOCKING_RESERVATION_STATUSES,
    RESERVATION_STATUSES,
    ReservationRepository,
    RoomRepository,
)
from motel.models.reservation import ConflictCheckRequest, ReservationCreate, ReservationUpdate
from motel.services.conflicts import AlternativeRoomFinder, ConflictDetector, rank_alternatives
from motel.services.customer_service import CustomerService
from motel.services.numbering import insert_with_number
from motel.services.period_catalog import PeriodCatalog, resolve_price
from motel.services.room_locks import RoomLockRegistry
from motel.services.room_status import RoomEvent, RoomStatusReconciler
from motel.services.shifts import detect_shift
from motel.utils.exceptions import NotFoundError, ReservationConflictError, ValidationError
from motel.utils.helpers import ensure_utc, strip_or_empty, to_utc, utc_now

logger = logging.getLogger(__name__)

DEFAULT_CUSTOMER_NAME = "Walk-in guest"

ALLOWED_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"checked-in", "cancelled"},
    "checked-in": {"checked-out", "cancelled"},
    "checked-out": set(),
    "cancelled": set(),
}

TRANSITION_EVENTS = {
    "checked-in": RoomEvent.CHECK_IN,
    "checked-out": RoomEvent.CHECK_OUT,
    "cancelled": RoomEvent.CANCEL,
}

TRANSITION_TIMESTAMPS = {
    "confirmed": "confirmed_at",
    "checked-in": "checked_in_at",
    "checked-out": "checked_out_at",
    "cancelled": "cancelled_at",
}


def assert_transition(current: str, target: str) -> None:
    if target not in RESERVATION_STATUSES:
        raise ValidationError(f"Invalid status '{target}'")
    if target not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValidationError(f"Cannot change reservation status from '{current}' to '{target}'",
                              {"currentStatus": current, "requestedStatus": target})


def validate_interval(check_in: datetime, check_out: datetime) -> Tuple[datetime, datetime]:
    """Normalize both ends to UTC and require check_out > check_in"""
    check_in, check_out = to_utc(check_in), to_utc(check_out)
    if check_out <= check_in:
        raise ValidationError("Check-out must be later than check-in")
    return check_in, check_out


class ReservationService:
    def __init__(self, rooms: RoomRepository, reservations: ReservationRepository,
                 detector: ConflictDetector, finder: AlternativeRoomFinder,
                 reconciler: RoomStatusReconciler, locks: RoomLockRegistry,
                 periods: PeriodCatalog, customers: CustomerService,
                 clock: Callable[[], datetime] = utc_now):
        self.rooms = rooms
        self.reservations = reservations
        self.detector = detector
        self.finder = finder
        self.reconciler = reconciler
        self.locks = locks
        self.periods = periods
        self.customers = customers
        self.clock = clock

    async def get(self, reservation_id: str) -> Dict:
        reservation = await self.reservations.get(reservation_id)
        if not reservation:
            raise NotFoundError("Reservation not found")
        return reservation

    async def _resolve_room(self, room_id: Optional[str]) -> Dict:
        if room_id:
            room = await self.rooms.get(room_id)
            if not room:
                raise NotFoundError("Room not found")
            return room
        room = await self.rooms.first_bookable()
        if not room:
            raise ReservationConflictError("No bookable room available", conflicts=[], suggested_rooms=[])
        return room

    async def _customer_fields(self, request) -> Dict:
        fields = {
            "customer_id": request.customer_id,
            "customer_name": strip_or_empty(request.customer_name),
            "customer_phone": strip_or_empty(request.customer_phone),
            "customer_email": strip_or_empty(request.customer_email).lower(),
            "customer_document": strip_or_empty(request.customer_document),
        }
        if request.customer_id:
            customer = await self.customers.get(request.customer_id)
            if not customer:
                raise NotFoundError("Customer not found")
            for field, source in (("customer_name", "name"), ("customer_phone", "phone"),
                                  ("customer_email", "email"), ("customer_document", "document")):
                if not fields[field]:
                    fields[field] = customer.get(source) or ""
        if not fields["customer_name"]:
            fields["customer_name"] = DEFAULT_CUSTOMER_NAME
        return fields

    async def create(self, request: ReservationCreate, user: Dict) -> Tuple[Dict, bool]:
        """Book a room; returns (reservation, room_changed)"""
        check_in, check_out = validate_interval(request.check_in, request.check_out)
        period = await self.periods.resolve(request.period_type)
        room = await self._resolve_room(request.room_id)
        customer = await self._customer_fields(request)
        room_id = str(room["_id"])

        async with self.locks.hold(room_id):
            # Room deletion runs under the same lock
            room = await self.rooms.get(room_id)
            if not room:
                raise NotFoundError("Room not found")
            report = await self.detector.check(room_id, check_in, check_out)
            if not report.has_conflict:
                created = await self._persist(room, check_in, check_out, period, request, customer, user)
                logger.info("✅ Reservation %s created for room %s",
                            created["reservation_number"], room.get("number"))
                return created, False

        conflicts = [conflict.to_dict() for conflict in report.conflicts]
        logger.info("⚠️ Room %s has %d conflict(s), looking for alternatives",
                    room.get("number"), len(conflicts))
        alternatives = rank_alternatives(
            await self.finder.find(check_in, check_out, preferred_category=room.get("category"))
        )
        for suggestion in alternatives:
            async with self.locks.hold(suggestion.room_id):
                recheck = await self.detector.check(suggestion.room_id, check_in, check_out)
                if recheck.has_conflict:
                    continue
                alternative = await self.rooms.get(suggestion.room_id)
                if not alternative:
                    continue
                changed = suggestion.room_id != room_id
                created = await self._persist(alternative, check_in, check_out, period, request, customer,
                                              user, original_room=room if changed else None)
                if not changed:
                    return created, False
                logger.info("🔄 Reservation %s: room changed from %s to %s",
                            created["reservation_number"], room.get("number"), alternative.get("number"))
                return created, True

        logger.info("❌ Reservation rejected: room %s taken and no alternative free", room.get("number"))
        raise ReservationConflictError(
            f"Room {room.get('number')} is not available for the requested period and no alternative room is free",
            conflicts=conflicts,
            suggested_rooms=[],
            original_room=room.get("number"),
        )

    async def _persist(self, room: Dict, check_in: datetime, check_out: datetime, period: Dict,
                       request: ReservationCreate, customer: Dict, user: Dict,
                       original_room: Optional[Dict] = None) -> Dict:
        total_price = resolve_price(period, room, request.total_price)
        now = self.clock()
        document = {
            "room_id": str(room["_id"]),
            "room_number": room.get("number"),
            "room_category": room.get("category"),
            **customer,
            "check_in": check_in,
            "check_out": check_out,
            "period_type": period["period_type"],
            "period_name": period.get("name", period["period_type"]),
            "base_price": total_price,
            "total_price": total_price,
            "status": "confirmed",
            "payment_method": request.payment_method,
            "payment_status": request.payment_status,
            "notes": request.notes or "",
            "shift": detect_shift(user, now),
            "created_by": str(user.get("_id") or user.get("id") or ""),
            "room_changed": original_room is not None,
            "original_room_number": original_room.get("number") if original_room else None,
            "created_at": now,
        }
        created = await insert_with_number(self.reservations.create, document, "reservation_number", "RES")
        await self.reconciler.apply(document["room_id"], RoomEvent.CREATE, check_in=check_in)
        return created

    async def change_status(self, reservation_id: str, new_status: str, user: Dict,
                            reason: Optional[str] = None) -> Dict:
        reservation = await self.get(reservation_id)
        current = reservation["status"]
        assert_transition(current, new_status)

        extra = {
            TRANSITION_TIMESTAMPS[new_status]: self.clock(),
            "status_changed_by": str(user.get("_id") or user.get("id") or ""),
        }
        if reason:
            extra["status_reason"] = reason

        if new_status == "confirmed":
            # Pending reservations did not block; re-check before they start to
            async with self.locks.hold(reservation["room_id"]):
                report = await self.detector.check(
                    reservation["room_id"], ensure_utc(reservation["check_in"]), ensure_utc(reservation["check_out"]),
                    exclude_reservation_id=reservation_id,
                )
                if report.has_conflict:
                    raise ReservationConflictError(
                        "Confirming this reservation would overlap an active reservation",
                        conflicts=[conflict.to_dict() for conflict in report.conflicts],
                        original_room=reservation.get("room_number"),
                    )
                updated = await self._write_status(reservation_id, current, new_status, extra)
        else:
            updated = await self._write_status(reservation_id, current, new_status, extra)

        logger.info("📋 Reservation %s: %s → %s", reservation.get("reservation_number"), current, new_status)
        event = TRANSITION_EVENTS.get(new_status)
        if event is not None:
            await self.reconciler.apply(reservation["room_id"], event)
        if new_status == "checked-out" and reservation.get("customer_id"):
            await self.customers.record_visit_safely(
                reservation["customer_id"], float(reservation.get("total_price") or 0),
                reservation.get("room_number"),
            )
        return updated

    async def _write_status(self, reservation_id: str, expected: str, new_status: str, extra: Dict) -> Dict:
        updated = await self.reservations.update_status(reservation_id, expected, new_status, extra)
        if updated is not None:
            return updated
        latest = await self.reservations.get(reservation_id)
        if not latest:
            raise NotFoundError("Reservation not found")
        raise ValidationError(
            f"Reservation status changed concurrently from '{expected}' to '{latest['status']}'",
            {"currentStatus": latest["status"]},
        )

    async def update(self, reservation_id: str, changes: ReservationUpdate) -> Dict:
        """Edit a non-terminal reservation; new dates must stay conflict-free on the same room"""
        reservation = await self.get(reservation_id)
        if not ALLOWED_TRANSITIONS.get(reservation["status"]):
            raise ValidationError(f"Cannot edit a reservation in status '{reservation['status']}'")

        update_data = changes.model_dump(exclude_unset=True, exclude={"check_in", "check_out"})
        for field in ("customer_name", "customer_phone", "customer_document", "notes"):
            if field in update_data and update_data[field] is not None:
                update_data[field] = update_data[field].strip()
        if update_data.get("customer_email"):
            update_data["customer_email"] = update_data["customer_email"].strip().lower()
        if "total_price" in update_data and update_data["total_price"] is not None:
            update_data["total_price"] = round(update_data["total_price"], 2)

        dates_changed = changes.check_in is not None or changes.check_out is not None
        if not dates_changed:
            if not update_data:
                raise ValidationError("No fields to update")
            return await self._save(reservation_id, update_data)

        check_in, check_out = validate_interval(changes.check_in or ensure_utc(reservation["check_in"]),
                                                changes.check_out or ensure_utc(reservation["check_out"]))
        update_data["check_in"] = check_in
        update_data["check_out"] = check_out
        if reservation["status"] not in BLOCKING_RESERVATION_STATUSES:
            return await self._save(reservation_id, update_data)

        async with self.locks.hold(reservation["room_id"]):
            report = await self.detector.check(reservation["room_id"], check_in, check_out,
                                               exclude_reservation_id=reservation_id)
            if report.has_conflict:
                raise ReservationConflictError(
                    "New dates overlap another reservation on this room",
                    conflicts=[conflict.to_dict() for conflict in report.conflicts],
                    original_room=reservation.get("room_number"),
                )
            return await self._save(reservation_id, update_data)

    async def _save(self, reservation_id: str, update_data: Dict) -> Dict:
        updated = await self.reservations.update(reservation_id, update_data)
        if not updated:
            raise NotFoundError("Reservation not found")
        return updated

    async def check_conflicts(self, request: ConflictCheckRequest) -> Dict:
        """Dry run: report conflicts for a room and, when any, the free alternatives"""
        check_in, check_out = validate_interval(request.check_in, request.check_out)
        room = await self.rooms.get(request.room_id)
        if not room:
            raise NotFoundError("Room not found")
        report = await self.detector.check(str(room["_id"]), check_in, check_out,
                                           exclude_reservation_id=request.exclude_reservation_id)
        alternatives: List[Dict] = []
        if report.has_conflict:
            found = await self.finder.find(check_in, check_out, preferred_category=room.get("category"))
            alternatives = [s.to_dict() for s in found if s.room_id != str(room["_id"])]
        result = report.to_dict()
        result["roomNumber"] = room.get("number")
        result["alternatives"] = alternatives
        return result
