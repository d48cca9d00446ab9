"""
Reservation conflict detection and alternative room search.

Intervals are half-open: [check_in, check_out). A stay ending exactly when
another begins does not conflict, so back-to-back bookings are allowed.
Only reservations in BLOCKING_RESERVATION_STATUSES own their interval.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from motel.database.repositories import (
    BLOCKING_RESERVATION_STATUSES,
    BOOKABLE_ROOM_STATUSES,
    ReservationRepository,
    RoomRepository,
)
from motel.utils.exceptions import DependencyError
from motel.utils.helpers import ensure_utc, serialize_value

logger = logging.getLogger(__name__)


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """True iff [a_start, a_end) and [b_start, b_end) share at least one instant"""
    return a_start < b_end and a_end > b_start


@dataclass
class Conflict:
    reservation_id: str
    reservation_number: str
    customer_name: str
    conflict_start: datetime
    conflict_end: datetime
    existing_check_in: datetime
    existing_check_out: datetime

    def to_dict(self) -> Dict:
        return {
            "reservationId": self.reservation_id,
            "reservationNumber": self.reservation_number,
            "customerName": self.customer_name,
            "conflictStart": serialize_value(self.conflict_start),
            "conflictEnd": serialize_value(self.conflict_end),
            "existingPeriod": {
                "checkIn": serialize_value(self.existing_check_in),
                "checkOut": serialize_value(self.existing_check_out),
            },
        }


@dataclass
class ConflictReport:
    room_id: str
    conflicts: List[Conflict] = field(default_factory=list)
    total_existing_reservations: int = 0
    # Set when a lookup failure was ignored under the fail-open policy
    error: Optional[str] = None

    @property
    def has_conflict(self) -> bool:
        return bool(self.conflicts)

    def to_dict(self) -> Dict:
        data = {
            "roomId": self.room_id,
            "hasConflict": self.has_conflict,
            "conflicts": [conflict.to_dict() for conflict in self.conflicts],
            "totalExistingReservations": self.total_existing_reservations,
        }
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class RoomSuggestion:
    room_id: str
    room_number: str
    category: Optional[str]
    status: str
    is_recommended: bool

    def to_dict(self) -> Dict:
        return {
            "roomId": self.room_id,
            "roomNumber": self.room_number,
            "roomType": self.category,
            "status": self.status,
            "isRecommended": self.is_recommended,
        }


class ConflictDetector:
    """Checks a candidate interval against the active reservations of one room.

    With ``fail_open`` a storage failure during the lookup is reported as
    "no conflict" (and logged), letting the booking through. Otherwise the
    DependencyError propagates and the booking is refused.
    """

    def __init__(self, reservations: ReservationRepository, fail_open: bool = False):
        self.reservations = reservations
        self.fail_open = fail_open

    async def check(self, room_id: str, check_in: datetime, check_out: datetime,
                    exclude_reservation_id: Optional[str] = None) -> ConflictReport:
        room_id = str(room_id)
        try:
            existing = await self.reservations.find_for_room(
                room_id, BLOCKING_RESERVATION_STATUSES, exclude_id=exclude_reservation_id
            )
        except DependencyError as exc:
            if not self.fail_open:
                raise
            logger.warning("⚠️ Conflict lookup failed for room %s, allowing booking (fail-open): %s",
                           room_id, exc)
            return ConflictReport(room_id=room_id, error=str(exc))

        if exclude_reservation_id:
            existing = [doc for doc in existing if str(doc.get("_id")) != str(exclude_reservation_id)]

        report = ConflictReport(room_id=room_id, total_existing_reservations=len(existing))
        for reservation in existing:
            existing_in = ensure_utc(reservation["check_in"])
            existing_out = ensure_utc(reservation["check_out"])
            if not intervals_overlap(check_in, check_out, existing_in, existing_out):
                continue
            logger.debug("Conflict on room %s with reservation %s",
                         room_id, reservation.get("reservation_number"))
            report.conflicts.append(Conflict(
                reservation_id=str(reservation["_id"]),
                reservation_number=reservation.get("reservation_number", ""),
                customer_name=reservation.get("customer_name", ""),
                conflict_start=max(check_in, existing_in),
                conflict_end=min(check_out, existing_out),
                existing_check_in=existing_in,
                existing_check_out=existing_out,
            ))
        return report


class AlternativeRoomFinder:
    """Lists bookable rooms that are free for an interval, room-number ascending.

    Rooms being cleaned are offered too. Every bookable room is scanned.
    """

    def __init__(self, rooms: RoomRepository, detector: ConflictDetector):
        self.rooms = rooms
        self.detector = detector

    async def find(self, check_in: datetime, check_out: datetime,
                   preferred_category: Optional[str] = None) -> List[RoomSuggestion]:
        candidates = await self.rooms.find_by_status(BOOKABLE_ROOM_STATUSES)
        suggestions = []
        for room in sorted(candidates, key=lambda r: r.get("number", "")):
            room_id = str(room["_id"])
            report = await self.detector.check(room_id, check_in, check_out)
            if report.has_conflict:
                continue
            suggestions.append(RoomSuggestion(
                room_id=room_id,
                room_number=room.get("number", ""),
                category=room.get("category"),
                status=room.get("status", "available"),
                is_recommended=preferred_category is not None and room.get("category") == preferred_category,
            ))
        logger.info("💡 %d alternative room(s) free for %s → %s", len(suggestions), check_in, check_out)
        return suggestions


def rank_alternatives(suggestions: List[RoomSuggestion]) -> List[RoomSuggestion]:
    """Same-category rooms first, room-number order otherwise preserved"""
    return sorted(suggestions, key=lambda s: not s.is_recommended)
