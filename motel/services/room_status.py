"""
Room status reconciliation.

Keeps the physical room status in step with reservation events:

    create      -> occupied, when the stay starts today, has already started
                   or starts within the pre-block window; otherwise unchanged
    check-in    -> occupied
    check-out   -> cleaning
    cancel      -> available
    mark-clean  -> available

A failed room write is logged and never rolls back the reservation write.
"""
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from motel.database.repositories import RoomRepository
from motel.utils.exceptions import DependencyError
from motel.utils.helpers import to_local, utc_now

logger = logging.getLogger(__name__)


class RoomEvent(str, Enum):
    CREATE = "create"
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"
    CANCEL = "cancel"
    MARK_CLEAN = "mark_clean"


FIXED_TARGETS = {
    RoomEvent.CHECK_IN: "occupied",
    RoomEvent.CHECK_OUT: "cleaning",
    RoomEvent.CANCEL: "available",
    RoomEvent.MARK_CLEAN: "available",
}


def should_block_room(check_in: datetime, now: datetime, preblock_hours: float) -> bool:
    """A new reservation blocks its room right away when the stay is imminent"""
    if to_local(check_in).date() == to_local(now).date():
        return True
    return check_in <= now + timedelta(hours=preblock_hours)


def target_room_status(event: RoomEvent, check_in: Optional[datetime] = None,
                       now: Optional[datetime] = None, preblock_hours: float = 2) -> Optional[str]:
    """Room status implied by an event, or None when the room stays as is"""
    event = RoomEvent(event)
    if event is RoomEvent.CREATE:
        if check_in is None:
            return None
        return "occupied" if should_block_room(check_in, now or utc_now(), preblock_hours) else None
    return FIXED_TARGETS[event]


class RoomStatusReconciler:
    def __init__(self, rooms: RoomRepository, preblock_hours: float = 2,
                 clock: Callable[[], datetime] = utc_now):
        self.rooms = rooms
        self.preblock_hours = preblock_hours
        self.clock = clock

    async def apply(self, room_id: str, event: RoomEvent, check_in: Optional[datetime] = None) -> Optional[str]:
        """Write the status implied by event; returns the new status or None"""
        target = target_room_status(event, check_in, self.clock(), self.preblock_hours)
        if target is None:
            logger.info("Room %s left unchanged after %s (check-in not imminent)", room_id, event.value)
            return None
        try:
            updated = await self.rooms.update_status(room_id, target, unset=["maintenance_reason"])
        except DependencyError as exc:
            logger.error("❌ Failed to set room %s to %s after %s: %s", room_id, target, event.value, exc)
            return None
        if updated is None:
            logger.warning("⚠️ Room %s not found while applying %s", room_id, event.value)
            return None
        logger.info("🏨 Room %s → %s (%s)", updated.get("number", room_id), target, event.value)
        return target
