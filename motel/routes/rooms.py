import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Optional
from pymongo.errors import DuplicateKeyError

from motel.context import PMSContext
from motel.dependencies import get_pms, require_admin, require_permission
from motel.database.repositories import ROOM_STATUSES, BOOKABLE_ROOM_STATUSES
from motel.models.room import RoomCreate, RoomUpdate, RoomStatusUpdate
from motel.services.room_status import RoomEvent
from motel.utils.exceptions import DuplicateError, InUseError, NotFoundError
from motel.utils.helpers import serialize_doc, serialize_docs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["Rooms"])


async def _get_room_or_404(pms: PMSContext, room_id: str) -> dict:
    room = await pms.rooms.get(room_id)
    if not room:
        raise NotFoundError("Room not found")
    return room


@router.get("/")
async def list_rooms(
    status_filter: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None, alias="type"),
    floor: Optional[str] = None,
    current_user: dict = Depends(require_permission("rooms.view")),
    pms: PMSContext = Depends(get_pms),
):
    """List rooms ordered by number, with per-status counts"""
    filter_query = {}
    if status_filter:
        filter_query["status"] = status_filter
    if category:
        filter_query["category"] = category
    if floor:
        filter_query["floor"] = floor
    rooms = await pms.rooms.list(filter_query)
    counts = {room_status: 0 for room_status in ROOM_STATUSES}
    for room in rooms:
        counts[room.get("status", "available")] = counts.get(room.get("status", "available"), 0) + 1
    return {"success": True, "data": serialize_docs(rooms), "total": len(rooms), "byStatus": counts}


@router.get("/available")
async def list_bookable_rooms(
    current_user: dict = Depends(require_permission("rooms.view")),
    pms: PMSContext = Depends(get_pms),
):
    """Rooms that accept new reservations (available or being cleaned)"""
    rooms = await pms.rooms.find_by_status(BOOKABLE_ROOM_STATUSES)
    return {"success": True, "data": serialize_docs(rooms), "total": len(rooms)}


@router.get("/stats/summary")
async def room_stats(
    current_user: dict = Depends(require_permission("rooms.view")),
    pms: PMSContext = Depends(get_pms),
):
    counts = {}
    for room_status in ROOM_STATUSES:
        counts[room_status] = await pms.rooms.count({"status": room_status})
    total = sum(counts.values())
    occupancy = round(counts["occupied"] / total * 100, 1) if total else 0.0
    return {"success": True, "data": {"total": total, "byStatus": counts, "occupancyRate": occupancy}}


@router.get("/{room_id}")
async def get_room(
    room_id: str,
    current_user: dict = Depends(require_permission("rooms.view")),
    pms: PMSContext = Depends(get_pms),
):
    room = await _get_room_or_404(pms, room_id)
    return {"success": True, "data": serialize_doc(room)}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_room(
    room: RoomCreate,
    current_user: dict = Depends(require_permission("rooms.manage")),
    pms: PMSContext = Depends(get_pms),
):
    """Create a new room; room numbers are unique"""
    if await pms.rooms.get_by_number(room.number):
        raise DuplicateError(f"Room {room.number} already exists")
    document = room.model_dump()
    try:
        created = await pms.rooms.create(document)
    except DuplicateKeyError:
        raise DuplicateError(f"Room {room.number} already exists")
    logger.info("🏨 Room %s created", room.number)
    return {"success": True, "message": "Room created", "data": serialize_doc(created)}


@router.put("/{room_id}")
async def update_room(
    room_id: str,
    room_update: RoomUpdate,
    current_user: dict = Depends(require_permission("rooms.manage")),
    pms: PMSContext = Depends(get_pms),
):
    """Update room details; status changes go through PATCH /rooms/{id}/status"""
    existing = await _get_room_or_404(pms, room_id)
    update_data = room_update.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if update_data.get("number") and update_data["number"] != existing["number"]:
        if await pms.rooms.get_by_number(update_data["number"]):
            raise DuplicateError(f"Room {update_data['number']} already exists")
    try:
        updated = await pms.rooms.update(room_id, update_data)
    except DuplicateKeyError:
        raise DuplicateError("Room number already in use")
    return {"success": True, "message": "Room updated", "data": serialize_doc(updated)}


@router.patch("/{room_id}/status")
async def set_room_status(
    room_id: str,
    status_update: RoomStatusUpdate,
    current_user: dict = Depends(require_permission("rooms.status")),
    pms: PMSContext = Depends(get_pms),
):
    """Manual status override by staff"""
    room = await _get_room_or_404(pms, room_id)
    if status_update.status == "maintenance":
        updated = await pms.rooms.update_status(
            room_id, "maintenance", extra={"maintenance_reason": status_update.maintenance_reason or ""}
        )
    else:
        updated = await pms.rooms.update_status(room_id, status_update.status, unset=["maintenance_reason"])
    logger.info("🏨 Room %s status overridden: %s → %s by %s",
                room.get("number"), room.get("status"), status_update.status, current_user.get("email"))
    return {"success": True, "message": f"Room status set to {status_update.status}", "data": serialize_doc(updated)}


@router.patch("/{room_id}/clean")
async def mark_room_clean(
    room_id: str,
    current_user: dict = Depends(require_permission("rooms.status")),
    pms: PMSContext = Depends(get_pms),
):
    """Housekeeping finished: the room becomes available"""
    await _get_room_or_404(pms, room_id)
    await pms.reconciler.apply(room_id, RoomEvent.MARK_CLEAN)
    room = await _get_room_or_404(pms, room_id)
    return {"success": True, "message": "Room marked as clean", "data": serialize_doc(room)}


@router.delete("/{room_id}")
async def delete_room(
    room_id: str,
    current_user: dict = Depends(require_admin),
    pms: PMSContext = Depends(get_pms),
):
    """Delete a room that no active reservation references"""
    room = await _get_room_or_404(pms, room_id)
    async with pms.locks.hold(room_id):
        active = await pms.reservations.count_active_for_room(room_id)
        if active:
            raise InUseError(f"Room {room['number']} has {active} active reservation(s) and cannot be deleted")
        await pms.rooms.delete(room_id)
    logger.info("🗑️ Room %s deleted", room.get("number"))
    return {"success": True, "message": "Room deleted"}
