import logging
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Optional

from motel.config.settings import settings
from motel.context import PMSContext
from motel.dependencies import get_pms, require_permission
from motel.database.repositories import RESERVATION_STATUSES
from motel.models.reservation import (
    ConflictCheckRequest,
    ReservationCreate,
    ReservationStatusUpdate,
    ReservationUpdate,
)
from motel.services.shifts import REVENUE_STATUSES, detect_shift, summarize_revenue
from motel.utils.auth import get_current_user
from motel.utils.helpers import local_day_start, serialize_doc, serialize_docs, to_utc, utc_now
from motel.utils.permissions import RESERVATION_STATUS_PERMISSIONS

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_reservation(
    reservation: ReservationCreate,
    current_user: dict = Depends(require_permission("reservations.create")),
    pms: PMSContext = Depends(get_pms),
):
    """Create a reservation, moving it to a free room of the same category when the requested one is taken"""
    created, room_changed = await pms.reservation_service.create(reservation, current_user)
    message = "Reservation created"
    if room_changed:
        message = f"Room {created['original_room_number']} was taken; reservation moved to room {created['room_number']}"
    return {"success": True, "message": message, "roomChanged": room_changed, "data": serialize_doc(created)}


@router.post("/check-conflicts")
async def check_conflicts(
    request: ConflictCheckRequest,
    current_user: dict = Depends(require_permission("reservations.view")),
    pms: PMSContext = Depends(get_pms),
):
    """Dry run of the conflict check; nothing is written"""
    result = await pms.reservation_service.check_conflicts(request)
    return {"success": True, **result}


@router.get("/")
async def list_reservations(
    status_filter: Optional[str] = Query(None, alias="status"),
    room_id: Optional[str] = Query(None, alias="roomId"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    date_from: Optional[datetime] = Query(None, alias="from"),
    date_to: Optional[datetime] = Query(None, alias="to"),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: dict = Depends(require_permission("reservations.view")),
    pms: PMSContext = Depends(get_pms),
):
    """List reservations, newest first"""
    filter_query = {}
    if status_filter:
        if status_filter not in RESERVATION_STATUSES:
            raise HTTPException(status_code=400, detail=f"Invalid status '{status_filter}'")
        filter_query["status"] = status_filter
    if room_id:
        filter_query["room_id"] = room_id
    if customer_id:
        filter_query["customer_id"] = customer_id
    if date_from or date_to:
        window = {}
        if date_from:
            window["$gte"] = to_utc(date_from)
        if date_to:
            window["$lt"] = to_utc(date_to)
        filter_query["check_in"] = window
    reservations = await pms.reservations.list(filter_query, skip=skip, limit=limit)
    total = await pms.reservations.count(filter_query)
    return {"success": True, "data": serialize_docs(reservations), "total": total, "skip": skip, "limit": limit}


@router.get("/stats/overview")
async def reservation_stats(
    current_user: dict = Depends(require_permission("reservations.view")),
    pms: PMSContext = Depends(get_pms),
):
    by_status = {}
    for reservation_status in RESERVATION_STATUSES:
        by_status[reservation_status] = await pms.reservations.count({"status": reservation_status})

    day_start = local_day_start(utc_now())
    todays = await pms.reservations.in_window(day_start, day_start + timedelta(days=1),
                                              statuses=REVENUE_STATUSES)
    return {
        "success": True,
        "data": {
            "total": sum(by_status.values()),
            "byStatus": by_status,
            "today": {"checkIns": len(todays), "revenue": summarize_revenue(todays)},
        },
    }


@router.get("/shifts/current")
async def current_shift(
    current_user: dict = Depends(get_current_user),
    pms: PMSContext = Depends(get_pms),
):
    """The caller's current shift and the revenue booked in it"""
    shift = detect_shift(current_user)
    return {"success": True, "data": await _shift_report(pms, shift["shift_id"], shift)}


@router.get("/shifts/{shift_id}")
async def shift_report(
    shift_id: str,
    current_user: dict = Depends(require_permission("reservations.view")),
    pms: PMSContext = Depends(get_pms),
):
    return {"success": True, "data": await _shift_report(pms, shift_id)}


async def _shift_report(pms: PMSContext, shift_id: str, shift: Optional[dict] = None) -> dict:
    reservations = await pms.reservations.list(
        {"shift.shift_id": shift_id, "status": {"$in": list(REVENUE_STATUSES)}},
        limit=settings.MAX_PAGE_SIZE,
    )
    return {
        "shift": serialize_doc(shift) if shift else {"shift_id": shift_id},
        "reservations": serialize_docs(reservations),
        "count": len(reservations),
        "revenue": summarize_revenue(reservations),
    }


@router.get("/{reservation_id}")
async def get_reservation(
    reservation_id: str,
    current_user: dict = Depends(require_permission("reservations.view")),
    pms: PMSContext = Depends(get_pms),
):
    reservation = await pms.reservation_service.get(reservation_id)
    return {"success": True, "data": serialize_doc(reservation)}


@router.patch("/{reservation_id}")
async def update_reservation(
    reservation_id: str,
    changes: ReservationUpdate,
    current_user: dict = Depends(require_permission("reservations.edit")),
    pms: PMSContext = Depends(get_pms),
):
    """Edit a non-terminal reservation; date changes are re-checked for conflicts"""
    updated = await pms.reservation_service.update(reservation_id, changes)
    return {"success": True, "message": "Reservation updated", "data": serialize_doc(updated)}


@router.patch("/{reservation_id}/status")
async def change_reservation_status(
    reservation_id: str,
    status_update: ReservationStatusUpdate,
    current_user: dict = Depends(get_current_user),
    pms: PMSContext = Depends(get_pms),
):
    """Advance the reservation lifecycle (confirm, check-in, check-out, cancel)"""
    permission = RESERVATION_STATUS_PERMISSIONS.get(status_update.status, "reservations.edit")
    if not pms.permissions.allows(current_user.get("role", ""), permission):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Permission '{permission}' required")
    updated = await pms.reservation_service.change_status(
        reservation_id, status_update.status, current_user, reason=status_update.reason
    )
    return {"success": True, "message": f"Reservation {status_update.status}", "data": serialize_doc(updated)}
