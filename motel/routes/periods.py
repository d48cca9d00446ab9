import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query
from pymongo.errors import DuplicateKeyError

from motel.config.database import Collections
from motel.context import PMSContext
from motel.dependencies import get_pms, require_permission
from motel.models.period import PeriodCreate, PeriodUpdate, PriceRequest
from motel.services.period_catalog import get_period_or_404, resolve_price
from motel.utils.exceptions import DuplicateError, NotFoundError
from motel.utils.helpers import serialize_doc, serialize_docs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/periods", tags=["Periods"])


@router.get("/")
async def list_periods(
    include_inactive: bool = Query(False, alias="includeInactive"),
    current_user: dict = Depends(require_permission("periods.view")),
    pms: PMSContext = Depends(get_pms),
):
    """Active periods from the catalog; includeInactive reads the collection directly"""
    if include_inactive:
        periods = await pms.db.get_all(Collections.PERIODS, {}, limit=200, sort=[("order", 1)])
    else:
        periods = sorted((await pms.periods.get()).values(), key=lambda p: p.get("order", 0))
    return {"success": True, "data": serialize_docs(list(periods)), "catalog": pms.periods.status()}


@router.get("/available")
async def list_offerable_periods(
    scheduled: bool = Query(False, description="True for future bookings, False for today's walk-ins"),
    current_user: dict = Depends(require_permission("periods.view")),
    pms: PMSContext = Depends(get_pms),
):
    periods = await pms.periods.available_for(scheduled)
    return {"success": True, "data": serialize_docs(periods), "context": "scheduled" if scheduled else "today"}


@router.get("/catalog-status")
async def catalog_status(
    current_user: dict = Depends(require_permission("periods.view")),
    pms: PMSContext = Depends(get_pms),
):
    return {"success": True, "data": pms.periods.status()}


@router.post("/refresh")
async def refresh_catalog(
    current_user: dict = Depends(require_permission("periods.manage")),
    pms: PMSContext = Depends(get_pms),
):
    await pms.periods.refresh()
    return {"success": True, "data": pms.periods.status()}


@router.post("/calculate-price")
async def calculate_price(
    request: PriceRequest,
    current_user: dict = Depends(require_permission("periods.view")),
    pms: PMSContext = Depends(get_pms),
):
    """Price of a period, using the room's own price table when a room is given"""
    period = await pms.periods.resolve(request.period_type)
    room = None
    if request.room_id:
        room = await pms.rooms.get(request.room_id)
        if not room:
            raise NotFoundError("Room not found")
    price = resolve_price(period, room)
    return {
        "success": True,
        "data": {
            "periodType": period["period_type"],
            "periodName": period.get("name"),
            "basePrice": period.get("base_price"),
            "totalPrice": price,
            "source": "room" if room and period["period_type"] in (room.get("prices") or {}) else "period",
        },
    }


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_period(
    period: PeriodCreate,
    current_user: dict = Depends(require_permission("periods.manage")),
    pms: PMSContext = Depends(get_pms),
):
    document = period.model_dump()
    try:
        created = await pms.db.create(Collections.PERIODS, document)
    except DuplicateKeyError:
        raise DuplicateError(f"Period '{period.period_type}' already exists")
    await pms.periods.refresh()
    logger.info("🕐 Period %s created", period.period_type)
    return {"success": True, "message": "Period created", "data": serialize_doc(created)}


@router.put("/{period_id}")
async def update_period(
    period_id: str,
    period_update: PeriodUpdate,
    current_user: dict = Depends(require_permission("periods.manage")),
    pms: PMSContext = Depends(get_pms),
):
    await get_period_or_404(pms.db, period_id)
    update_data = period_update.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    updated = await pms.db.update(Collections.PERIODS, period_id, update_data)
    await pms.periods.refresh()
    return {"success": True, "message": "Period updated", "data": serialize_doc(updated)}


@router.patch("/{period_id}/toggle")
async def toggle_period(
    period_id: str,
    current_user: dict = Depends(require_permission("periods.manage")),
    pms: PMSContext = Depends(get_pms),
):
    period = await get_period_or_404(pms.db, period_id)
    updated = await pms.db.update(Collections.PERIODS, period_id, {"active": not period.get("active", True)})
    await pms.periods.refresh()
    state = "activated" if updated.get("active") else "deactivated"
    return {"success": True, "message": f"Period {state}", "data": serialize_doc(updated)}


@router.delete("/{period_id}")
async def delete_period(
    period_id: str,
    current_user: dict = Depends(require_permission("periods.manage")),
    pms: PMSContext = Depends(get_pms),
):
    period = await get_period_or_404(pms.db, period_id)
    await pms.db.delete(Collections.PERIODS, period_id)
    await pms.periods.refresh()
    logger.info("🗑️ Period %s deleted", period.get("period_type"))
    return {"success": True, "message": "Period deleted"}
