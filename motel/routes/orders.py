import logging
from datetime import datetime
from fastapi import APIRouter, Depends, status, Query
from typing import Optional

from motel.config.database import Collections
from motel.config.settings import settings
from motel.context import PMSContext
from motel.dependencies import get_pms, require_permission
from motel.models.order import OrderCancel, OrderCreate
from motel.services.order_service import ACTIVE_ORDER_STATUSES, ORDER_STATUSES
from motel.utils.helpers import local_day_start, local_month_start, serialize_doc, serialize_docs, to_utc, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["Orders"])

ROOM_ORDER_HISTORY_LIMIT = 50


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_order(
    order: OrderCreate,
    current_user: dict = Depends(require_permission("orders.create")),
    pms: PMSContext = Depends(get_pms),
):
    """Frigobar or room-service order for a checked-in reservation"""
    items = [item.model_dump() for item in order.items]
    created = await pms.order_service.create(order.reservation_id, items, order.order_type, current_user,
                                             notes=order.notes)
    return {"success": True, "message": "Order created", "data": serialize_doc(created)}


@router.get("/")
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    room_number: Optional[str] = Query(None, alias="roomNumber"),
    reservation_id: Optional[str] = Query(None, alias="reservationId"),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: dict = Depends(require_permission("orders.view")),
    pms: PMSContext = Depends(get_pms),
):
    filter_query = {}
    if status_filter:
        filter_query["status"] = status_filter
    if room_number:
        filter_query["room_number"] = room_number
    if reservation_id:
        filter_query["reservation_id"] = reservation_id
    orders = await pms.order_service.list(filter_query, skip=skip, limit=limit)
    return {"success": True, "data": serialize_docs(orders), "total": len(orders)}


@router.get("/active")
async def list_active_orders(
    current_user: dict = Depends(require_permission("orders.view")),
    pms: PMSContext = Depends(get_pms),
):
    """Orders still moving through the kitchen/delivery flow"""
    orders = await pms.order_service.list({"status": {"$in": list(ACTIVE_ORDER_STATUSES)}},
                                          limit=settings.MAX_PAGE_SIZE)
    return {"success": True, "data": serialize_docs(orders), "total": len(orders)}


@router.get("/room/{room_number}")
async def list_room_orders(
    room_number: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    current_user: dict = Depends(require_permission("orders.view")),
    pms: PMSContext = Depends(get_pms),
):
    filter_query = {"room_number": room_number}
    if status_filter:
        filter_query["status"] = status_filter
    created_range = {}
    if date_from:
        created_range["$gte"] = to_utc(date_from)
    if date_to:
        created_range["$lte"] = to_utc(date_to)
    if created_range:
        filter_query["created_at"] = created_range
    orders = await pms.order_service.list(filter_query, limit=ROOM_ORDER_HISTORY_LIMIT)
    return {"success": True, "data": {"roomNumber": room_number, "orders": serialize_docs(orders)}}


@router.get("/stats/overview")
async def order_stats(
    current_user: dict = Depends(require_permission("orders.manage")),
    pms: PMSContext = Depends(get_pms),
):
    now = utc_now()
    by_status = {}
    for order_status in ORDER_STATUSES:
        by_status[order_status] = await pms.db.count(Collections.ORDERS, {"status": order_status})

    delivered = await pms.order_service.list(
        {"status": "delivered", "created_at": {"$gte": local_month_start(now)}}, limit=100000
    )
    revenue = round(sum(order["pricing"]["total"] for order in delivered), 2)
    sold = {}
    for order in delivered:
        for item in order["items"]:
            entry = sold.setdefault(item["product_id"], {"productId": item["product_id"], "name": item["name"],
                                                         "quantity": 0, "revenue": 0.0})
            entry["quantity"] += item["quantity"]
            entry["revenue"] = round(entry["revenue"] + item["total_price"], 2)

    return {
        "success": True,
        "data": {
            "todayOrders": await pms.db.count(Collections.ORDERS, {"created_at": {"$gte": local_day_start(now)}}),
            "byStatus": by_status,
            "activeOrders": sum(by_status[s] for s in ACTIVE_ORDER_STATUSES),
            "monthlyRevenue": {
                "total": revenue,
                "count": len(delivered),
                "average": round(revenue / len(delivered), 2) if delivered else 0.0,
            },
            "topProducts": sorted(sold.values(), key=lambda entry: entry["quantity"], reverse=True)[:10],
        },
    }


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    current_user: dict = Depends(require_permission("orders.view")),
    pms: PMSContext = Depends(get_pms),
):
    order = await pms.order_service.get(order_id)
    return {"success": True, "data": serialize_doc(order)}


async def _transition(pms: PMSContext, order_id: str, new_status: str, user: dict, reason: Optional[str] = None):
    updated = await pms.order_service.transition(order_id, new_status, user, reason=reason)
    return {"success": True, "message": f"Order {new_status}", "data": serialize_doc(updated)}


@router.patch("/{order_id}/confirm")
async def confirm_order(order_id: str, current_user: dict = Depends(require_permission("orders.manage")),
                        pms: PMSContext = Depends(get_pms)):
    return await _transition(pms, order_id, "confirmed", current_user)


@router.patch("/{order_id}/prepare")
async def start_preparing(order_id: str, current_user: dict = Depends(require_permission("orders.manage")),
                          pms: PMSContext = Depends(get_pms)):
    return await _transition(pms, order_id, "preparing", current_user)


@router.patch("/{order_id}/ready")
async def mark_ready(order_id: str, current_user: dict = Depends(require_permission("orders.manage")),
                     pms: PMSContext = Depends(get_pms)):
    return await _transition(pms, order_id, "ready", current_user)


@router.patch("/{order_id}/deliver")
async def deliver_order(order_id: str, current_user: dict = Depends(require_permission("orders.deliver")),
                        pms: PMSContext = Depends(get_pms)):
    return await _transition(pms, order_id, "delivered", current_user)


@router.patch("/{order_id}/cancel")
async def cancel_order(order_id: str, cancel: OrderCancel,
                       current_user: dict = Depends(require_permission("orders.manage")),
                       pms: PMSContext = Depends(get_pms)):
    return await _transition(pms, order_id, "cancelled", current_user, reason=cancel.reason)
