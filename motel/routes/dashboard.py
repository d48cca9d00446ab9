from datetime import timedelta
from fastapi import APIRouter, Depends

from motel.config.database import Collections
from motel.context import PMSContext
from motel.dependencies import get_pms, require_permission
from motel.database.repositories import ROOM_STATUSES
from motel.services.order_service import ORDER_STATUSES
from motel.utils.helpers import local_day_start, utc_now

router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


@router.get("/overview")
async def dashboard_overview(
    current_user: dict = Depends(require_permission("dashboard.view")),
    pms: PMSContext = Depends(get_pms),
):
    """Operational counters for the front desk"""
    rooms = {}
    for room_status in ROOM_STATUSES:
        rooms[room_status] = await pms.rooms.count({"status": room_status})
    total_rooms = sum(rooms.values())

    day_start = local_day_start(utc_now())
    day_end = day_start + timedelta(days=1)
    reservations = {
        "checkedIn": await pms.reservations.count({"status": "checked-in"}),
        "pending": await pms.reservations.count({"status": "pending"}),
        "arrivalsToday": await pms.reservations.count({
            "status": {"$in": ["confirmed", "checked-in"]},
            "check_in": {"$gte": day_start, "$lt": day_end},
        }),
        "departuresToday": await pms.reservations.count({
            "status": "checked-in",
            "check_out": {"$gte": day_start, "$lt": day_end},
        }),
    }

    orders = {}
    for order_status in ORDER_STATUSES:
        orders[order_status] = await pms.db.count(Collections.ORDERS, {"status": order_status})

    products = await pms.db.get_all(Collections.PRODUCTS, {"is_active": True}, limit=1000)
    low_stock = sum(1 for product in products if product.get("stock", 0) <= product.get("min_stock", 0))

    alerts = []
    if rooms["cleaning"]:
        alerts.append({"type": "cleaning", "message": f"{rooms['cleaning']} room(s) waiting for cleaning"})
    if rooms["maintenance"]:
        alerts.append({"type": "maintenance", "message": f"{rooms['maintenance']} room(s) in maintenance"})
    if low_stock:
        alerts.append({"type": "stock", "message": f"{low_stock} product(s) with low stock"})

    return {
        "success": True,
        "data": {
            "rooms": {
                "total": total_rooms,
                "byStatus": rooms,
                "occupancyRate": round(rooms["occupied"] / total_rooms * 100, 1) if total_rooms else 0.0,
            },
            "reservations": reservations,
            "orders": orders,
            "lowStockProducts": low_stock,
            "alerts": alerts,
            "periodCatalog": pms.periods.status(),
        },
    }
