"""
Frigobar and room-service orders with stock bookkeeping
"""
import logging
from typing import Callable, Dict, List, Optional

from motel.config.database import Collections
from motel.config.settings import settings
from motel.database.db_operations import DBOperations, to_object_id
from motel.database.repositories import ReservationRepository
from motel.services.numbering import insert_with_number
from motel.utils.exceptions import DependencyError, NotFoundError, PMSError, ValidationError
from motel.utils.helpers import utc_now

logger = logging.getLogger(__name__)

ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready", "delivered", "cancelled")
ORDER_TRANSITIONS = {
    "pending": {"confirmed", "cancelled"},
    "confirmed": {"preparing", "cancelled"},
    "preparing": {"ready", "cancelled"},
    "ready": {"delivered", "cancelled"},
    "delivered": set(),
    "cancelled": set(),
}
# Stock goes back to the shelf only if preparation has not started
RESTOCK_ON_CANCEL = ("pending", "confirmed")
ACTIVE_ORDER_STATUSES = ("pending", "confirmed", "preparing", "ready")


def order_pricing(items: List[Dict], order_type: str, service_rate: float) -> Dict:
    subtotal = round(sum(item["total_price"] for item in items), 2)
    service_charge = round(subtotal * service_rate, 2) if order_type == "room_service" else 0.0
    return {"subtotal": subtotal, "service_charge": service_charge, "total": round(subtotal + service_charge, 2)}


class OrderService:
    def __init__(self, db: DBOperations, reservations: ReservationRepository,
                 service_rate: Optional[float] = None, clock: Callable = utc_now):
        self.db = db
        self.reservations = reservations
        self.service_rate = settings.ROOM_SERVICE_CHARGE_RATE if service_rate is None else service_rate
        self.clock = clock

    async def get(self, order_id: str) -> Dict:
        order = await self.db.get_by_id(Collections.ORDERS, order_id)
        if not order:
            raise NotFoundError("Order not found")
        return order

    async def create(self, reservation_id: str, items: List[Dict], order_type: str, user: Dict,
                     notes: Optional[str] = None) -> Dict:
        reservation = await self.reservations.get(reservation_id)
        if not reservation:
            raise NotFoundError("Reservation not found")
        if reservation["status"] != "checked-in":
            raise ValidationError("Orders can only be placed for checked-in reservations")
        if not items:
            raise ValidationError("Order must contain at least one item")

        order_items = []
        products = {}
        for item in items:
            product = await self.db.get_by_id(Collections.PRODUCTS, item["product_id"])
            if not product or not product.get("is_active", True):
                raise ValidationError(f"Product {item['product_id']} is not available")
            already = sum(i["quantity"] for i in order_items if i["product_id"] == item["product_id"])
            if product.get("stock", 0) < already + item["quantity"]:
                raise ValidationError(f"Insufficient stock for {product['name']}: {product.get('stock', 0)} available")
            products[item["product_id"]] = product
            unit_price = float(product["price"])
            order_items.append({
                "product_id": item["product_id"],
                "name": product["name"],
                "quantity": item["quantity"],
                "unit_price": unit_price,
                "total_price": round(unit_price * item["quantity"], 2),
                "notes": item.get("notes") or "",
            })

        now = self.clock()
        document = {
            "reservation_id": str(reservation["_id"]),
            "room_id": reservation.get("room_id"),
            "room_number": reservation.get("room_number"),
            "customer_name": reservation.get("customer_name"),
            "items": order_items,
            "pricing": order_pricing(order_items, order_type, self.service_rate),
            "order_type": order_type,
            "status": "pending",
            "notes": notes or "",
            "timeline": [{"status": "pending", "at": now, "by": str(user.get("_id", ""))}],
            "created_by": str(user.get("_id", "")),
            "created_at": now,
        }
        wanted = {}
        for order_item in order_items:
            wanted[order_item["product_id"]] = wanted.get(order_item["product_id"], 0) + order_item["quantity"]
        taken = {}
        try:
            for product_id, quantity in wanted.items():
                updated = await self.db.increment(Collections.PRODUCTS, product_id, {"stock": -quantity},
                                                  conditions={"stock": {"$gte": quantity}})
                if updated is None:
                    raise ValidationError(f"Insufficient stock for {products[product_id]['name']}")
                taken[product_id] = quantity
            created = await insert_with_number(
                lambda doc: self.db.create(Collections.ORDERS, doc), document, "order_number", "ORD"
            )
        except PMSError:
            await self._return_stock(taken)
            raise
        logger.info("🛒 Order %s created for room %s (total %.2f)",
                    created["order_number"], created["room_number"], created["pricing"]["total"])
        return created

    async def _return_stock(self, taken: Dict[str, int]) -> None:
        for product_id, quantity in taken.items():
            try:
                await self.db.increment(Collections.PRODUCTS, product_id, {"stock": quantity})
            except DependencyError as e:
                logger.error("❌ Could not return %d unit(s) of product %s to stock: %s", quantity, product_id, e)

    async def adjust_stock(self, product_id: str, operation: str, quantity: int) -> Dict:
        """Apply a manual stock operation (add, subtract or set) as a single atomic write"""
        if operation == "add":
            updated = await self.db.increment(Collections.PRODUCTS, product_id, {"stock": quantity})
        elif operation == "subtract":
            updated = await self.db.increment(Collections.PRODUCTS, product_id, {"stock": -quantity},
                                              conditions={"stock": {"$gte": quantity}})
            if updated is None:
                product = await self.db.get_by_id(Collections.PRODUCTS, product_id)
                if product:
                    raise ValidationError(f"Insufficient stock: {product.get('stock', 0)} available")
        elif operation == "set":
            if quantity < 0:
                raise ValidationError("Stock cannot be negative")
            updated = await self.db.update(Collections.PRODUCTS, product_id, {"stock": quantity})
        else:
            raise ValidationError("Invalid operation. Use: add, subtract or set")
        if updated is None:
            raise NotFoundError("Product not found")
        return updated

    async def transition(self, order_id: str, new_status: str, user: Dict, reason: Optional[str] = None) -> Dict:
        order = await self.get(order_id)
        current = order["status"]
        if new_status not in ORDER_TRANSITIONS.get(current, set()):
            raise ValidationError(f"Cannot change order status from '{current}' to '{new_status}'")

        now = self.clock()
        entry = {"status": new_status, "at": now, "by": str(user.get("_id", ""))}
        if reason:
            entry["reason"] = reason
        update = {"status": new_status, "timeline": list(order.get("timeline", [])) + [entry]}
        if new_status == "cancelled":
            update["cancel_reason"] = reason or ""
        updated = await self.db.update_where(
            Collections.ORDERS, {"_id": to_object_id(order_id), "status": current}, update
        )
        if updated is None:
            raise ValidationError("Order status changed concurrently, reload and retry")

        if new_status == "cancelled" and current in RESTOCK_ON_CANCEL:
            for item in order["items"]:
                await self.db.increment(Collections.PRODUCTS, item["product_id"], {"stock": item["quantity"]})
            logger.info("↩️ Order %s cancelled, stock returned", order.get("order_number"))
        elif new_status == "delivered":
            for item in order["items"]:
                await self.db.increment(Collections.PRODUCTS, item["product_id"],
                                        {"total_sold": item["quantity"]})
        logger.info("🛒 Order %s: %s → %s", order.get("order_number"), current, new_status)
        return updated

    async def list(self, filter_query: Dict, skip: int = 0, limit: int = 100) -> List[Dict]:
        return await self.db.get_all(Collections.ORDERS, filter_query, skip=skip, limit=limit,
                                     sort=[("created_at", -1)])
