"""
Customer CRM: loyalty levels and visit statistics
"""
import logging
from datetime import datetime
from typing import Dict, Optional

from motel.config.database import Collections
from motel.database.db_operations import DBOperations
from motel.utils.exceptions import DependencyError, ValidationError
from motel.utils.helpers import utc_now

logger = logging.getLogger(__name__)

# (minimum points, level, discount percentage), highest first
LOYALTY_LEVELS = (
    (1000, "Platina", 15),
    (500, "Ouro", 10),
    (200, "Prata", 5),
    (0, "Bronze", 0),
)
CURRENCY_PER_POINT = 10


def loyalty_for_points(points: int) -> Dict:
    points = max(0, int(points))
    for minimum, level, discount in LOYALTY_LEVELS:
        if points >= minimum:
            return {"points": points, "level": level, "discount_percentage": discount}
    raise AssertionError("unreachable")


def points_for_amount(amount: float) -> int:
    return int(max(0.0, amount) // CURRENCY_PER_POINT)


def adjust_points(current: int, operation: str, amount: int) -> int:
    if operation == "add":
        return current + amount
    if operation == "subtract":
        return max(0, current - amount)
    if operation == "set":
        return max(0, amount)
    raise ValidationError("Invalid operation. Use: add, subtract or set")


def new_customer_defaults() -> Dict:
    return {
        "is_vip": False,
        "is_active": True,
        "stats": {"total_visits": 0, "total_spent": 0.0, "last_visit": None, "last_room": None},
        "loyalty": loyalty_for_points(0),
    }


class CustomerService:
    def __init__(self, db: DBOperations):
        self.db = db

    async def get(self, customer_id: str) -> Optional[Dict]:
        return await self.db.get_by_id(Collections.CUSTOMERS, customer_id)

    async def record_visit(self, customer_id: str, amount_spent: float, room_number: Optional[str] = None,
                           when: Optional[datetime] = None) -> Optional[Dict]:
        """Count a completed stay and award loyalty points"""
        customer = await self.get(customer_id)
        if not customer:
            logger.warning("⚠️ Customer %s not found, visit not recorded", customer_id)
            return None
        loyalty = customer.get("loyalty") or {}
        new_loyalty = loyalty_for_points(loyalty.get("points", 0) + points_for_amount(amount_spent))
        extra = {"stats.last_visit": when or utc_now(), "loyalty": new_loyalty}
        if room_number:
            extra["stats.last_room"] = room_number
        updated = await self.db.increment(
            Collections.CUSTOMERS,
            customer_id,
            {"stats.total_visits": 1, "stats.total_spent": round(float(amount_spent), 2)},
            extra_set=extra,
        )
        logger.info("⭐ Customer %s visit recorded: %s points, level %s",
                    customer.get("name"), new_loyalty["points"], new_loyalty["level"])
        return updated

    async def record_visit_safely(self, customer_id: str, amount_spent: float,
                                  room_number: Optional[str] = None) -> None:
        """Stats are secondary to the check-out itself; storage failures are logged"""
        try:
            await self.record_visit(customer_id, amount_spent, room_number)
        except DependencyError as exc:
            logger.error("❌ Could not update stats for customer %s: %s", customer_id, exc)
