import logging
import re
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Optional

from motel.config.database import Collections
from motel.config.settings import settings
from motel.context import PMSContext
from motel.dependencies import get_pms, require_admin, require_permission
from motel.models.customer import CustomerCreate, CustomerUpdate, LoyaltyAdjust
from motel.services.customer_service import adjust_points, loyalty_for_points, new_customer_defaults
from motel.database.repositories import NON_TERMINAL_RESERVATION_STATUSES
from motel.utils.exceptions import DuplicateError, InUseError, NotFoundError
from motel.utils.helpers import serialize_doc, serialize_docs, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["Customers"])


async def _get_customer_or_404(pms: PMSContext, customer_id: str) -> dict:
    customer = await pms.customers.get(customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


@router.get("/")
async def list_customers(
    search: Optional[str] = None,
    vip: Optional[bool] = None,
    include_inactive: bool = Query(False, alias="includeInactive"),
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    current_user: dict = Depends(require_permission("customers.view")),
    pms: PMSContext = Depends(get_pms),
):
    """List customers; search matches name, phone, email or document"""
    filter_query = {}
    if not include_inactive:
        filter_query["is_active"] = True
    if vip is not None:
        filter_query["is_vip"] = vip
    if search:
        pattern = {"$regex": re.escape(search.strip()), "$options": "i"}
        filter_query["$or"] = [{"name": pattern}, {"phone": pattern}, {"email": pattern}, {"document": pattern}]
    customers = await pms.db.get_all(Collections.CUSTOMERS, filter_query, skip=skip, limit=limit,
                                     sort=[("name", 1)])
    total = await pms.db.count(Collections.CUSTOMERS, filter_query)
    return {"success": True, "data": serialize_docs(customers), "total": total}


@router.get("/stats/overview")
async def customer_stats(
    current_user: dict = Depends(require_permission("customers.view")),
    pms: PMSContext = Depends(get_pms),
):
    levels = {}
    for level in ("Bronze", "Prata", "Ouro", "Platina"):
        levels[level] = await pms.db.count(Collections.CUSTOMERS, {"is_active": True, "loyalty.level": level})
    return {
        "success": True,
        "data": {
            "total": await pms.db.count(Collections.CUSTOMERS, {}),
            "active": await pms.db.count(Collections.CUSTOMERS, {"is_active": True}),
            "vip": await pms.db.count(Collections.CUSTOMERS, {"is_active": True, "is_vip": True}),
            "byLoyaltyLevel": levels,
        },
    }


@router.get("/{customer_id}")
async def get_customer(
    customer_id: str,
    current_user: dict = Depends(require_permission("customers.view")),
    pms: PMSContext = Depends(get_pms),
):
    """Customer with their ten most recent reservations"""
    customer = await _get_customer_or_404(pms, customer_id)
    recent = await pms.reservations.list({"customer_id": customer_id}, limit=10)
    data = serialize_doc(customer)
    data["recentReservations"] = serialize_docs(recent)
    return {"success": True, "data": data}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_customer(
    customer: CustomerCreate,
    current_user: dict = Depends(require_permission("customers.manage")),
    pms: PMSContext = Depends(get_pms),
):
    phone = customer.phone.strip()
    if await pms.db.get_one(Collections.CUSTOMERS, {"phone": phone, "is_active": True}):
        raise DuplicateError(f"A customer with phone {phone} already exists")
    document = customer.model_dump()
    document["phone"] = phone
    if document.get("email"):
        document["email"] = document["email"].lower()
    document.update(new_customer_defaults())
    document["created_by"] = str(current_user.get("_id", ""))
    created = await pms.db.create(Collections.CUSTOMERS, document)
    logger.info("👤 Customer %s created", created.get("name"))
    return {"success": True, "message": "Customer created", "data": serialize_doc(created)}


@router.put("/{customer_id}")
async def update_customer(
    customer_id: str,
    customer_update: CustomerUpdate,
    current_user: dict = Depends(require_permission("customers.manage")),
    pms: PMSContext = Depends(get_pms),
):
    existing = await _get_customer_or_404(pms, customer_id)
    update_data = customer_update.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if update_data.get("phone") and update_data["phone"].strip() != existing.get("phone"):
        update_data["phone"] = update_data["phone"].strip()
        clash = await pms.db.get_one(Collections.CUSTOMERS, {"phone": update_data["phone"], "is_active": True})
        if clash and str(clash["_id"]) != customer_id:
            raise DuplicateError(f"A customer with phone {update_data['phone']} already exists")
    if update_data.get("email"):
        update_data["email"] = update_data["email"].lower()
    updated = await pms.db.update(Collections.CUSTOMERS, customer_id, update_data)
    return {"success": True, "message": "Customer updated", "data": serialize_doc(updated)}


@router.patch("/{customer_id}/loyalty")
async def adjust_loyalty(
    customer_id: str,
    adjustment: LoyaltyAdjust,
    current_user: dict = Depends(require_permission("customers.manage")),
    pms: PMSContext = Depends(get_pms),
):
    """Add, subtract or set loyalty points; the level follows the new balance"""
    customer = await _get_customer_or_404(pms, customer_id)
    current = (customer.get("loyalty") or {}).get("points", 0)
    loyalty = loyalty_for_points(adjust_points(current, adjustment.operation, adjustment.points))
    updated = await pms.db.update(Collections.CUSTOMERS, customer_id, {"loyalty": loyalty})
    logger.info("⭐ Loyalty of %s: %s → %s (%s)", customer.get("name"), current, loyalty["points"],
                adjustment.reason or adjustment.operation)
    return {"success": True, "message": "Loyalty updated", "data": serialize_doc(updated)}


@router.patch("/{customer_id}/vip")
async def toggle_vip(
    customer_id: str,
    current_user: dict = Depends(require_admin),
    pms: PMSContext = Depends(get_pms),
):
    customer = await _get_customer_or_404(pms, customer_id)
    updated = await pms.db.update(Collections.CUSTOMERS, customer_id, {"is_vip": not customer.get("is_vip", False)})
    return {"success": True, "message": "VIP status updated", "data": serialize_doc(updated)}


@router.delete("/{customer_id}")
async def deactivate_customer(
    customer_id: str,
    current_user: dict = Depends(require_admin),
    pms: PMSContext = Depends(get_pms),
):
    """Soft delete; refused while the customer has upcoming active reservations"""
    await _get_customer_or_404(pms, customer_id)
    upcoming = await pms.reservations.count({
        "customer_id": customer_id,
        "status": {"$in": list(NON_TERMINAL_RESERVATION_STATUSES)},
        "check_out": {"$gte": utc_now()},
    })
    if upcoming:
        raise InUseError(f"Customer has {upcoming} active reservation(s)")
    await pms.db.update(Collections.CUSTOMERS, customer_id, {"is_active": False, "deactivated_at": utc_now()})
    return {"success": True, "message": "Customer deactivated"}
