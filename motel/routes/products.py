import logging
from fastapi import APIRouter, Depends, HTTPException, status, Query
from typing import Optional
from pymongo.errors import DuplicateKeyError

from motel.config.database import Collections
from motel.context import PMSContext
from motel.dependencies import get_pms, require_permission
from motel.models.product import ProductCreate, ProductUpdate, StockAdjust
from motel.utils.exceptions import DuplicateError, NotFoundError
from motel.utils.helpers import serialize_doc, serialize_docs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])


def _is_low_stock(product: dict) -> bool:
    return product.get("stock", 0) <= product.get("min_stock", 0)


async def _get_product_or_404(pms: PMSContext, product_id: str) -> dict:
    product = await pms.db.get_by_id(Collections.PRODUCTS, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


@router.get("/")
async def list_products(
    category: Optional[str] = None,
    active: Optional[bool] = None,
    low_stock: bool = Query(False, alias="lowStock"),
    current_user: dict = Depends(require_permission("products.view")),
    pms: PMSContext = Depends(get_pms),
):
    filter_query = {}
    if category:
        filter_query["category"] = category
    if active is not None:
        filter_query["is_active"] = active
    products = await pms.db.get_all(Collections.PRODUCTS, filter_query, limit=1000, sort=[("name", 1)])
    if low_stock:
        products = [product for product in products if _is_low_stock(product)]
    return {"success": True, "data": serialize_docs(products), "total": len(products)}


@router.get("/low-stock")
async def list_low_stock(
    current_user: dict = Depends(require_permission("inventory.view")),
    pms: PMSContext = Depends(get_pms),
):
    products = await pms.db.get_all(Collections.PRODUCTS, {"is_active": True}, limit=1000, sort=[("stock", 1)])
    low = [product for product in products if _is_low_stock(product)]
    return {"success": True, "data": serialize_docs(low), "total": len(low)}


@router.get("/available/{room_number}")
async def list_available_for_room(
    room_number: str,
    category: Optional[str] = None,
    current_user: dict = Depends(require_permission("products.view")),
    pms: PMSContext = Depends(get_pms),
):
    """Menu for a room: active products in stock, grouped by category"""
    if not await pms.rooms.get_by_number(room_number):
        raise NotFoundError(f"Room {room_number} not found")
    filter_query = {
        "is_active": True,
        "stock": {"$gt": 0},
        "$or": [{"available_rooms": {"$exists": False}}, {"available_rooms": []},
                {"available_rooms": room_number}],
    }
    if category:
        filter_query["category"] = category
    products = await pms.db.get_all(Collections.PRODUCTS, filter_query, limit=1000,
                                    sort=[("category", 1), ("name", 1)])
    categories = {}
    for product in serialize_docs(products):
        categories.setdefault(product["category"], []).append(product)
    return {
        "success": True,
        "data": {"roomNumber": room_number, "categories": categories, "totalProducts": len(products)},
    }


@router.get("/stats/overview")
async def product_stats(
    current_user: dict = Depends(require_permission("inventory.view")),
    pms: PMSContext = Depends(get_pms),
):
    products = await pms.db.get_all(Collections.PRODUCTS, {}, limit=10000)
    by_category = {}
    for product in products:
        entry = by_category.setdefault(product["category"], {"count": 0, "totalStock": 0, "stockValue": 0.0})
        entry["count"] += 1
        entry["totalStock"] += product.get("stock", 0)
        entry["stockValue"] += product.get("stock", 0) * product.get("cost", 0)
    for entry in by_category.values():
        entry["stockValue"] = round(entry["stockValue"], 2)

    top_sellers = sorted((p for p in products if p.get("total_sold")), key=lambda p: p["total_sold"], reverse=True)
    return {
        "success": True,
        "data": {
            "totalProducts": len(products),
            "activeProducts": sum(1 for product in products if product.get("is_active", True)),
            "byCategory": by_category,
            "totalStockValue": round(sum(p.get("stock", 0) * p.get("cost", 0) for p in products), 2),
            "totalRetailValue": round(sum(p.get("stock", 0) * p.get("price", 0) for p in products), 2),
            "topSellers": [
                {"_id": str(p["_id"]), "name": p["name"], "category": p["category"], "totalSold": p["total_sold"]}
                for p in top_sellers[:10]
            ],
        },
    }


@router.get("/{product_id}")
async def get_product(
    product_id: str,
    current_user: dict = Depends(require_permission("products.view")),
    pms: PMSContext = Depends(get_pms),
):
    product = await _get_product_or_404(pms, product_id)
    return {"success": True, "data": serialize_doc(product)}


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_product(
    product: ProductCreate,
    current_user: dict = Depends(require_permission("products.manage")),
    pms: PMSContext = Depends(get_pms),
):
    document = product.model_dump()
    if not document.get("sku"):
        document.pop("sku", None)
    document["total_sold"] = 0
    try:
        created = await pms.db.create(Collections.PRODUCTS, document)
    except DuplicateKeyError:
        raise DuplicateError(f"SKU {product.sku} already in use")
    logger.info("📦 Product %s created", product.name)
    return {"success": True, "message": "Product created", "data": serialize_doc(created)}


@router.put("/{product_id}")
async def update_product(
    product_id: str,
    product_update: ProductUpdate,
    current_user: dict = Depends(require_permission("products.manage")),
    pms: PMSContext = Depends(get_pms),
):
    """Update product details; stock changes go through the stock endpoint"""
    await _get_product_or_404(pms, product_id)
    update_data = product_update.model_dump(exclude_unset=True)
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    try:
        updated = await pms.db.update(Collections.PRODUCTS, product_id, update_data)
    except DuplicateKeyError:
        raise DuplicateError(f"SKU {update_data.get('sku')} already in use")
    return {"success": True, "message": "Product updated", "data": serialize_doc(updated)}


@router.patch("/{product_id}/stock")
async def adjust_stock(
    product_id: str,
    adjustment: StockAdjust,
    current_user: dict = Depends(require_permission("inventory.manage")),
    pms: PMSContext = Depends(get_pms),
):
    updated = await pms.order_service.adjust_stock(product_id, adjustment.operation, adjustment.quantity)
    logger.info("📦 Stock of %s: %s %d → %d (%s)", updated.get("name"), adjustment.operation,
                adjustment.quantity, updated.get("stock", 0), adjustment.reason or "manual")
    return {
        "success": True,
        "message": "Stock updated",
        "data": serialize_doc(updated),
        "lowStock": _is_low_stock(updated),
    }
