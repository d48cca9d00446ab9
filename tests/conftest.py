"""
Pytest configuration and fixtures.
Services and routes run against an in-memory stand-in for the MongoDB layer.
"""

import asyncio
import copy
import re
from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId
from httpx import ASGITransport, AsyncClient
from pymongo.errors import DuplicateKeyError

from motel.config.database import Collections
from motel.context import build_context
from motel.database.db_operations import to_object_id
from motel.services.period_catalog import seed_default_periods
from motel.utils.exceptions import DependencyError

UNIQUE_FIELDS = {
    Collections.ROOMS: ("number",),
    Collections.RESERVATIONS: ("reservation_number",),
    Collections.USERS: ("email",),
    Collections.PERIODS: ("period_type",),
    Collections.ORDERS: ("order_number",),
    Collections.PRODUCTS: ("sku",),
}

_MISSING = object()


def _get_path(doc, path):
    value = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _set_path(doc, path, value):
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    target[parts[-1]] = value


def _unset_path(doc, path):
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.get(part)
        if not isinstance(target, dict):
            return
    target.pop(parts[-1], None)


def _compare(value, op, arg):
    if op == "$in":
        return value in arg
    if op == "$nin":
        return value not in arg
    if op == "$ne":
        return value != arg
    if op == "$exists":
        return (value is not _MISSING) == bool(arg)
    if op == "$regex":
        return value is not _MISSING and value is not None and re.search(arg, str(value)) is not None
    if value is _MISSING or value is None:
        return False
    if op == "$gte":
        return value >= arg
    if op == "$gt":
        return value > arg
    if op == "$lte":
        return value <= arg
    if op == "$lt":
        return value < arg
    raise NotImplementedError(op)


def matches(doc, query):
    """Subset of the MongoDB query language used by the application"""
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, sub) for sub in condition):
                return False
            continue
        if key == "$and":
            if not all(matches(doc, sub) for sub in condition):
                return False
            continue
        value = _get_path(doc, key)
        if isinstance(condition, dict) and condition and all(k.startswith("$") for k in condition):
            flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
            for op, arg in condition.items():
                if op == "$options":
                    continue
                if op == "$regex":
                    arg = re.compile(arg, flags)
                    if value is _MISSING or value is None or not arg.search(str(value)):
                        return False
                    continue
                if op == "$ne" and value is _MISSING:
                    continue
                if not _compare(None if value is _MISSING and op in ("$in", "$nin") else value, op, arg):
                    return False
            continue
        if value is _MISSING:
            if condition is not None:
                return False
            continue
        if isinstance(value, list) and not isinstance(condition, list):
            if condition not in value:
                return False
        elif value != condition:
            return False
    return True


def _sort_key(value):
    return (0, 0) if value is _MISSING or value is None else (1, value)


class FakeDBOperations:
    """In-memory DBOperations with the same signatures and error semantics.

    Every call yields to the event loop once, so concurrent tasks interleave
    the way they would against a real database. Collections listed in
    ``failing`` raise DependencyError, mimicking an unreachable server.
    """

    def __init__(self):
        self.collections = {}
        self.failing = set()
        self.calls = 0

    async def _enter(self, collection_name):
        self.calls += 1
        await asyncio.sleep(0)
        if collection_name in self.failing or "*" in self.failing:
            raise DependencyError(f"Storage unavailable: {collection_name} unreachable")
        return self.collections.setdefault(collection_name, [])

    def _check_unique(self, collection_name, document, ignore_id=None):
        for field in UNIQUE_FIELDS.get(collection_name, ()):
            value = document.get(field)
            if value is None:
                continue
            for other in self.collections.get(collection_name, []):
                if other["_id"] != ignore_id and other.get(field) == value:
                    raise DuplicateKeyError(f"E11000 duplicate key error {collection_name}.{field}: {value}")

    async def get_all(self, collection_name, filter_query=None, skip=0, limit=100, sort=None):
        docs = [d for d in await self._enter(collection_name) if matches(d, filter_query or {})]
        for field, direction in reversed(sort or []):
            docs.sort(key=lambda d: _sort_key(_get_path(d, field)), reverse=direction < 0)
        return copy.deepcopy(docs[skip:skip + limit])

    async def get_by_id(self, collection_name, doc_id):
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        return await self.get_one(collection_name, {"_id": oid})

    async def get_one(self, collection_name, filter_query):
        for doc in await self._enter(collection_name):
            if matches(doc, filter_query):
                return copy.deepcopy(doc)
        return None

    async def create(self, collection_name, document):
        docs = await self._enter(collection_name)
        now = datetime.now(timezone.utc)
        document.setdefault("created_at", now)
        document["updated_at"] = now
        document["_id"] = ObjectId()
        self._check_unique(collection_name, document)
        docs.append(copy.deepcopy(document))
        return document

    async def update(self, collection_name, doc_id, update_data, unset=None):
        oid = to_object_id(doc_id)
        if oid is None:
            return None
        return await self.update_where(collection_name, {"_id": oid}, update_data, unset=unset)

    async def update_where(self, collection_name, filter_query, update_data, unset=None):
        for index, doc in enumerate(await self._enter(collection_name)):
            if not matches(doc, filter_query):
                continue
            updated = copy.deepcopy(doc)
            update_data["updated_at"] = datetime.now(timezone.utc)
            for path, value in update_data.items():
                _set_path(updated, path, copy.deepcopy(value))
            for path in unset or []:
                _unset_path(updated, path)
            self._check_unique(collection_name, updated, ignore_id=doc["_id"])
            self.collections[collection_name][index] = updated
            return copy.deepcopy(updated)
        return None

    async def increment(self, collection_name, doc_id, increments, extra_set=None, conditions=None):
        oid = to_object_id(doc_id)
        for index, doc in enumerate(await self._enter(collection_name)):
            if doc["_id"] != oid or not matches(doc, conditions or {}):
                continue
            updated = copy.deepcopy(doc)
            for path, amount in increments.items():
                current = _get_path(updated, path)
                _set_path(updated, path, (0 if current is _MISSING or current is None else current) + amount)
            for path, value in (extra_set or {}).items():
                _set_path(updated, path, copy.deepcopy(value))
            updated["updated_at"] = datetime.now(timezone.utc)
            self.collections[collection_name][index] = updated
            return copy.deepcopy(updated)
        return None

    async def delete(self, collection_name, doc_id):
        oid = to_object_id(doc_id)
        docs = await self._enter(collection_name)
        for index, doc in enumerate(docs):
            if doc["_id"] == oid:
                del docs[index]
                return True
        return False

    async def count(self, collection_name, filter_query=None):
        return len([d for d in await self._enter(collection_name) if matches(d, filter_query or {})])

    def all(self, collection_name):
        """Synchronous peek for assertions"""
        return copy.deepcopy(self.collections.get(collection_name, []))


def hours_from_now(hours):
    return datetime.now(timezone.utc).replace(microsecond=0) + timedelta(hours=hours)


@pytest.fixture
def anchor():
    """A whole hour ten days ahead, far from any pre-block window"""
    return (datetime.now(timezone.utc) + timedelta(days=10)).replace(minute=0, second=0, microsecond=0)


@pytest.fixture
def fake_db():
    return FakeDBOperations()


@pytest.fixture
async def pms(fake_db):
    await seed_default_periods(fake_db)
    context = build_context(fake_db, conflict_policy="fail_closed")
    await context.periods.refresh()
    return context


@pytest.fixture
def admin_user():
    return {"_id": ObjectId(), "name": "Admin", "email": "admin@motelpms.com.br", "role": "admin", "is_active": True}


@pytest.fixture
def make_room(fake_db):
    async def _make_room(number, category="standard", status="available", prices=None):
        return await fake_db.create(Collections.ROOMS, {
            "number": number,
            "category": category,
            "capacity": 2,
            "floor": number[0],
            "prices": prices if prices is not None else {"4h": 50.0, "6h": 70.0, "12h": 100.0, "daily": 150.0},
            "status": status,
            "is_active": True,
        })
    return _make_room


@pytest.fixture
def make_reservation(fake_db):
    async def _make_reservation(room, check_in, check_out, status="confirmed", customer_name="Ana", **extra):
        document = {
            "reservation_number": f"RES-TEST-{ObjectId()}",
            "room_id": str(room["_id"]),
            "room_number": room["number"],
            "customer_name": customer_name,
            "check_in": check_in,
            "check_out": check_out,
            "period_type": "4h",
            "period_name": "4 Horas",
            "total_price": 50.0,
            "payment_method": "cash",
            "status": status,
        }
        document.update(extra)
        return await fake_db.create(Collections.RESERVATIONS, document)
    return _make_reservation


@pytest.fixture
def make_product(fake_db):
    async def _make_product(name, price, stock, sku=None, category="bebidas", **extra):
        document = {
            "name": name, "category": category, "sku": sku, "price": price, "cost": 0.0,
            "stock": stock, "min_stock": 2, "total_sold": 0, "is_active": True,
        }
        document.update(extra)
        return await fake_db.create(Collections.PRODUCTS, document)
    return _make_product


@pytest.fixture
async def client(pms, admin_user):
    """HTTP client against the app, authenticated as ``client.user``"""
    from motel.main import app
    from motel.utils.auth import get_current_user

    app.state.pms = pms
    holder = {"user": admin_user}
    app.dependency_overrides[get_current_user] = lambda: holder["user"]
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        http.act_as = lambda user: holder.update(user=user)
        yield http
    app.dependency_overrides.clear()
