"""
HTTP tests for the reservation, room, dashboard, product, order, auth and health endpoints.
"""

import asyncio
from datetime import timedelta

import pytest
from bson import ObjectId

from motel.config.database import Collections
from motel.config.settings import settings
from motel.utils.auth import hash_password

from tests.conftest import hours_from_now


def reservation_body(room, check_in, hours=4, **extra):
    body = {
        "roomId": str(room["_id"]),
        "checkIn": check_in.isoformat(),
        "checkOut": (check_in + timedelta(hours=hours)).isoformat(),
        "periodType": "4h",
        "customerName": "Helena",
    }
    body.update(extra)
    return body


class TestReservationEndpoints:

    async def test_create_returns_201(self, client, make_room, anchor):
        room = await make_room("101")
        response = await client.post("/api/reservations/", json=reservation_body(room, anchor))
        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["roomChanged"] is False
        assert data["data"]["status"] == "confirmed"
        assert data["data"]["room_number"] == "101"

    async def test_create_reports_room_change(self, client, make_room, make_reservation, anchor):
        taken = await make_room("101")
        await make_room("102")
        await make_reservation(taken, anchor, anchor + timedelta(hours=4))
        response = await client.post("/api/reservations/", json=reservation_body(taken, anchor))
        assert response.status_code == 201
        data = response.json()
        assert data["roomChanged"] is True
        assert data["data"]["room_number"] == "102"
        assert "101" in data["message"]

    async def test_conflict_payload(self, client, make_room, make_reservation, anchor):
        room = await make_room("101")
        await make_reservation(room, anchor, anchor + timedelta(hours=4), customer_name="Ivo")
        response = await client.post("/api/reservations/", json=reservation_body(room, anchor + timedelta(hours=1)))
        assert response.status_code == 409
        data = response.json()
        assert data["success"] is False
        assert data["originalRoom"] == "101"
        assert data["suggestedRooms"] == []
        assert data["conflicts"][0]["customerName"] == "Ivo"

    async def test_unknown_payment_method_is_422(self, client, make_room, anchor):
        room = await make_room("101")
        response = await client.post("/api/reservations/",
                                     json=reservation_body(room, anchor, paymentMethod="cheque"))
        assert response.status_code == 422

    async def test_check_conflicts_dry_run(self, client, fake_db, make_room, make_reservation, anchor):
        room = await make_room("101", category="suite")
        await make_room("102", category="suite")
        await make_reservation(room, anchor, anchor + timedelta(hours=4))
        before = len(fake_db.all(Collections.RESERVATIONS))
        response = await client.post("/api/reservations/check-conflicts", json={
            "roomId": str(room["_id"]),
            "checkIn": (anchor + timedelta(hours=2)).isoformat(),
            "checkOut": (anchor + timedelta(hours=6)).isoformat(),
        })
        assert response.status_code == 200
        data = response.json()
        assert data["hasConflict"] is True
        assert data["roomNumber"] == "101"
        assert [room["roomNumber"] for room in data["alternatives"]] == ["102"]
        assert data["alternatives"][0]["isRecommended"] is True
        assert len(fake_db.all(Collections.RESERVATIONS)) == before

    async def test_invalid_transition_is_400(self, client, make_room, make_reservation, anchor):
        room = await make_room("101")
        reservation = await make_reservation(room, anchor, anchor + timedelta(hours=4), status="cancelled")
        response = await client.patch(f"/api/reservations/{reservation['_id']}/status",
                                      json={"status": "checked-in"})
        assert response.status_code == 400
        assert response.json()["currentStatus"] == "cancelled"

    async def test_housekeeping_cannot_check_in(self, client, make_room, make_reservation, anchor):
        room = await make_room("101")
        reservation = await make_reservation(room, anchor, anchor + timedelta(hours=4))
        client.act_as({"_id": ObjectId(), "name": "Julia", "role": "camareira", "is_active": True})
        response = await client.patch(f"/api/reservations/{reservation['_id']}/status",
                                      json={"status": "checked-in"})
        assert response.status_code == 403

    async def test_storage_outage_is_503_with_retry_after(self, client, fake_db, make_room, anchor):
        room = await make_room("101")
        fake_db.failing.add(Collections.RESERVATIONS)
        response = await client.post("/api/reservations/", json=reservation_body(room, anchor))
        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        assert fake_db.all(Collections.RESERVATIONS) == []


class TestRoomEndpoints:

    async def test_delete_blocked_by_active_reservation(self, client, fake_db, make_room, make_reservation, anchor):
        room = await make_room("101")
        await make_reservation(room, anchor, anchor + timedelta(hours=4))
        response = await client.delete(f"/api/rooms/{room['_id']}")
        assert response.status_code == 409
        assert len(fake_db.all(Collections.ROOMS)) == 1

    @pytest.mark.parametrize("delete_first", [True, False])
    async def test_delete_and_booking_race(self, client, fake_db, make_room, anchor, delete_first):
        """Deleting a room while it is being booked never leaves a reservation on a missing room."""
        room = await make_room("101")
        delete = client.delete(f"/api/rooms/{room['_id']}")
        create = client.post("/api/reservations/", json=reservation_body(room, anchor))
        if delete_first:
            deleted, created = await asyncio.gather(delete, create)
        else:
            created, deleted = await asyncio.gather(create, delete)

        rooms_left = fake_db.all(Collections.ROOMS)
        booked = [r for r in fake_db.all(Collections.RESERVATIONS) if r["room_id"] == str(room["_id"])]
        assert (deleted.status_code, created.status_code) in ((200, 404), (409, 201))
        if rooms_left:
            assert len(booked) == 1
        else:
            assert booked == []

    async def test_unknown_room_is_404(self, client):
        response = await client.get("/api/rooms/64b000000000000000000000")
        assert response.status_code == 404

    async def test_mark_clean(self, client, make_room):
        room = await make_room("101", status="cleaning")
        response = await client.patch(f"/api/rooms/{room['_id']}/clean")
        assert response.status_code == 200
        assert response.json()["data"]["status"] == "available"


class TestDashboardEndpoint:

    async def test_overview(self, client, make_room, make_reservation, make_product, anchor):
        occupied = await make_room("101", status="occupied")
        await make_room("102", status="cleaning")
        await make_room("103", status="maintenance")
        free = await make_room("104")
        await make_reservation(occupied, hours_from_now(-1), hours_from_now(3), status="checked-in")
        await make_reservation(free, anchor, anchor + timedelta(hours=4), status="pending")
        await make_product("Cerveja", 8.0, 1)
        await make_product("Agua", 4.0, 20)

        response = await client.get("/api/dashboard/overview")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["rooms"]["total"] == 4
        assert data["rooms"]["byStatus"] == {"available": 1, "occupied": 1, "cleaning": 1, "maintenance": 1}
        assert data["rooms"]["occupancyRate"] == 25.0
        assert data["reservations"]["checkedIn"] == 1
        assert data["reservations"]["pending"] == 1
        assert data["lowStockProducts"] == 1
        assert sorted(alert["type"] for alert in data["alerts"]) == ["cleaning", "maintenance", "stock"]
        assert data["periodCatalog"]["source"]

    async def test_quiet_day_has_no_alerts(self, client, make_room):
        await make_room("101")
        data = (await client.get("/api/dashboard/overview")).json()["data"]
        assert data["alerts"] == []
        assert data["rooms"]["occupancyRate"] == 0.0

    async def test_housekeeping_cannot_view(self, client):
        client.act_as({"_id": ObjectId(), "name": "Julia", "role": "camareira", "is_active": True})
        response = await client.get("/api/dashboard/overview")
        assert response.status_code == 403


class TestProductEndpoints:

    async def test_available_for_room(self, client, make_room, make_product):
        await make_room("101")
        await make_room("102")
        await make_product("Cerveja", 8.0, 5, available_rooms=[])
        await make_product("Batata", 6.0, 3, category="snacks")
        await make_product("Espumante", 120.0, 2, available_rooms=["102"])
        await make_product("Refrigerante", 6.0, 0)
        await make_product("Vodka", 15.0, 4, is_active=False)

        response = await client.get("/api/products/available/101")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["roomNumber"] == "101"
        assert data["totalProducts"] == 2
        assert {category: [p["name"] for p in products] for category, products in data["categories"].items()} == {
            "bebidas": ["Cerveja"], "snacks": ["Batata"],
        }

        data = (await client.get("/api/products/available/102", params={"category": "bebidas"})).json()["data"]
        assert [p["name"] for p in data["categories"]["bebidas"]] == ["Cerveja", "Espumante"]
        assert data["totalProducts"] == 2

    async def test_available_for_unknown_room(self, client):
        response = await client.get("/api/products/available/999")
        assert response.status_code == 404

    async def test_stats_overview(self, client, make_product):
        await make_product("Cerveja", 8.0, 10, cost=3.0, total_sold=4)
        await make_product("Batata", 6.0, 5, category="snacks", cost=2.0, is_active=False)

        response = await client.get("/api/products/stats/overview")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["totalProducts"] == 2
        assert data["activeProducts"] == 1
        assert data["totalStockValue"] == 40.0
        assert data["totalRetailValue"] == 110.0
        assert data["byCategory"]["bebidas"] == {"count": 1, "totalStock": 10, "stockValue": 30.0}
        assert [p["name"] for p in data["topSellers"]] == ["Cerveja"]

    async def test_stock_subtract_below_zero_is_400(self, client, fake_db, make_product):
        soda = await make_product("Refrigerante", 6.0, 2)
        response = await client.patch(f"/api/products/{soda['_id']}/stock",
                                      json={"operation": "subtract", "quantity": 3})
        assert response.status_code == 400
        assert fake_db.all(Collections.PRODUCTS)[0]["stock"] == 2

        response = await client.patch(f"/api/products/{soda['_id']}/stock",
                                      json={"operation": "subtract", "quantity": 1, "reason": "breakage"})
        assert response.status_code == 200
        body = response.json()
        assert body["data"]["stock"] == 1
        assert body["lowStock"] is True


class TestOrderEndpoints:

    @pytest.fixture
    async def stay(self, make_room, make_reservation):
        await make_room("102")
        room = await make_room("101", status="occupied")
        return await make_reservation(room, hours_from_now(-1), hours_from_now(3), status="checked-in")

    async def place(self, client, stay, product, quantity):
        response = await client.post("/api/orders/", json={
            "reservationId": str(stay["_id"]),
            "items": [{"productId": str(product["_id"]), "quantity": quantity}],
        })
        assert response.status_code == 201
        return response.json()["data"]

    async def test_room_history_and_stats(self, client, stay, make_product):
        beer = await make_product("Cerveja", 8.0, 10)
        delivered = await self.place(client, stay, beer, 2)
        await self.place(client, stay, beer, 1)
        for step in ("confirm", "prepare", "ready", "deliver"):
            response = await client.patch(f"/api/orders/{delivered['_id']}/{step}")
            assert response.status_code == 200

        data = (await client.get("/api/orders/room/101")).json()["data"]
        assert data["roomNumber"] == "101"
        assert sorted(order["status"] for order in data["orders"]) == ["delivered", "pending"]
        data = (await client.get("/api/orders/room/101", params={"status": "delivered"})).json()["data"]
        assert [order["_id"] for order in data["orders"]] == [delivered["_id"]]
        assert (await client.get("/api/orders/room/102")).json()["data"]["orders"] == []

        response = await client.get("/api/orders/stats/overview")
        assert response.status_code == 200
        stats = response.json()["data"]
        assert stats["todayOrders"] == 2
        assert stats["byStatus"]["delivered"] == 1
        assert stats["activeOrders"] == 1
        assert stats["monthlyRevenue"] == {"total": 16.0, "count": 1, "average": 16.0}
        assert [(p["name"], p["quantity"]) for p in stats["topProducts"]] == [("Cerveja", 2)]

    async def test_last_unit_sold_once(self, client, fake_db, stay, make_product):
        wine = await make_product("Vinho", 90.0, 1)
        body = {"reservationId": str(stay["_id"]), "items": [{"productId": str(wine["_id"]), "quantity": 1}]}
        responses = await asyncio.gather(client.post("/api/orders/", json=body),
                                         client.post("/api/orders/", json=body))
        assert sorted(response.status_code for response in responses) == [201, 400]
        assert fake_db.all(Collections.PRODUCTS)[0]["stock"] == 0


class TestAuthAndHealth:

    async def test_login_lockout(self, client, fake_db):
        await fake_db.create(Collections.USERS, {
            "name": "Karen", "email": "karen@motelpms.com.br", "role": "recepcionista", "is_active": True,
            "failed_login_attempts": 0, "password": hash_password("correct-horse"),
        })
        for _ in range(settings.MAX_LOGIN_ATTEMPTS):
            response = await client.post("/api/auth/login",
                                         json={"email": "karen@motelpms.com.br", "password": "wrong"})
            assert response.status_code == 401

        response = await client.post("/api/auth/login",
                                     json={"email": "karen@motelpms.com.br", "password": "correct-horse"})
        assert response.status_code == 423

    async def test_login_success(self, client, fake_db):
        await fake_db.create(Collections.USERS, {
            "name": "Leo", "email": "leo@motelpms.com.br", "role": "cozinha", "is_active": True,
            "failed_login_attempts": 0, "password": hash_password("s3cret!"),
        })
        response = await client.post("/api/auth/login", json={"email": "leo@motelpms.com.br", "password": "s3cret!"})
        assert response.status_code == 200
        data = response.json()
        assert data["access_token"]
        assert data["user"]["role"] == "cozinha"
        assert "password" not in data["user"]

    async def test_health_reports_degraded_catalog(self, client, fake_db, pms):
        response = await client.get("/health")
        assert response.json()["status"] == "healthy"

        fake_db.failing.add(Collections.PERIODS)
        await pms.periods.refresh()
        response = await client.get("/health")
        data = response.json()
        assert data["status"] == "degraded"
        assert data["periodCatalog"]["source"] == "stale"
