"""
Repositories for the documents the reservation core reads and writes.

Services talk to rooms and reservations only through these classes, which
keeps the Mongo query shapes in one place.
"""
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from motel.config.database import Collections
from motel.database.db_operations import DBOperations, to_object_id

ROOM_STATUSES = ("available", "occupied", "cleaning", "maintenance")
BOOKABLE_ROOM_STATUSES = ("available", "cleaning")

RESERVATION_STATUSES = ("pending", "confirmed", "checked-in", "checked-out", "cancelled")
# Reservations in these states own their [check_in, check_out) interval
BLOCKING_RESERVATION_STATUSES = ("confirmed", "checked-in")
NON_TERMINAL_RESERVATION_STATUSES = ("pending", "confirmed", "checked-in")


class RoomRepository:
    collection = Collections.ROOMS

    def __init__(self, db: DBOperations):
        self.db = db

    async def get(self, room_id: str) -> Optional[Dict]:
        return await self.db.get_by_id(self.collection, room_id)

    async def get_by_number(self, number: str) -> Optional[Dict]:
        return await self.db.get_one(self.collection, {"number": number})

    async def find_by_status(self, statuses: Iterable[str]) -> List[Dict]:
        """Rooms in any of the given statuses, room-number ascending"""
        return await self.db.get_all(
            self.collection,
            {"status": {"$in": list(statuses)}},
            limit=1000,
            sort=[("number", 1)],
        )

    async def first_bookable(self) -> Optional[Dict]:
        rooms = await self.find_by_status(BOOKABLE_ROOM_STATUSES)
        return rooms[0] if rooms else None

    async def list(self, filter_query: Optional[Dict] = None) -> List[Dict]:
        return await self.db.get_all(self.collection, filter_query or {}, limit=1000, sort=[("number", 1)])

    async def create(self, document: Dict) -> Dict:
        return await self.db.create(self.collection, document)

    async def update(self, room_id: str, update_data: Dict, unset: Optional[List[str]] = None) -> Optional[Dict]:
        return await self.db.update(self.collection, room_id, update_data, unset=unset)

    async def update_status(self, room_id: str, status: str, extra: Optional[Dict] = None,
                            unset: Optional[List[str]] = None) -> Optional[Dict]:
        update_data = dict(extra or {})
        update_data["status"] = status
        return await self.db.update(self.collection, room_id, update_data, unset=unset)

    async def delete(self, room_id: str) -> bool:
        return await self.db.delete(self.collection, room_id)

    async def count(self, filter_query: Optional[Dict] = None) -> int:
        return await self.db.count(self.collection, filter_query or {})


class ReservationRepository:
    collection = Collections.RESERVATIONS

    def __init__(self, db: DBOperations):
        self.db = db

    async def get(self, reservation_id: str) -> Optional[Dict]:
        return await self.db.get_by_id(self.collection, reservation_id)

    async def find_for_room(self, room_id: str, statuses: Iterable[str],
                            exclude_id: Optional[str] = None) -> List[Dict]:
        query: Dict = {"room_id": room_id, "status": {"$in": list(statuses)}}
        exclude_oid = to_object_id(exclude_id) if exclude_id else None
        if exclude_oid is not None:
            query["_id"] = {"$ne": exclude_oid}
        return await self.db.get_all(self.collection, query, limit=1000, sort=[("check_in", 1)])

    async def create(self, document: Dict) -> Dict:
        return await self.db.create(self.collection, document)

    async def update(self, reservation_id: str, update_data: Dict) -> Optional[Dict]:
        return await self.db.update(self.collection, reservation_id, update_data)

    async def update_status(self, reservation_id: str, expected_status: str, new_status: str,
                            extra: Optional[Dict] = None) -> Optional[Dict]:
        """Conditional status write; None when the stored status is no longer expected_status"""
        oid = to_object_id(reservation_id)
        if oid is None:
            return None
        update_data = dict(extra or {})
        update_data["status"] = new_status
        return await self.db.update_where(
            self.collection,
            {"_id": oid, "status": expected_status},
            update_data,
        )

    async def list(self, filter_query: Optional[Dict] = None, skip: int = 0, limit: int = 100) -> List[Dict]:
        return await self.db.get_all(self.collection, filter_query or {}, skip=skip, limit=limit,
                                     sort=[("created_at", -1)])

    async def count(self, filter_query: Optional[Dict] = None) -> int:
        return await self.db.count(self.collection, filter_query or {})

    async def count_active_for_room(self, room_id: str) -> int:
        return await self.db.count(self.collection, {
            "room_id": room_id,
            "status": {"$in": list(NON_TERMINAL_RESERVATION_STATUSES)},
        })

    async def in_window(self, start: datetime, end: datetime, field: str = "check_in",
                        statuses: Optional[Iterable[str]] = None) -> List[Dict]:
        query: Dict = {field: {"$gte": start, "$lt": end}}
        if statuses:
            query["status"] = {"$in": list(statuses)}
        return await self.db.get_all(self.collection, query, limit=1000, sort=[(field, 1)])
