"""
Database configuration and connection management for MongoDB
"""
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ASCENDING, DESCENDING

from motel.config.settings import settings

logger = logging.getLogger(__name__)


class DatabaseConfig:
    """MongoDB database configuration"""

    def __init__(self, mongo_uri: str = None, database_name: str = None):
        self.MONGO_URI = mongo_uri or settings.MONGO_URI
        self.DATABASE_NAME = database_name or settings.DATABASE_NAME
        self.client: Optional[AsyncIOMotorClient] = None
        self.database = None

    async def connect_db(self):
        """Connect to MongoDB"""
        try:
            # tz_aware keeps reservation timestamps comparable with aware UTC datetimes
            self.client = AsyncIOMotorClient(self.MONGO_URI, tz_aware=True)
            self.database = self.client[self.DATABASE_NAME]
            await self.client.admin.command("ping")
            logger.info("✅ Connected to MongoDB: %s", self.DATABASE_NAME)
        except Exception as e:
            logger.error("❌ Error connecting to MongoDB: %s", e)
            raise

    async def close_db(self):
        """Close MongoDB connection"""
        if self.client:
            self.client.close()
            logger.info("✅ MongoDB connection closed")

    def get_collection(self, collection_name: str):
        """Get a specific collection"""
        if self.database is None:
            raise RuntimeError("Database not connected")
        return self.database[collection_name]

    async def ensure_indexes(self):
        """Create the indexes the application relies on for uniqueness and lookups"""
        rooms = self.get_collection(Collections.ROOMS)
        await rooms.create_index("number", unique=True)
        await rooms.create_index([("status", ASCENDING), ("number", ASCENDING)])

        reservations = self.get_collection(Collections.RESERVATIONS)
        await reservations.create_index("reservation_number", unique=True)
        await reservations.create_index([("room_id", ASCENDING), ("status", ASCENDING)])
        await reservations.create_index([("created_at", DESCENDING)])
        await reservations.create_index("shift.shift_id")

        await self.get_collection(Collections.USERS).create_index("email", unique=True)
        await self.get_collection(Collections.PERIODS).create_index("period_type", unique=True)
        await self.get_collection(Collections.ORDERS).create_index("order_number", unique=True)
        await self.get_collection(Collections.PRODUCTS).create_index("sku", unique=True, sparse=True)
        await self.get_collection(Collections.CUSTOMERS).create_index("phone")
        logger.info("📇 Indexes ensured on %s", self.DATABASE_NAME)


# Collection names
class Collections:
    USERS = "users"
    ROOMS = "rooms"
    RESERVATIONS = "reservations"
    PERIODS = "periods"
    CUSTOMERS = "customers"
    PRODUCTS = "products"
    ORDERS = "orders"
