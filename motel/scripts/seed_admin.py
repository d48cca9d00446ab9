"""
Seed script to create the first admin account, the indexes and the default periods
"""
import asyncio
import os

from motel.config.database import Collections, DatabaseConfig
from motel.database.db_operations import DBOperations
from motel.services.period_catalog import seed_default_periods
from motel.utils.auth import hash_password

ADMIN_EMAIL = os.getenv("SEED_ADMIN_EMAIL", "admin@motelpms.com.br")
ADMIN_PASSWORD = os.getenv("SEED_ADMIN_PASSWORD", "admin123")


async def seed_first_admin():
    """Create the first admin user"""
    db_config = DatabaseConfig()
    await db_config.connect_db()
    try:
        await db_config.ensure_indexes()
        db = DBOperations(db_config)

        print("🌱 Seeding first admin user...")
        if await db.get_one(Collections.USERS, {"role": "admin"}):
            print("⚠️  An admin user already exists. Skipping...")
        else:
            await db.create(Collections.USERS, {
                "name": "System Administrator",
                "email": ADMIN_EMAIL,
                "role": "admin",
                "is_active": True,
                "failed_login_attempts": 0,
                "password": hash_password(ADMIN_PASSWORD),
            })
            print(f"✅ Created admin user: {ADMIN_EMAIL}")
            print("⚠️  IMPORTANT: Change the default password after first login!")

        seeded = await seed_default_periods(db)
        if seeded:
            print(f"✅ Seeded {seeded} default periods")
    finally:
        await db_config.close_db()


if __name__ == "__main__":
    asyncio.run(seed_first_admin())
