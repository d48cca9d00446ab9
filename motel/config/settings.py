"""
Application settings and configuration
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: list) -> list:
    raw = os.getenv(name)
    if not raw:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


class Settings:
    # Application
    APP_NAME = os.getenv("APP_NAME", "Motel PMS")
    VERSION = "1.0.0"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Database
    MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
    DATABASE_NAME = os.getenv("DATABASE_NAME", "motel_db")
    STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "5.0"))

    # Security
    SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-change-in-production")
    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 12)))
    MAX_LOGIN_ATTEMPTS = 5
    LOGIN_LOCK_MINUTES = 15

    # CORS
    ALLOWED_ORIGINS = _env_list("ALLOWED_ORIGINS", [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ])

    # Motel operation
    MOTEL_TIMEZONE = os.getenv("MOTEL_TIMEZONE", "America/Sao_Paulo")
    # A reservation starting within this window blocks its room at creation time
    ROOM_PREBLOCK_HOURS = float(os.getenv("ROOM_PREBLOCK_HOURS", "2"))
    # "fail_open" lets bookings through when the conflict lookup fails, "fail_closed" rejects them
    CONFLICT_CHECK_POLICY = os.getenv("CONFLICT_CHECK_POLICY", "fail_closed")
    PERIOD_CACHE_TTL_SECONDS = float(os.getenv("PERIOD_CACHE_TTL_SECONDS", "300"))
    ROOM_SERVICE_CHARGE_RATE = 0.10

    # Pagination
    DEFAULT_PAGE_SIZE = 100
    MAX_PAGE_SIZE = 500


settings = Settings()
