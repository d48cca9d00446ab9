"""
Helper utility functions
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytz
from bson import ObjectId

from motel.config.settings import settings

MOTEL_TZ = pytz.timezone(settings.MOTEL_TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC; naive values are motel local time"""
    if value.tzinfo is None:
        value = MOTEL_TZ.localize(value)
    return value.astimezone(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Stored datetimes are UTC; older naive documents get tagged accordingly"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_local(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = pytz.utc.localize(value)
    return value.astimezone(MOTEL_TZ)


def local_day_start(value: datetime) -> datetime:
    """UTC instant of local midnight on the day of value"""
    local = to_local(value)
    return to_utc(datetime(local.year, local.month, local.day))


def local_month_start(value: datetime) -> datetime:
    local = to_local(value)
    return to_utc(datetime(local.year, local.month, 1))


def serialize_value(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        return to_local(value).isoformat()
    if isinstance(value, dict):
        return serialize_doc(value)
    if isinstance(value, list):
        return [serialize_value(item) for item in value]
    return value


def serialize_doc(doc: Optional[Dict]) -> Optional[Dict]:
    """Convert MongoDB document to JSON-serializable format"""
    if doc is None:
        return None
    return {key: serialize_value(value) for key, value in doc.items()}


def serialize_docs(docs: List[Dict]) -> List[Dict]:
    """Convert list of MongoDB documents to JSON-serializable format"""
    return [serialize_doc(doc) for doc in docs]


def strip_or_empty(value: Optional[str]) -> str:
    return value.strip() if isinstance(value, str) else ""
