"""
Human-readable document numbers: PREFIX + local YYYYMMDD + 18 Crockford base32
characters (48 bits of millisecond time, 40 random bits).

Uniqueness is enforced by a unique index; inserts retry on a duplicate key.
"""
import logging
import secrets
from datetime import datetime
from typing import Awaitable, Callable, Dict, Optional

from pymongo.errors import DuplicateKeyError

from motel.utils.exceptions import DuplicateError
from motel.utils.helpers import to_local, utc_now

logger = logging.getLogger(__name__)

CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
MAX_INSERT_ATTEMPTS = 3


def _encode(value: int, length: int) -> str:
    chars = []
    for _ in range(length):
        value, index = divmod(value, 32)
        chars.append(CROCKFORD_ALPHABET[index])
    return "".join(reversed(chars))


def generate_number(prefix: str, now: Optional[datetime] = None) -> str:
    now = now or utc_now()
    millis = int(now.timestamp() * 1000) & ((1 << 48) - 1)
    suffix = _encode(millis, 10) + _encode(secrets.randbits(40), 8)
    return f"{prefix}{to_local(now).strftime('%Y%m%d')}{suffix}"


async def insert_with_number(insert: Callable[[Dict], Awaitable[Dict]], document: Dict,
                             field: str, prefix: str) -> Dict:
    """Insert document under a fresh number, retrying when the number collides"""
    for attempt in range(1, MAX_INSERT_ATTEMPTS + 1):
        document[field] = generate_number(prefix)
        try:
            return await insert(document)
        except DuplicateKeyError:
            logger.warning("⚠️ %s %s already taken (attempt %d)", field, document[field], attempt)
            document.pop("_id", None)
    raise DuplicateError(f"Could not allocate a unique {field}")
