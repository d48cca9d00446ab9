"""
Period catalog - cached lookup table of bookable period types.

Active periods are loaded from the periods collection and kept for
PERIOD_CACHE_TTL_SECONDS. When loading fails the catalog keeps serving the
last good snapshot, or the built-in defaults when it never loaded, and
reports itself as degraded until a load succeeds again.
"""
import asyncio
import logging
import time
from copy import deepcopy
from typing import Callable, Dict, List, Optional

from motel.config.database import Collections
from motel.database.db_operations import DBOperations
from motel.utils.exceptions import DependencyError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Retry interval while degraded, capped by the regular TTL
DEGRADED_RETRY_SECONDS = 30

DEFAULT_PERIODS: List[Dict] = [
    {"period_type": "4h", "name": "4 Horas", "kind": "hourly", "duration_hours": 4,
     "base_price": 55.0, "available_today": True, "available_scheduled": False, "order": 1},
    {"period_type": "6h", "name": "6 Horas", "kind": "hourly", "duration_hours": 6,
     "base_price": 70.0, "available_today": True, "available_scheduled": False, "order": 2},
    {"period_type": "12h", "name": "12 Horas", "kind": "hourly", "duration_hours": 12,
     "base_price": 90.0, "available_today": True, "available_scheduled": False, "order": 3},
    {"period_type": "daily", "name": "Diária", "kind": "daily", "check_in_time": "14:00",
     "check_out_time": "12:00", "base_price": 120.0, "available_today": True,
     "available_scheduled": True, "order": 4},
    {"period_type": "pernoite", "name": "Pernoite", "kind": "overnight", "check_in_time": "20:00",
     "check_out_time": "12:00", "base_price": 100.0, "available_today": False,
     "available_scheduled": True, "order": 5},
]


def default_periods() -> Dict[str, Dict]:
    return {period["period_type"]: dict(period, active=True) for period in deepcopy(DEFAULT_PERIODS)}


class PeriodCatalog:
    def __init__(self, db: DBOperations, ttl_seconds: float = 300,
                 monotonic: Callable[[], float] = time.monotonic):
        self.db = db
        self.ttl_seconds = ttl_seconds
        self._monotonic = monotonic
        self._periods: Optional[Dict[str, Dict]] = None
        self._loaded_at: Optional[float] = None
        self._lock = asyncio.Lock()
        self.source = "empty"
        self.degraded = False
        self.degraded_reason: Optional[str] = None

    def _is_fresh(self) -> bool:
        if self._periods is None or self._loaded_at is None:
            return False
        max_age = min(self.ttl_seconds, DEGRADED_RETRY_SECONDS) if self.degraded else self.ttl_seconds
        return self._monotonic() - self._loaded_at < max_age

    async def get(self) -> Dict[str, Dict]:
        """Active periods keyed by period_type, reloaded when the cache is stale"""
        if self._is_fresh():
            return self._periods
        return await self.refresh()

    async def refresh(self) -> Dict[str, Dict]:
        async with self._lock:
            try:
                docs = await self.db.get_all(Collections.PERIODS, {"active": True}, limit=200,
                                             sort=[("order", 1)])
            except DependencyError as exc:
                self.degraded = True
                self.degraded_reason = str(exc)
                if self._periods is None:
                    self._periods = default_periods()
                    self.source = "defaults"
                else:
                    self.source = "stale"
                self._loaded_at = self._monotonic()
                logger.warning("⚠️ Period catalog degraded, serving %s periods: %s", self.source, exc)
                return self._periods

            self._periods = {doc["period_type"]: doc for doc in docs}
            self._loaded_at = self._monotonic()
            if self.degraded:
                logger.info("✅ Period catalog recovered")
            self.source = "database"
            self.degraded = False
            self.degraded_reason = None
            logger.debug("Period catalog loaded %d period(s)", len(self._periods))
            return self._periods

    async def resolve(self, period_type: str) -> Dict:
        """Return the active period for a code or raise ValidationError"""
        periods = await self.get()
        period = periods.get(period_type)
        if period is None:
            valid = ", ".join(periods) or "none configured"
            raise ValidationError(f"Invalid periodType '{period_type}'. Valid types: {valid}",
                                  {"validPeriodTypes": list(periods)})
        return period

    async def available_for(self, scheduled: bool) -> List[Dict]:
        """Periods offerable for today's walk-ins or for scheduled bookings"""
        key = "available_scheduled" if scheduled else "available_today"
        periods = await self.get()
        return sorted((p for p in periods.values() if p.get(key, True)),
                      key=lambda p: p.get("order", 0))

    def status(self) -> Dict:
        age = None
        if self._loaded_at is not None:
            age = round(self._monotonic() - self._loaded_at, 1)
        return {
            "degraded": self.degraded,
            "reason": self.degraded_reason,
            "source": self.source,
            "periodCount": len(self._periods or {}),
            "ageSeconds": age,
            "ttlSeconds": self.ttl_seconds,
        }


def resolve_price(period: Dict, room: Optional[Dict] = None, override: Optional[float] = None) -> float:
    """Explicit override, then the room's price table, then the period base price"""
    if override is not None and override > 0:
        return round(float(override), 2)
    period_type = period["period_type"]
    if room:
        room_price = (room.get("prices") or {}).get(period_type)
        if room_price is not None:
            return round(float(room_price), 2)
    base_price = period.get("base_price")
    if base_price is None:
        raise ValidationError(f"No price configured for period '{period_type}'")
    return round(float(base_price), 2)


async def seed_default_periods(db: DBOperations) -> int:
    """Insert the built-in periods when the collection is empty"""
    if await db.count(Collections.PERIODS, {}) > 0:
        return 0
    for period in default_periods().values():
        await db.create(Collections.PERIODS, period)
    logger.info("✅ Seeded %d default periods", len(DEFAULT_PERIODS))
    return len(DEFAULT_PERIODS)


async def get_period_or_404(db: DBOperations, period_id: str) -> Dict:
    period = await db.get_by_id(Collections.PERIODS, period_id)
    if not period:
        raise NotFoundError("Period not found")
    return period
