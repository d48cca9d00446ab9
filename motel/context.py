"""
Process-wide state of the PMS, built once in the application lifespan
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from motel.config.settings import settings
from motel.database.db_operations import DBOperations
from motel.database.repositories import ReservationRepository, RoomRepository
from motel.services.conflicts import AlternativeRoomFinder, ConflictDetector
from motel.services.customer_service import CustomerService
from motel.services.order_service import OrderService
from motel.services.period_catalog import PeriodCatalog
from motel.services.reservation_service import ReservationService
from motel.services.room_locks import RoomLockRegistry
from motel.services.room_status import RoomStatusReconciler
from motel.utils.helpers import utc_now
from motel.utils.permissions import PermissionTable


@dataclass
class PMSContext:
    db: DBOperations
    rooms: RoomRepository
    reservations: ReservationRepository
    detector: ConflictDetector
    finder: AlternativeRoomFinder
    reconciler: RoomStatusReconciler
    locks: RoomLockRegistry
    periods: PeriodCatalog
    permissions: PermissionTable
    customers: CustomerService
    reservation_service: ReservationService
    order_service: OrderService


def build_context(db: DBOperations, clock: Callable[[], datetime] = utc_now,
                  conflict_policy: Optional[str] = None,
                  permissions: Optional[PermissionTable] = None) -> PMSContext:
    policy = conflict_policy or settings.CONFLICT_CHECK_POLICY
    if policy not in ("fail_open", "fail_closed"):
        raise ValueError(f"CONFLICT_CHECK_POLICY must be fail_open or fail_closed, got {policy!r}")

    rooms = RoomRepository(db)
    reservations = ReservationRepository(db)
    detector = ConflictDetector(reservations, fail_open=policy == "fail_open")
    finder = AlternativeRoomFinder(rooms, detector)
    reconciler = RoomStatusReconciler(rooms, preblock_hours=settings.ROOM_PREBLOCK_HOURS, clock=clock)
    locks = RoomLockRegistry()
    periods = PeriodCatalog(db, ttl_seconds=settings.PERIOD_CACHE_TTL_SECONDS)
    customers = CustomerService(db)
    return PMSContext(
        db=db,
        rooms=rooms,
        reservations=reservations,
        detector=detector,
        finder=finder,
        reconciler=reconciler,
        locks=locks,
        periods=periods,
        permissions=permissions or PermissionTable(),
        customers=customers,
        reservation_service=ReservationService(
            rooms, reservations, detector, finder, reconciler, locks, periods, customers, clock=clock
        ),
        order_service=OrderService(db, reservations, clock=clock),
    )
