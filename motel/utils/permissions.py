"""
Role -> permission table for staff accounts.

Built once at startup and held in the PMS context; handlers reach it
through the require_permission dependency in motel.dependencies.
"""
from typing import Dict, FrozenSet, Iterable, List, Optional

ROLES = ("admin", "recepcionista", "camareira", "cozinha")

DEFAULT_ROLE_PERMISSIONS: Dict[str, List[str]] = {
    "admin": ["*"],
    "recepcionista": [
        "reservations.view", "reservations.create", "reservations.edit",
        "reservations.checkin", "reservations.checkout", "reservations.cancel",
        "orders.view", "orders.create", "orders.manage",
        "products.view",
        "rooms.view", "rooms.status",
        "customers.view", "customers.manage",
        "periods.view",
        "dashboard.view",
    ],
    "camareira": [
        "rooms.view", "rooms.status", "rooms.cleaning",
        "reservations.view",
        "orders.view", "orders.deliver",
    ],
    "cozinha": [
        "orders.view", "orders.manage",
        "products.view", "inventory.view",
    ],
}

ROLE_INFO = {
    "admin": {"name": "Administrador", "description": "Full system access"},
    "recepcionista": {"name": "Recepcionista", "description": "Front desk: reservations and guests"},
    "camareira": {"name": "Camareira", "description": "Housekeeping: cleaning and maintenance"},
    "cozinha": {"name": "Cozinha", "description": "Kitchen: order preparation"},
}

# Permission needed to move a reservation into each status
RESERVATION_STATUS_PERMISSIONS = {
    "confirmed": "reservations.edit",
    "checked-in": "reservations.checkin",
    "checked-out": "reservations.checkout",
    "cancelled": "reservations.cancel",
}


class PermissionTable:
    def __init__(self, role_permissions: Optional[Dict[str, Iterable[str]]] = None):
        source = role_permissions if role_permissions is not None else DEFAULT_ROLE_PERMISSIONS
        self._table: Dict[str, FrozenSet[str]] = {role: frozenset(codes) for role, codes in source.items()}

    def permissions_for(self, role: str) -> FrozenSet[str]:
        return self._table.get(role, frozenset())

    def allows(self, role: str, permission: str) -> bool:
        granted = self.permissions_for(role)
        if "*" in granted or permission in granted:
            return True
        # "orders.*" style grants cover the whole module
        module = permission.split(".", 1)[0]
        return f"{module}.*" in granted

    def roles(self) -> List[Dict]:
        return [
            {"id": role, **ROLE_INFO.get(role, {"name": role, "description": ""}),
             "permissions": sorted(self.permissions_for(role))}
            for role in self._table
        ]
