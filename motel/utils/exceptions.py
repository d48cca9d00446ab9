"""
Service-level errors, rendered to JSON by the handler registered in main.py
"""
from typing import Any, Dict, List, Optional


class PMSError(Exception):
    """Base error carrying an HTTP status and an optional structured payload"""

    status_code = 500

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}


class ValidationError(PMSError):
    status_code = 400


class NotFoundError(PMSError):
    status_code = 404


class DuplicateError(PMSError):
    status_code = 409


class InUseError(PMSError):
    """Resource is still referenced by active records"""

    status_code = 409


class ReservationConflictError(PMSError):
    """No conflict-free room could be found for the requested interval"""

    status_code = 409

    def __init__(self, message: str, conflicts: List[Dict], suggested_rooms: Optional[List[Dict]] = None,
                 original_room: Optional[str] = None):
        super().__init__(message, {
            "conflicts": conflicts,
            "suggestedRooms": suggested_rooms or [],
            "originalRoom": original_room,
        })
        self.conflicts = conflicts


class DependencyError(PMSError):
    """Storage unavailable; the caller may retry"""

    status_code = 503


class StorageTimeoutError(DependencyError):
    pass
