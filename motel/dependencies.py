"""
FastAPI dependencies exposing the PMS context and permission checks
"""
from typing import Dict

from fastapi import Depends, HTTPException, Request, status

from motel.context import PMSContext
from motel.utils.auth import get_current_user


def get_pms(request: Request) -> PMSContext:
    return request.app.state.pms


def require_permission(permission: str):
    """Dependency factory: 403 unless the current user's role grants ``permission``"""

    async def checker(current_user: Dict = Depends(get_current_user),
                      pms: PMSContext = Depends(get_pms)) -> Dict:
        if not pms.permissions.allows(current_user.get("role", ""), permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission '{permission}' required",
            )
        return current_user

    return checker


def require_admin(current_user: Dict = Depends(get_current_user)) -> Dict:
    if current_user.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return current_user
