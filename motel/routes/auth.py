import logging
from datetime import timedelta
from fastapi import APIRouter, Depends, HTTPException, status

from motel.config.database import Collections
from motel.config.settings import settings
from motel.context import PMSContext
from motel.dependencies import get_pms
from motel.models.user import LoginRequest, LoginResponse, UserResponse
from motel.utils.auth import get_current_user, token_for_user, verify_password
from motel.utils.helpers import ensure_utc, serialize_doc, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/login", response_model=LoginResponse)
async def login(credentials: LoginRequest, pms: PMSContext = Depends(get_pms)):
    """
    Authenticate a staff member by e-mail and password and return a JWT.
    Repeated failures lock the account for a while.
    """
    email = credentials.email.lower()
    user = await pms.db.get_one(Collections.USERS, {"email": email})
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    now = utc_now()
    locked_until = user.get("locked_until")
    if locked_until and ensure_utc(locked_until) > now:
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail="Account temporarily locked after repeated failed logins",
        )

    if not verify_password(credentials.password, user["password"]):
        attempts = user.get("failed_login_attempts", 0) + 1
        update = {"failed_login_attempts": attempts}
        if attempts >= settings.MAX_LOGIN_ATTEMPTS:
            update["locked_until"] = now + timedelta(minutes=settings.LOGIN_LOCK_MINUTES)
            update["failed_login_attempts"] = 0
            logger.warning("🔒 Account %s locked after %d failed logins", email, attempts)
        await pms.db.update(Collections.USERS, str(user["_id"]), update)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")

    if not user.get("is_active", True):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is deactivated")

    user = await pms.db.update(Collections.USERS, str(user["_id"]), {
        "failed_login_attempts": 0,
        "locked_until": None,
        "last_login": now,
    })
    logger.info("🔑 %s logged in (%s)", email, user["role"])
    return {
        "access_token": token_for_user(user),
        "token_type": "bearer",
        "user": serialize_doc(user),
    }


@router.get("/me", response_model=UserResponse)
async def me(current_user: dict = Depends(get_current_user)):
    return serialize_doc(current_user)


@router.get("/me/permissions")
async def my_permissions(current_user: dict = Depends(get_current_user), pms: PMSContext = Depends(get_pms)):
    role = current_user.get("role", "")
    return {"success": True, "role": role, "permissions": sorted(pms.permissions.permissions_for(role))}
