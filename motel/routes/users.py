import logging
from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
from pymongo.errors import DuplicateKeyError

from motel.config.database import Collections
from motel.context import PMSContext
from motel.dependencies import get_pms, require_admin
from motel.models.user import PasswordChange, UserCreate, UserResponse, UserUpdate
from motel.utils.auth import get_current_user, hash_password, verify_password
from motel.utils.exceptions import DuplicateError, NotFoundError
from motel.utils.helpers import serialize_doc

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


def _public(user: dict) -> dict:
    user = dict(user)
    user.pop("password", None)
    return serialize_doc(user)


async def _get_user_or_404(pms: PMSContext, user_id: str) -> dict:
    user = await pms.db.get_by_id(Collections.USERS, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


@router.get("/", response_model=List[UserResponse])
async def list_users(current_user: dict = Depends(require_admin), pms: PMSContext = Depends(get_pms)):
    users = await pms.db.get_all(Collections.USERS, {}, limit=500, sort=[("name", 1)])
    return [_public(user) for user in users]


@router.get("/roles")
async def list_roles(current_user: dict = Depends(get_current_user), pms: PMSContext = Depends(get_pms)):
    """Roles and the permissions each one grants"""
    return {"success": True, "data": pms.permissions.roles()}


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(user: UserCreate, current_user: dict = Depends(require_admin),
                      pms: PMSContext = Depends(get_pms)):
    email = user.email.lower()
    if await pms.db.get_one(Collections.USERS, {"email": email}):
        raise DuplicateError(f"User with email {email} already exists")
    document = user.model_dump()
    document["email"] = email
    document["password"] = hash_password(user.password)
    document["failed_login_attempts"] = 0
    document["created_by"] = str(current_user.get("_id", ""))
    try:
        created = await pms.db.create(Collections.USERS, document)
    except DuplicateKeyError:
        raise DuplicateError(f"User with email {email} already exists")
    logger.info("👤 User %s created with role %s", email, user.role)
    return _public(created)


@router.put("/{user_id}", response_model=UserResponse)
async def update_user(user_id: str, user_update: UserUpdate, current_user: dict = Depends(get_current_user),
                      pms: PMSContext = Depends(get_pms)):
    """Admins edit anyone; other staff may only edit their own name and e-mail"""
    is_admin = current_user.get("role") == "admin"
    if not is_admin and str(current_user.get("_id")) != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only edit your own account")
    await _get_user_or_404(pms, user_id)
    update_data = user_update.model_dump(exclude_unset=True)
    if "role" in update_data and not is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can change roles")
    if not update_data:
        raise HTTPException(status_code=400, detail="No fields to update")
    if update_data.get("email"):
        update_data["email"] = update_data["email"].lower()
        clash = await pms.db.get_one(Collections.USERS, {"email": update_data["email"]})
        if clash and str(clash["_id"]) != user_id:
            raise DuplicateError(f"User with email {update_data['email']} already exists")
    updated = await pms.db.update(Collections.USERS, user_id, update_data)
    return _public(updated)


@router.patch("/{user_id}/active", response_model=UserResponse)
async def toggle_user_active(user_id: str, current_user: dict = Depends(require_admin),
                             pms: PMSContext = Depends(get_pms)):
    if str(current_user.get("_id")) == user_id:
        raise HTTPException(status_code=400, detail="You cannot deactivate your own account")
    user = await _get_user_or_404(pms, user_id)
    updated = await pms.db.update(Collections.USERS, user_id, {"is_active": not user.get("is_active", True)})
    logger.info("👤 User %s is_active=%s", user.get("email"), updated.get("is_active"))
    return _public(updated)


@router.patch("/{user_id}/password")
async def change_password(user_id: str, change: PasswordChange, current_user: dict = Depends(get_current_user),
                          pms: PMSContext = Depends(get_pms)):
    """Self-service change needs the current password; admins can reset anyone's"""
    is_self = str(current_user.get("_id")) == user_id
    if not is_self and current_user.get("role") != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only change your own password")
    user = await _get_user_or_404(pms, user_id)
    if is_self and not verify_password(change.current_password or "", user["password"]):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    await pms.db.update(Collections.USERS, user_id, {"password": hash_password(change.new_password)})
    return {"success": True, "message": "Password updated"}
