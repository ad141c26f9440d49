"""
============================================================================
RaceFi Backend v1.0.0
User API Endpoints
============================================================================

Reliability Level: STANDARD
Input Constraints: Bearer token; admin role for /users and /users/{id}
Side Effects: User writes

ENDPOINTS:
    GET    /api/v1/users/me             - Current user profile
    PUT    /api/v1/users/me             - Update current user profile
    GET    /api/v1/users/me/withdrawals - Current user's withdrawals
    GET    /api/v1/users                - List users (admin)
    GET    /api/v1/users/{id}           - Get user (admin)
    PUT    /api/v1/users/{id}           - Update user incl. role (admin)
    DELETE /api/v1/users/{id}           - Delete user (admin, not self)

============================================================================
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.auth import apply_profile_update
from app.api.errors import api_error
from app.api.withdrawals import get_gateway
from app.auth.dependencies import get_current_user, require_roles
from app.database.session import get_db
from app.schemas.user import AdminUserUpdate, ProfileUpdate, UserRole
from services.user_store import User, UserStore
from services.withdrawal_gateway import WithdrawalGateway

logger = logging.getLogger(__name__)

router = APIRouter()

require_admin = require_roles(UserRole.ADMIN.value)


def _user_not_found(user_id: str):
    return api_error("USR-404", f"User not found with id of {user_id}", status_code=404)


@router.get("/me", summary="Current user profile")
def get_my_profile(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return {"success": True, "data": user.to_public()}


@router.put("/me", summary="Update current user profile")
def update_my_profile(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    updated = apply_profile_update(db, user, payload)
    return {"success": True, "data": updated.to_public()}


@router.get("/me/withdrawals", summary="Current user's withdrawals")
def get_my_withdrawals(
    user: User = Depends(get_current_user),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    withdrawals = gateway.list_my_withdrawals(user)
    return {
        "success": True,
        "count": len(withdrawals),
        "data": [gateway.serialize(w) for w in withdrawals],
    }


@router.get("", summary="List users (admin)")
def list_users(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    users = UserStore(db).list()
    return {
        "success": True,
        "count": len(users),
        "data": [u.to_public() for u in users],
    }


@router.get("/{user_id}", summary="Get user (admin)")
def get_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    user = UserStore(db).get(user_id)
    if user is None:
        raise _user_not_found(user_id)
    return {"success": True, "data": user.to_public()}


@router.put("/{user_id}", summary="Update user (admin)")
def update_user(
    user_id: str,
    payload: AdminUserUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    store = UserStore(db)
    if store.get(user_id) is None:
        raise _user_not_found(user_id)

    try:
        updated = store.update(
            user_id,
            name=payload.name,
            email=payload.email,
            role=payload.role.value if payload.role else None,
        )
    except IntegrityError:
        raise api_error("AUTH-400", "Email is already in use", status_code=400)

    if payload.role is not None:
        logger.info(
            f"[USERS] Role changed | user_id={user_id} | "
            f"role={payload.role.value} | admin={admin.id}"
        )
    return {"success": True, "data": updated.to_public()}


@router.delete("/{user_id}", summary="Delete user (admin)")
def delete_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    store = UserStore(db)
    if store.get(user_id) is None:
        raise _user_not_found(user_id)
    if user_id == admin.id:
        raise api_error("USR-400", "You cannot delete your own account", status_code=400)

    store.delete(user_id)
    logger.info(f"[USERS] User deleted | user_id={user_id} | admin={admin.id}")
    return {"success": True, "data": {}}
