"""
============================================================================
RaceFi Backend v1.0.0
Auth API Endpoints
============================================================================

Reliability Level: L6 Critical
Input Constraints: Validated JSON bodies; Bearer token on /me routes
Side Effects: User writes, token issuance

ENDPOINTS:
    POST /api/v1/auth/register               - Create an account (role: user)
    POST /api/v1/auth/login                  - Exchange credentials for tokens
    GET  /api/v1/auth/me                     - Current user
    PUT  /api/v1/auth/me                     - Update name / email / password
    POST /api/v1/auth/forgot-password        - Issue a reset token (URL is logged)
    PUT  /api/v1/auth/reset-password/{token} - Set a new password
    POST /api/v1/auth/refresh                - Exchange a refresh token

ERROR CODES:
    AUTH-400: User already exists / invalid or expired reset token
    AUTH-401: Invalid email or password
    AUTH-404: No user with that email
    SEC-003: Invalid refresh token

============================================================================
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.api.errors import api_error
from app.auth.dependencies import get_current_user
from app.auth.security import (
    TokenError,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)
from app.database.session import get_db
from app.schemas.user import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    UserOut,
    UserRole,
)
from services.user_store import User, UserStore

logger = logging.getLogger(__name__)

router = APIRouter()

TOKEN_COOKIE = "token"


def _token_response(response: Response, user: User) -> Dict[str, Any]:
    token = create_access_token(user.id)
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        samesite="strict",
    )
    return {
        "success": True,
        "token": token,
        "refresh_token": create_refresh_token(user.id),
        "user": user.to_public(),
    }


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=201,
    summary="Register a new user",
)
def register(
    payload: RegisterRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    store = UserStore(db)
    if store.get_by_email(payload.email) is not None:
        raise api_error("AUTH-400", "User already exists", status_code=400)

    if payload.role and payload.role != UserRole.USER.value:
        logger.warning(
            f"[AUTH] Privileged role requested at registration, downgraded | "
            f"email={payload.email} | requested_role={payload.role}"
        )

    try:
        user = store.create(
            name=payload.name,
            email=payload.email,
            password_hash=hash_password(payload.password),
            role=UserRole.USER.value,
        )
    except IntegrityError:
        db.rollback()
        raise api_error("AUTH-400", "User already exists", status_code=400)

    logger.info(f"[AUTH] User registered | user_id={user.id}")
    return _token_response(response, user)


@router.post("/login", response_model=AuthResponse, summary="Log in")
def login(
    payload: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    user = UserStore(db).get_by_email(payload.email)
    if user is None or not verify_password(payload.password, user.password_hash):
        logger.warning(f"[AUTH] Failed login | email={payload.email}")
        raise api_error("AUTH-401", "Invalid email or password", status_code=401)

    logger.info(f"[AUTH] User logged in | user_id={user.id}")
    return _token_response(response, user)


@router.get("/me", response_model=UserOut, summary="Current user")
def get_me(user: User = Depends(get_current_user)) -> Dict[str, Any]:
    return user.to_public()


@router.put("/me", response_model=UserOut, summary="Update current user")
def update_me(
    payload: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return apply_profile_update(db, user, payload).to_public()


def apply_profile_update(db: Session, user: User, payload: ProfileUpdate) -> User:
    """Shared by /auth/me and /users/me."""
    try:
        updated = UserStore(db).update(
            user.id,
            name=payload.name,
            email=payload.email,
            password_hash=hash_password(payload.password) if payload.password else None,
        )
    except IntegrityError:
        raise api_error("AUTH-400", "Email is already in use", status_code=400)
    if updated is None:
        raise api_error("AUTH-404", "User not found", status_code=404)
    return updated


@router.post("/forgot-password", summary="Request a password reset")
def forgot_password(
    payload: ForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    store = UserStore(db)
    user = store.get_by_email(payload.email)
    if user is None:
        raise api_error("AUTH-404", "User not found", status_code=404)

    token, token_hash, expires_at = generate_reset_token()
    store.set_reset_token(user.id, token_hash, expires_at)

    reset_url = f"{str(request.base_url).rstrip('/')}/api/v1/auth/reset-password/{token}"
    # TODO: deliver reset_url by email once an SMTP provider is configured
    logger.info(
        f"[AUTH] Password reset URL issued | user_id={user.id} | "
        f"reset_url={reset_url} | expires_at={expires_at.isoformat()}"
    )
    return {"success": True, "message": "Password reset email sent"}


@router.put(
    "/reset-password/{token}",
    response_model=AuthResponse,
    summary="Reset password with a reset token",
)
def reset_password(
    token: str,
    payload: ResetPasswordRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    store = UserStore(db)
    user = store.get_by_reset_token(hash_reset_token(token), datetime.now(timezone.utc))
    if user is None:
        raise api_error("AUTH-400", "Invalid or expired token", status_code=400)

    store.complete_password_reset(user.id, hash_password(payload.password))
    logger.info(f"[AUTH] Password reset completed | user_id={user.id}")
    return _token_response(response, user)


@router.post("/refresh", summary="Exchange a refresh token for a new access token")
def refresh(payload: RefreshRequest, db: Session = Depends(get_db)) -> Dict[str, Any]:
    try:
        user_id = decode_refresh_token(payload.refresh_token)
    except TokenError as e:
        logger.warning(f"[{e.error_code}] Refresh rejected | {e.message}")
        raise api_error(
            e.error_code,
            "Invalid refresh token",
            status_code=500 if e.error_code == "SEC-002" else 401,
        )

    user = UserStore(db).get(user_id)
    if user is None:
        raise api_error("SEC-003", "Invalid refresh token", status_code=401)

    return {
        "success": True,
        "token": create_access_token(user.id),
        "refresh_token": create_refresh_token(user.id),
    }
