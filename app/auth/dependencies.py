"""
============================================================================
RaceFi Backend v1.0.0
Auth Dependencies - Bearer Authentication and Role Gating
============================================================================

Reliability Level: L6 Critical
Input Constraints: Authorization: Bearer <jwt>
Side Effects: Sets request.state.user_id for request logging

ERROR CODES:
    - SEC-001: Missing or malformed Authorization header (401)
    - SEC-002: Token secret misconfigured (500)
    - SEC-003: Invalid or expired token, or unknown user (401)
    - SEC-090: Role not permitted (403)

============================================================================
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from app.auth.security import TokenError, decode_access_token
from app.database.session import get_db
from services.user_store import User, UserStore

logger = logging.getLogger(__name__)


def _auth_error(status_code: int, error_code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error_code": error_code,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None, description="Bearer token"),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the authenticated user from a Bearer access token.

    Raises:
        HTTPException: 401 SEC-001 / SEC-003, 500 SEC-002
    """
    if not authorization:
        logger.warning("[SEC-001] Missing Authorization header")
        raise _auth_error(401, "SEC-001", "Not authorized to access this route")

    if not authorization.startswith("Bearer "):
        logger.warning(
            f"[SEC-001] Invalid authorization format: {authorization[:20]}..."
        )
        raise _auth_error(401, "SEC-001", "Invalid authorization format. Use: Bearer <token>")

    token = authorization[7:].strip()
    if not token:
        logger.warning("[SEC-001] Empty Bearer token")
        raise _auth_error(401, "SEC-001", "Empty Bearer token")

    try:
        user_id = decode_access_token(token)
    except TokenError as e:
        if e.error_code == "SEC-002":
            logger.error(f"[SEC-002] {e.message}")
            raise _auth_error(500, e.error_code, "Authentication is not configured")
        logger.warning(f"[{e.error_code}] {e.message}")
        raise _auth_error(401, e.error_code, "Not authorized to access this route")

    user = UserStore(db).get(user_id)
    if user is None:
        logger.warning(f"[SEC-003] Token subject no longer exists | user_id={user_id}")
        raise _auth_error(401, "SEC-003", "Not authorized to access this route")

    request.state.user_id = user.id
    return user


def require_roles(*roles: str) -> Callable[..., User]:
    """
    Build a dependency admitting only users holding one of roles.

    Usage:
        @router.get("/", dependencies=[Depends(require_roles("admin"))])
    """
    allowed = tuple(roles)

    def dependency(user: User = Depends(get_current_user)) -> User:
        if not user.has_role(*allowed):
            logger.warning(
                f"[SEC-090] Role not permitted | user_id={user.id} | "
                f"role={user.role} | allowed={list(allowed)}"
            )
            raise _auth_error(
                403,
                "SEC-090",
                f"User role {user.role} is not authorized to access this route",
            )
        return user

    return dependency
