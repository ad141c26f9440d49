"""
============================================================================
RaceFi Backend v1.0.0
Withdrawal API Endpoints
============================================================================

Reliability Level: L6 Critical
Input Constraints:
    - Bearer token authentication required
    - withdrawer or admin role to confirm / execute
    - admin role to list all and cancel
    - Decimal amounts as strings (no floats)
Side Effects:
    - Database writes to withdrawals / withdrawal_confirmations
    - Audit log entries for every transition
    - Vault calls on execution
    - Prometheus metrics updates

ENDPOINTS:
    POST /api/v1/withdrawals                - Request a withdrawal
    GET  /api/v1/withdrawals                - List withdrawals (admin)
    GET  /api/v1/withdrawals/pending        - Pending, oldest first
    GET  /api/v1/withdrawals/me/withdrawals - Caller's withdrawals
    GET  /api/v1/withdrawals/{id}           - Get one (owner or admin)
    PUT  /api/v1/withdrawals/{id}/confirm   - Confirm (withdrawer/admin)
    PUT  /api/v1/withdrawals/{id}/execute   - Execute (withdrawer/admin)
    PUT  /api/v1/withdrawals/{id}/cancel    - Cancel (admin)

ERROR CODES:
    WDR-001 (400), WDR-010 (425), WDR-020 (409), WDR-030 (409),
    WDR-040 (423), WDR-050 (502), WDR-404 (404), SEC-090 (401/403),
    RATE-001 (429)

============================================================================
"""

import logging
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.errors import api_error
from app.auth.dependencies import get_current_user, require_roles
from app.database.session import get_db
from app.schemas.user import UserRole
from app.schemas.withdrawal import WithdrawalCancel, WithdrawalCreate
from services.user_store import User
from services.withdrawal_gateway import WithdrawalGateway
from services.withdrawal_models import WithdrawalErrorCode, WithdrawalResult, WithdrawalStatus

logger = logging.getLogger(__name__)

router = APIRouter()

require_admin = require_roles(UserRole.ADMIN.value)
require_withdrawer = require_roles(UserRole.WITHDRAWER.value, UserRole.ADMIN.value)


# ============================================================================
# Rate Limiting State (In-Memory)
# ============================================================================

# Key: "user_id:withdrawal_id", Value: timestamp of last confirm
_rate_limit_cache: Dict[str, float] = {}


def _check_rate_limit(user_id: str, withdrawal_id: str, cooldown_seconds: float) -> bool:
    """
    Check if a user is inside the confirm cooldown for this withdrawal.

    Returns True if the action is allowed, False if rate-limited.
    Side Effects: Updates rate limit cache
    """
    cache_key = f"{user_id}:{withdrawal_id}"
    current_time = time.time()

    last_action_time = _rate_limit_cache.get(cache_key)
    if last_action_time is not None and current_time - last_action_time < cooldown_seconds:
        return False

    _rate_limit_cache[cache_key] = current_time

    # Drop entries older than 60 seconds
    stale = [k for k, v in _rate_limit_cache.items() if current_time - v > 60.0]
    for k in stale:
        del _rate_limit_cache[k]

    return True


def reset_rate_limits() -> None:
    _rate_limit_cache.clear()


# ============================================================================
# Dependencies / helpers
# ============================================================================

def get_gateway(db: Session = Depends(get_db)) -> WithdrawalGateway:
    return WithdrawalGateway(db)


def _unwrap(
    result: WithdrawalResult,
    status_overrides: Optional[Dict[str, int]] = None,
) -> None:
    if not result.success:
        raise api_error(
            result.error_code,
            result.error_message,
            result.correlation_id,
            status_code=(status_overrides or {}).get(result.error_code),
        )


def _envelope(gateway: WithdrawalGateway, result: WithdrawalResult) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": True,
        "data": gateway.serialize(result.withdrawal),
        "correlation_id": result.correlation_id,
    }
    if result.executed:
        body["executed"] = True
    if result.blocked_reason:
        body["blocked_reason"] = result.blocked_reason
    return body


def _list_envelope(gateway: WithdrawalGateway, withdrawals) -> Dict[str, Any]:
    return {
        "success": True,
        "count": len(withdrawals),
        "data": [gateway.serialize(w) for w in withdrawals],
    }


# ============================================================================
# Routes
# ============================================================================

@router.post(
    "",
    status_code=201,
    summary="Request a withdrawal",
    responses={
        400: {"description": "Invalid request (WDR-060)"},
        401: {"description": "Not authenticated (SEC-001)"},
    },
)
def create_withdrawal(
    payload: WithdrawalCreate,
    user: User = Depends(get_current_user),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    result = gateway.create_withdrawal(
        user=user,
        token_address=payload.token_address,
        amount=payload.amount,
        to=payload.to,
    )
    _unwrap(result)
    return _envelope(gateway, result)


@router.get("", summary="List all withdrawals (admin)")
def list_withdrawals(
    status: Optional[WithdrawalStatus] = Query(None, description="Filter by status"),
    admin: User = Depends(require_admin),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    withdrawals = gateway.list_withdrawals(status.value if status else None)
    return _list_envelope(gateway, withdrawals)


@router.get("/pending", summary="Pending withdrawals awaiting confirmation")
def get_pending_withdrawals(
    user: User = Depends(require_withdrawer),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return _list_envelope(gateway, gateway.get_pending_withdrawals())


@router.get("/me/withdrawals", summary="Caller's withdrawals")
def get_my_withdrawals(
    user: User = Depends(get_current_user),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    return _list_envelope(gateway, gateway.list_my_withdrawals(user))


@router.get("/{withdrawal_id}", summary="Get a withdrawal (owner or admin)")
def get_withdrawal(
    withdrawal_id: str,
    user: User = Depends(get_current_user),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    result = gateway.get_withdrawal(withdrawal_id, user)
    _unwrap(result)
    return _envelope(gateway, result)


@router.put(
    "/{withdrawal_id}/confirm",
    summary="Confirm a withdrawal",
    description=(
        "Adds the caller's confirmation. At the confirmation threshold the "
        "withdrawal becomes confirmed and, when its timelock has elapsed, is "
        "executed immediately."
    ),
    responses={
        400: {"description": "Already confirmed (WDR-001)"},
        403: {"description": "Role not permitted (SEC-090)"},
        404: {"description": "Not found (WDR-404)"},
        409: {"description": "Not pending (WDR-030)"},
        429: {"description": "Confirm cooldown (RATE-001)"},
    },
)
def confirm_withdrawal(
    withdrawal_id: str,
    user: User = Depends(require_withdrawer),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    if not _check_rate_limit(user.id, withdrawal_id, gateway.config.confirm_cooldown_seconds):
        logger.warning(
            f"[RATE-001] Confirm rate limited | user_id={user.id} | "
            f"withdrawal_id={withdrawal_id}"
        )
        raise api_error(
            "RATE-001",
            f"Please wait {gateway.config.confirm_cooldown_seconds:g} seconds "
            f"between confirmations",
        )

    result = gateway.confirm_withdrawal(withdrawal_id, user)
    _unwrap(result)
    return _envelope(gateway, result)


@router.put("/{withdrawal_id}/execute", summary="Execute a confirmed withdrawal")
def execute_withdrawal(
    withdrawal_id: str,
    user: User = Depends(require_withdrawer),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    result = gateway.execute_withdrawal(withdrawal_id, user)
    _unwrap(result)
    return _envelope(gateway, result)


@router.put("/{withdrawal_id}/cancel", summary="Cancel a withdrawal (admin)")
def cancel_withdrawal(
    withdrawal_id: str,
    payload: Optional[WithdrawalCancel] = None,
    admin: User = Depends(require_admin),
    gateway: WithdrawalGateway = Depends(get_gateway),
) -> Dict[str, Any]:
    result = gateway.cancel_withdrawal(
        withdrawal_id,
        admin,
        reason=payload.reason if payload else None,
    )
    # Terminal withdrawals answer 400 here
    _unwrap(result, {WithdrawalErrorCode.INVALID_TRANSITION: 400})
    return _envelope(gateway, result)
