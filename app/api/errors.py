"""
============================================================================
RaceFi Backend v1.0.0
API Error Mapping - Error Codes to HTTP Responses
============================================================================

Reliability Level: STANDARD
Input Constraints: Known error codes (unknown codes map to 400)
Side Effects: None

Every error response carries the same detail shape:
    {"error_code", "message", "timestamp", "correlation_id"}

============================================================================
"""

from datetime import datetime, timezone
from typing import Dict, Optional

from fastapi import HTTPException

from services.withdrawal_models import WithdrawalErrorCode


ERROR_STATUS: Dict[str, int] = {
    WithdrawalErrorCode.ALREADY_CONFIRMED: 400,
    WithdrawalErrorCode.INVALID_REQUEST: 400,
    WithdrawalErrorCode.TIMELOCK_ACTIVE: 425,
    WithdrawalErrorCode.DAILY_LIMIT_EXCEEDED: 409,
    WithdrawalErrorCode.INVALID_TRANSITION: 409,
    WithdrawalErrorCode.VAULT_PAUSED: 423,
    WithdrawalErrorCode.CHAIN_FAILURE: 502,
    WithdrawalErrorCode.NOT_FOUND: 404,
    # Ownership failures are 401, role failures on gated routes are 403
    WithdrawalErrorCode.UNAUTHORIZED: 401,
    "RATE-001": 429,
    "VLT-001": 409,
}


def api_error(
    error_code: str,
    message: str,
    correlation_id: Optional[str] = None,
    status_code: Optional[int] = None,
) -> HTTPException:
    """Build the HTTPException for an error code."""
    return HTTPException(
        status_code=status_code or ERROR_STATUS.get(error_code, 400),
        detail={
            "error_code": error_code,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "correlation_id": correlation_id,
        },
    )
