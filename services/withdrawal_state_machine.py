"""
============================================================================
Withdrawal Lifecycle State Machine
============================================================================

Reliability Level: L6 Critical
Traceability: All operations include correlation_id for audit

WITHDRAWAL LIFECYCLE STATE MACHINE:
    pending   -> confirmed  (confirmation threshold reached)
    pending   -> cancelled  (admin cancellation)
    confirmed -> executed   (timelock elapsed, daily limit respected)
    confirmed -> cancelled  (admin cancellation)

    Terminal States: executed, cancelled (no further transitions)

ERROR CODES:
    - WDR-030: Invalid state transition attempted

============================================================================
"""

from typing import Optional, Dict, List, Tuple
import logging

logger = logging.getLogger(__name__)


class WithdrawalStateErrorCode:
    INVALID_TRANSITION = "WDR-030"


# =============================================================================
# VALID_TRANSITIONS Constant
# =============================================================================

VALID_TRANSITIONS: Dict[str, List[str]] = {
    "pending": ["confirmed", "cancelled"],
    "confirmed": ["executed", "cancelled"],
    "executed": [],  # Terminal
    "cancelled": [],  # Terminal
}

TERMINAL_STATES: List[str] = ["executed", "cancelled"]

VALID_STATES: List[str] = list(VALID_TRANSITIONS.keys())


def validate_transition(
    current_state: str,
    target_state: str,
    correlation_id: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Validate if a withdrawal status transition is allowed.

    Args:
        current_state: Current withdrawal status
        target_state: Requested withdrawal status
        correlation_id: Optional correlation ID for audit logging

    Returns:
        (True, None) if the transition is valid, otherwise (False, "WDR-030")

    Side Effects: Logs WDR-030 on invalid transitions
    """
    if current_state not in VALID_STATES:
        logger.error(
            f"[{WithdrawalStateErrorCode.INVALID_TRANSITION}] "
            f"Invalid current state: {current_state}. "
            f"Valid states: {VALID_STATES}. "
            f"correlation_id={correlation_id}"
        )
        return (False, WithdrawalStateErrorCode.INVALID_TRANSITION)

    if target_state not in VALID_STATES:
        logger.error(
            f"[{WithdrawalStateErrorCode.INVALID_TRANSITION}] "
            f"Invalid target state: {target_state}. "
            f"Valid states: {VALID_STATES}. "
            f"correlation_id={correlation_id}"
        )
        return (False, WithdrawalStateErrorCode.INVALID_TRANSITION)

    valid_targets = VALID_TRANSITIONS.get(current_state, [])

    if target_state not in valid_targets:
        valid_str = "/".join(valid_targets) if valid_targets else "NONE (terminal state)"
        logger.error(
            f"[{WithdrawalStateErrorCode.INVALID_TRANSITION}] "
            f"Invalid state transition: {current_state} -> {target_state}. "
            f"Valid transitions from {current_state}: {valid_str}. "
            f"correlation_id={correlation_id}"
        )
        return (False, WithdrawalStateErrorCode.INVALID_TRANSITION)

    logger.debug(
        f"[WDR-STATE] Transition validated: {current_state} -> {target_state} | "
        f"correlation_id={correlation_id}"
    )
    return (True, None)


def is_terminal_state(state: str) -> bool:
    return state in TERMINAL_STATES


def get_valid_transitions(state: str) -> List[str]:
    """Return the allowed targets from state (empty for unknown or terminal)."""
    return list(VALID_TRANSITIONS.get(state, []))


__all__ = [
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "VALID_STATES",
    "WithdrawalStateErrorCode",
    "validate_transition",
    "is_terminal_state",
    "get_valid_transitions",
]
