"""
============================================================================
Withdrawal Multisig - Core Data Models
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Amounts are decimal.Decimal, persisted as strings
Traceability: All operations include correlation_id for audit

This module defines the core data models for the withdrawal multisig:
- Withdrawal: A withdrawal request and its confirmation trail
- Confirmation: One confirmer's approval
- WithdrawalResult: Outcome envelope returned by the gateway

ERROR CODES:
    - WDR-001: Already confirmed by this user
    - WDR-010: Timelock not expired
    - WDR-020: Daily withdrawal limit exceeded
    - WDR-030: Invalid state transition
    - WDR-040: Vault paused
    - WDR-050: On-chain execution failed
    - WDR-404: Withdrawal not found
    - SEC-090: Caller not authorized

============================================================================
"""

from decimal import Decimal
from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class WithdrawalErrorCode:
    """Withdrawal-specific error codes for audit logging."""
    ALREADY_CONFIRMED = "WDR-001"
    TIMELOCK_ACTIVE = "WDR-010"
    DAILY_LIMIT_EXCEEDED = "WDR-020"
    INVALID_TRANSITION = "WDR-030"
    VAULT_PAUSED = "WDR-040"
    CHAIN_FAILURE = "WDR-050"
    INVALID_REQUEST = "WDR-060"
    NOT_FOUND = "WDR-404"
    UNAUTHORIZED = "SEC-090"


# =============================================================================
# Enums
# =============================================================================

class WithdrawalStatus(Enum):
    """
    Withdrawal lifecycle status.

        pending -> confirmed -> executed
        pending | confirmed -> cancelled
    """
    PENDING = "pending"
    CONFIRMED = "confirmed"
    EXECUTED = "executed"
    CANCELLED = "cancelled"


# =============================================================================
# Confirmation
# =============================================================================

@dataclass
class Confirmation:
    user_id: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# Withdrawal
# =============================================================================

@dataclass
class Withdrawal:
    """
    Withdrawal request record.

    Reliability Level: L6 Critical
    Input Constraints: amount > 0, to is a lower-case 0x address
    Side Effects: None (data container)
    """

    id: str
    user_id: str
    token_address: str
    amount: Decimal
    to: str
    status: str
    created_at: datetime
    updated_at: datetime
    confirmations: List[Confirmation] = field(default_factory=list)
    tx_hash: Optional[str] = None
    cancel_reason: Optional[str] = None
    confirmed_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    @property
    def confirmation_count(self) -> int:
        return len(self.confirmations)

    def has_confirmed(self, user_id: str) -> bool:
        return any(c.user_id == user_id for c in self.confirmations)

    def executable_at(self, timelock_seconds: int) -> datetime:
        """Earliest time the timelock allows execution."""
        return self.created_at + timedelta(seconds=timelock_seconds)

    def is_matured(self, now: datetime, timelock_seconds: int) -> bool:
        return now >= self.executable_at(timelock_seconds)

    def to_dict(
        self,
        timelock_seconds: int,
        required_confirmations: int,
    ) -> Dict[str, Any]:
        """
        Serialize for API responses.

        Amounts are rendered as strings to preserve precision.
        """
        return {
            "id": self.id,
            "user_id": self.user_id,
            "token_address": self.token_address,
            "amount": str(self.amount),
            "to": self.to,
            "status": self.status,
            "confirmations": [c.to_dict() for c in self.confirmations],
            "confirmation_count": self.confirmation_count,
            "required_confirmations": required_confirmations,
            "tx_hash": self.tx_hash,
            "cancel_reason": self.cancel_reason,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "confirmed_at": _iso(self.confirmed_at),
            "executed_at": _iso(self.executed_at),
            "cancelled_at": _iso(self.cancelled_at),
            "executable_at": self.executable_at(timelock_seconds).isoformat(),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def utc_day(moment: datetime) -> int:
    """UTC day number, the same bucketing the vault uses (timestamp // 86400)."""
    return int(moment.astimezone(timezone.utc).timestamp()) // 86400


# =============================================================================
# WithdrawalResult
# =============================================================================

@dataclass
class WithdrawalResult:
    """
    Result of a gateway operation.

    On success, withdrawal carries the updated record. On failure,
    error_code and error_message describe the blocker.
    """
    success: bool
    withdrawal: Optional[Withdrawal] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    correlation_id: Optional[str] = None
    executed: bool = False
    blocked_reason: Optional[str] = None
