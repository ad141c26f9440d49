"""
============================================================================
RaceFi Backend v1.0.0
Withdrawal Schemas - Multisig Withdrawal Requests
============================================================================

Reliability Level: L6 Critical
Input Constraints: Decimal amounts (max 18 places), 0x addresses, zero floats
Side Effects: None (pure validation)

============================================================================
"""

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.chain.units import ZERO_ADDRESS
from app.schemas.common import validate_address, validate_token_amount


class WithdrawalCreate(BaseModel):
    """
    New withdrawal request.

    token_address defaults to the zero address, which denotes native ETH.
    """

    model_config = ConfigDict(extra="forbid")

    token_address: str = ZERO_ADDRESS
    amount: Decimal
    to: str

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> Decimal:
        return validate_token_amount(v, "amount")

    @field_validator("token_address", mode="before")
    @classmethod
    def validate_token(cls, v: Any) -> str:
        return validate_address(v, "token_address")

    @field_validator("to", mode="before")
    @classmethod
    def validate_to(cls, v: Any) -> str:
        address = validate_address(v, "to")
        if address == ZERO_ADDRESS:
            raise ValueError("Recipient cannot be the zero address")
        return address


class WithdrawalCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class ConfirmationOut(BaseModel):
    user_id: str
    timestamp: str


class WithdrawalOut(BaseModel):
    id: str
    user_id: str
    token_address: str
    amount: str
    to: str
    status: str
    confirmations: List[ConfirmationOut]
    confirmation_count: int
    required_confirmations: int
    tx_hash: Optional[str] = None
    cancel_reason: Optional[str] = None
    created_at: str
    updated_at: str
    confirmed_at: Optional[str] = None
    executed_at: Optional[str] = None
    cancelled_at: Optional[str] = None
    executable_at: str


class DepositRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    token_address: str = ZERO_ADDRESS
    amount: Decimal

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: Any) -> Decimal:
        return validate_token_amount(v, "amount")

    @field_validator("token_address", mode="before")
    @classmethod
    def validate_token(cls, v: Any) -> str:
        return validate_address(v, "token_address")


class DailyLimitUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limit: Decimal

    @field_validator("limit", mode="before")
    @classmethod
    def validate_limit(cls, v: Any) -> Decimal:
        return validate_token_amount(v, "limit")


class EmergencyWithdrawRequest(WithdrawalCreate):
    """Admin-only drain while the vault is paused."""
