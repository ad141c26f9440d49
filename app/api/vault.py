"""
============================================================================
RaceFi Backend v1.0.0
Vault API Endpoints
============================================================================

Reliability Level: L6 Critical
Input Constraints: Admin role for every mutating route
Side Effects: Vault ledger mutation, vault_paused gauge

ENDPOINTS:
    GET  /api/v1/token/balance/{address}  - Holder's balance of a vault token
    GET  /api/v1/token/status             - Paused flag, daily limit, spent today
    POST /api/v1/token/deposit            - Fund the vault (admin)
    PUT  /api/v1/token/pause              - Pause withdrawals (admin)
    PUT  /api/v1/token/unpause            - Resume withdrawals (admin)
    PUT  /api/v1/token/daily-limit        - Change the daily limit (admin)
    POST /api/v1/token/emergency-withdraw - Drain while paused (admin)

ERROR CODES:
    VLT-001: Vault call reverted (409)
    VLT-400: Invalid address

============================================================================
"""

import logging
from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends, Query

from app.api.errors import api_error
from app.auth.dependencies import require_roles
from app.chain.units import ZERO_ADDRESS, is_address
from app.chain.vault_client import VaultClient, VaultExecutionError, get_vault_client
from app.observability.metrics import update_vault_paused
from app.schemas.user import UserRole
from app.schemas.withdrawal import DailyLimitUpdate, DepositRequest, EmergencyWithdrawRequest
from services.user_store import User
from services.withdrawal_config import WithdrawalConfig, get_withdrawal_config

logger = logging.getLogger(__name__)

router = APIRouter()

require_admin = require_roles(UserRole.ADMIN.value)


def get_vault() -> VaultClient:
    return get_vault_client()


def get_config() -> WithdrawalConfig:
    return get_withdrawal_config()


def _vault_call(fn: Callable[..., Any], *args: Any) -> Any:
    try:
        return fn(*args)
    except VaultExecutionError as e:
        raise api_error("VLT-001", e.reason)


@router.get("/balance/{address}", summary="Holder balance of a vault token")
def get_balance(
    address: str,
    token: str = Query(ZERO_ADDRESS, description="Token address (zero address for ETH)"),
    vault: VaultClient = Depends(get_vault),
) -> Dict[str, Any]:
    if not is_address(address) or not is_address(token):
        raise api_error("VLT-400", "Invalid Ethereum address", status_code=400)
    balance = vault.recipient_balance(token, address)
    return {"success": True, "balance": str(balance)}


@router.get("/status", summary="Vault status")
def get_status(vault: VaultClient = Depends(get_vault)) -> Dict[str, Any]:
    status = vault.status()
    update_vault_paused(status["paused"])
    return {"success": True, "data": status}


@router.post("/deposit", summary="Fund the vault (admin)")
def deposit(
    payload: DepositRequest,
    admin: User = Depends(require_admin),
    vault: VaultClient = Depends(get_vault),
) -> Dict[str, Any]:
    _vault_call(vault.deposit, payload.token_address, payload.amount)
    logger.info(
        f"[VAULT] Deposit | token={payload.token_address} | "
        f"amount={payload.amount} | admin={admin.id}"
    )
    return {
        "success": True,
        "data": {
            "token_address": payload.token_address,
            "balance": str(vault.balance_of(payload.token_address)),
        },
    }


@router.put("/pause", summary="Pause withdrawals (admin)")
def pause(
    admin: User = Depends(require_admin),
    vault: VaultClient = Depends(get_vault),
) -> Dict[str, Any]:
    _vault_call(vault.pause)
    update_vault_paused(True)
    logger.warning(f"[VAULT] Vault paused | admin={admin.id}")
    return {"success": True, "data": vault.status()}


@router.put("/unpause", summary="Resume withdrawals (admin)")
def unpause(
    admin: User = Depends(require_admin),
    vault: VaultClient = Depends(get_vault),
) -> Dict[str, Any]:
    _vault_call(vault.unpause)
    update_vault_paused(False)
    logger.info(f"[VAULT] Vault unpaused | admin={admin.id}")
    return {"success": True, "data": vault.status()}


@router.put("/daily-limit", summary="Change the daily withdrawal limit (admin)")
def set_daily_limit(
    payload: DailyLimitUpdate,
    admin: User = Depends(require_admin),
    vault: VaultClient = Depends(get_vault),
    config: WithdrawalConfig = Depends(get_config),
) -> Dict[str, Any]:
    _vault_call(vault.set_daily_limit, payload.limit)
    previous = config.daily_limit
    config.daily_limit = payload.limit
    logger.warning(
        f"[VAULT] Daily limit changed | previous={previous} | "
        f"limit={payload.limit} | admin={admin.id}"
    )
    return {"success": True, "data": vault.status()}


@router.post("/emergency-withdraw", summary="Emergency withdrawal while paused (admin)")
def emergency_withdraw(
    payload: EmergencyWithdrawRequest,
    admin: User = Depends(require_admin),
    vault: VaultClient = Depends(get_vault),
) -> Dict[str, Any]:
    tx_hash = _vault_call(
        vault.emergency_withdraw, payload.token_address, payload.to, payload.amount
    )
    logger.critical(
        f"[VAULT] Emergency withdrawal | to={payload.to} | "
        f"amount={payload.amount} | admin={admin.id} | tx_hash={tx_hash}"
    )
    return {
        "success": True,
        "message": "Emergency withdrawal executed",
        "transaction_hash": tx_hash,
    }
