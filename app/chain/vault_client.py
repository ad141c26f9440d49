"""
============================================================================
RaceFi Backend v1.0.0
Vault Client - Backend Bridge to the TokenWithdrawal Vault
============================================================================

Reliability Level: L6 Critical
Input Constraints: Ether-denominated Decimal amounts, 0x addresses
Side Effects: Vault ledger mutation, contract events

The backend enforces the multisig (confirmations, timelock, daily limit)
against its own records before it reaches this client. The vault it drives
is therefore deployed with the relayer as admin and sole withdrawer, a
threshold of 1 and no delay. The vault's daily limit is kept in step with
the backend limit so that the contract still refuses an over-limit day.

============================================================================
"""

import hashlib
import itertools
import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from app.chain.token_withdrawal import (
    ETH_ADDRESS,
    ContractRevert,
    TokenWithdrawal,
    system_clock,
)
from app.chain.units import format_ether, parse_ether
from services.withdrawal_config import WithdrawalConfig, get_withdrawal_config

logger = logging.getLogger(__name__)


# ============================================================================
# EXCEPTIONS / RESULTS
# ============================================================================

class VaultExecutionError(Exception):
    """Raised when a vault call reverts."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Vault call reverted: {reason}")


@dataclass
class ExecutionReceipt:
    tx_hash: str
    request_id: int
    block_timestamp: int


# ============================================================================
# VAULT CLIENT
# ============================================================================

class VaultClient:
    """
    Thread-safe facade over a deployed TokenWithdrawal vault.

    Reliability Level: L6 Critical
    Side Effects: All calls are serialized through a lock
    """

    def __init__(
        self,
        relayer_address: str,
        daily_limit: Decimal,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self._relayer = relayer_address.lower()
        self._lock = threading.Lock()
        self._nonce = itertools.count(1)
        self._vault = TokenWithdrawal(
            admin=self._relayer,
            withdrawers=[self._relayer],
            daily_limit=parse_ether(daily_limit),
            clock=clock or system_clock,
            required_confirmations=1,
            withdrawal_delay=0,
        )

    @classmethod
    def from_config(
        cls,
        config: WithdrawalConfig,
        clock: Optional[Callable[[], int]] = None,
    ) -> "VaultClient":
        client = cls(
            relayer_address=config.relayer_address,
            daily_limit=config.daily_limit,
            clock=clock,
        )
        if config.vault_seed_balance > 0:
            client.deposit(None, config.vault_seed_balance)
            logger.info(
                f"[VAULT-CLIENT] Seeded vault | eth={config.vault_seed_balance}"
            )
        return client

    @property
    def vault(self) -> TokenWithdrawal:
        return self._vault

    @property
    def relayer_address(self) -> str:
        return self._relayer

    # ========================================================================
    # WITHDRAWALS
    # ========================================================================

    def execute_withdrawal(
        self,
        token_address: Optional[str],
        to: str,
        amount: Decimal,
    ) -> ExecutionReceipt:
        """
        Submit and execute a withdrawal on the vault.

        Raises:
            VaultExecutionError: On any contract revert
        """
        wei = parse_ether(amount)
        with self._lock:
            request_id = None
            try:
                if _is_eth(token_address):
                    request_id = self._vault.request_eth_withdrawal(self._relayer, to, wei)
                else:
                    request_id = self._vault.request_token_withdrawal(
                        self._relayer, token_address, to, wei
                    )
                self._vault.execute_withdrawal(self._relayer, request_id)
            except ContractRevert as e:
                logger.warning(
                    f"[VAULT-CLIENT] Execution reverted | reason={e.reason} | "
                    f"token={token_address} | to={to} | amount={amount}"
                )
                if request_id is not None:
                    self._cancel_orphan(request_id)
                raise VaultExecutionError(e.reason)

            block_timestamp = self._vault.get_request(request_id).requested_at
            tx_hash = self._tx_hash(request_id, to, wei)

        logger.info(
            f"[VAULT-CLIENT] Withdrawal executed | request_id={request_id} | "
            f"to={to} | amount={amount} | tx_hash={tx_hash}"
        )
        return ExecutionReceipt(
            tx_hash=tx_hash,
            request_id=request_id,
            block_timestamp=block_timestamp,
        )

    def _cancel_orphan(self, request_id: int) -> None:
        """Cancel a request whose execution reverted so it cannot be replayed."""
        try:
            self._vault.cancel_withdrawal(self._relayer, request_id)
        except ContractRevert as e:
            logger.error(
                f"[VAULT-CLIENT] Failed to cancel reverted request | "
                f"request_id={request_id} | reason={e.reason}"
            )
            return
        logger.info(f"[VAULT-CLIENT] Cancelled reverted request | request_id={request_id}")

    def emergency_withdraw(
        self,
        token_address: Optional[str],
        to: str,
        amount: Decimal,
    ) -> str:
        wei = parse_ether(amount)
        is_eth = _is_eth(token_address)
        with self._lock:
            try:
                self._vault.emergency_withdraw(
                    self._relayer, None if is_eth else token_address, to, wei, is_eth
                )
            except ContractRevert as e:
                raise VaultExecutionError(e.reason)
            tx_hash = self._tx_hash(-1, to, wei)
        logger.warning(
            f"[VAULT-CLIENT] Emergency withdrawal | token={token_address} | "
            f"to={to} | amount={amount} | tx_hash={tx_hash}"
        )
        return tx_hash

    # ========================================================================
    # FUNDING / ADMIN
    # ========================================================================

    def deposit(self, token_address: Optional[str], amount: Decimal) -> None:
        wei = parse_ether(amount)
        with self._lock:
            try:
                if _is_eth(token_address):
                    self._vault.receive_eth(self._relayer, wei)
                else:
                    self._vault.deposit_token(token_address, self._relayer, wei)
            except ContractRevert as e:
                raise VaultExecutionError(e.reason)

    def balance_of(self, token_address: Optional[str]) -> Decimal:
        with self._lock:
            wei = self._vault.balance_of(None if _is_eth(token_address) else token_address)
        return Decimal(format_ether(wei))

    def recipient_balance(self, token_address: Optional[str], holder: str) -> Decimal:
        with self._lock:
            wei = self._vault.token_balance_of(
                None if _is_eth(token_address) else token_address, holder
            )
        return Decimal(format_ether(wei))

    def is_paused(self) -> bool:
        return self._vault.paused

    def pause(self) -> None:
        self._admin_call(self._vault.pause)

    def unpause(self) -> None:
        self._admin_call(self._vault.unpause)

    def set_daily_limit(self, limit: Decimal) -> None:
        wei = parse_ether(limit)
        self._admin_call(self._vault.set_daily_withdrawal_limit, wei)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "paused": self._vault.paused,
                "daily_limit": format_ether(self._vault.daily_withdrawal_limit),
                "spent_today": format_ether(self._vault.spent_today()),
                "eth_balance": format_ether(self._vault.balance_of(None)),
                "relayer_address": self._relayer,
            }

    def _admin_call(self, fn: Callable[..., None], *args: Any) -> None:
        with self._lock:
            try:
                fn(self._relayer, *args)
            except ContractRevert as e:
                raise VaultExecutionError(e.reason)

    def _tx_hash(self, request_id: int, to: str, wei: int) -> str:
        payload = f"{request_id}:{to.lower()}:{wei}:{next(self._nonce)}"
        return "0x" + hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _is_eth(token_address: Optional[str]) -> bool:
    return token_address is None or token_address.lower() in (ETH_ADDRESS, "eth")


# ============================================================================
# SINGLETON ACCESS
# ============================================================================

_vault_client: Optional[VaultClient] = None


def get_vault_client() -> VaultClient:
    """Get the global vault client, deploying it on first access."""
    global _vault_client
    if _vault_client is None:
        _vault_client = VaultClient.from_config(get_withdrawal_config())
    return _vault_client


def reset_vault_client() -> None:
    global _vault_client
    _vault_client = None
