"""
============================================================================
RaceFi Backend v1.0.0
TokenWithdrawal - Multisig Vault Contract Model
============================================================================

Reliability Level: L6 Critical
Input Constraints: Amounts in integer wei, addresses as 0x-hex strings
Side Effects: Mutates in-memory ledger, appends contract events

A deterministic in-process model of the TokenWithdrawal multisig vault.
Every public method behaves like a contract call: it either succeeds and
emits events, or raises ContractRevert with the revert reason and leaves
state untouched.

WITHDRAWAL LIFECYCLE:
    request (withdrawer, counts as first confirmation)
        → confirm (distinct withdrawers until REQUIRED_CONFIRMATIONS)
        → execute (anyone, after WITHDRAWAL_DELAY, within daily limit)

    Admin may cancel any request that has not executed, pause the vault,
    and perform emergency withdrawals while paused.

ROLES:
    DEFAULT_ADMIN_ROLE: pause/unpause, limits, roles, emergency withdrawals
    WITHDRAWER_ROLE:    request and confirm withdrawals

============================================================================
"""

import itertools
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set

from app.chain.units import ZERO_ADDRESS, is_address

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SECONDS_PER_DAY = 24 * 60 * 60

# Multisig threshold (the requester's implicit confirmation counts)
REQUIRED_CONFIRMATIONS = 2

# Timelock between request and execution
WITHDRAWAL_DELAY = 2 * SECONDS_PER_DAY

# ETH is tracked under the zero address
ETH_ADDRESS = ZERO_ADDRESS

# Oldest events are dropped past this many entries
EVENT_LOG_LIMIT = 10_000


class Role(Enum):
    DEFAULT_ADMIN_ROLE = "DEFAULT_ADMIN_ROLE"
    WITHDRAWER_ROLE = "WITHDRAWER_ROLE"


# =============================================================================
# Exceptions
# =============================================================================

class ContractRevert(Exception):
    """
    Raised when a contract call fails a require() check.

    The reason string matches the revert message a client would observe.
    """

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


# =============================================================================
# Clock
# =============================================================================

class ManualClock:
    """
    Controllable block clock for tests and dry runs.

    Equivalent of evm_increaseTime + evm_mine.
    """

    def __init__(self, start: Optional[int] = None):
        self._now = int(start if start is not None else time.time())

    def __call__(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += int(seconds)
        return self._now


def system_clock() -> int:
    return int(time.time())


# =============================================================================
# Data Classes
# =============================================================================

@dataclass
class WithdrawalRequest:
    """On-chain withdrawal request record."""
    request_id: int
    token: str
    to: str
    amount: int
    is_eth: bool
    requester: str
    requested_at: int
    confirmations: Set[str] = field(default_factory=set)
    executed: bool = False
    cancelled: bool = False

    @property
    def confirmation_count(self) -> int:
        return len(self.confirmations)


@dataclass
class ContractEvent:
    """Emitted log entry."""
    name: str
    args: Dict[str, Any]
    timestamp: int


# =============================================================================
# TokenWithdrawal Contract Model
# =============================================================================

class TokenWithdrawal:
    """
    Multisig token/ETH withdrawal vault.

    Reliability Level: L6 Critical
    Input Constraints: Caller addresses must be valid 0x addresses
    Side Effects: Ledger mutation, event emission

    Requests are kept for the life of the instance, like contract storage,
    so ids stay resolvable. The event log keeps the newest
    event_log_limit entries.
    """

    def __init__(
        self,
        admin: str,
        withdrawers: Iterable[str],
        daily_limit: int,
        clock: Optional[Callable[[], int]] = None,
        required_confirmations: int = REQUIRED_CONFIRMATIONS,
        withdrawal_delay: int = WITHDRAWAL_DELAY,
        event_log_limit: int = EVENT_LOG_LIMIT,
    ) -> None:
        if not is_address(admin):
            raise ContractRevert("Invalid admin address")
        if daily_limit <= 0:
            raise ContractRevert("Daily limit must be positive")
        if required_confirmations < 1:
            raise ContractRevert("Invalid confirmation threshold")
        if withdrawal_delay < 0:
            raise ContractRevert("Invalid withdrawal delay")

        self._clock = clock or system_clock
        self._roles: Dict[Role, Set[str]] = {role: set() for role in Role}
        self._requests: Dict[int, WithdrawalRequest] = {}
        self._next_request_id = itertools.count(0)
        self._balances: Dict[str, int] = {}
        self._recipient_balances: Dict[str, Dict[str, int]] = {}
        self._events: Deque[ContractEvent] = deque(maxlen=event_log_limit)

        self.required_confirmations = required_confirmations
        self.withdrawal_delay = withdrawal_delay
        self.daily_withdrawal_limit = daily_limit
        self.paused = False

        self._current_day = self._now() // SECONDS_PER_DAY
        self._spent_today = 0

        self._grant(Role.DEFAULT_ADMIN_ROLE, admin)
        for withdrawer in withdrawers:
            if not is_address(withdrawer):
                raise ContractRevert("Invalid withdrawer address")
            self._grant(Role.WITHDRAWER_ROLE, withdrawer)

        logger.info(
            f"[VAULT] Deployed | admin={admin} | "
            f"withdrawers={len(self._roles[Role.WITHDRAWER_ROLE])} | "
            f"daily_limit={daily_limit} | "
            f"required_confirmations={required_confirmations} | "
            f"delay={withdrawal_delay}"
        )

    # =========================================================================
    # Views
    # =========================================================================

    @property
    def events(self) -> List[ContractEvent]:
        return list(self._events)

    def has_role(self, role: Role, account: str) -> bool:
        return account.lower() in self._roles[role]

    def get_request(self, request_id: int) -> WithdrawalRequest:
        request = self._requests.get(request_id)
        if request is None:
            raise ContractRevert("Invalid request")
        return request

    def balance_of(self, token: Optional[str] = None) -> int:
        return self._balances.get(self._token_key(token), 0)

    def token_balance_of(self, token: Optional[str], holder: str) -> int:
        """Balance credited to a recipient (ERC20.balanceOf equivalent)."""
        return self._recipient_balances.get(
            self._token_key(token), {}
        ).get(holder.lower(), 0)

    def spent_today(self) -> int:
        if self._now() // SECONDS_PER_DAY != self._current_day:
            return 0
        return self._spent_today

    # =========================================================================
    # Funding
    # =========================================================================

    def receive_eth(self, sender: str, amount: int) -> None:
        self._deposit(ETH_ADDRESS, sender, amount)

    def deposit_token(self, token: str, sender: str, amount: int) -> None:
        if not is_address(token) or token.lower() == ETH_ADDRESS:
            raise ContractRevert("Invalid token address")
        self._deposit(token.lower(), sender, amount)

    def _deposit(self, token_key: str, sender: str, amount: int) -> None:
        if amount <= 0:
            raise ContractRevert("Amount must be greater than 0")
        self._balances[token_key] = self._balances.get(token_key, 0) + amount
        self._emit("Deposited", token=token_key, sender=sender.lower(), amount=amount)

    # =========================================================================
    # Withdrawal Flow
    # =========================================================================

    def request_token_withdrawal(self, caller: str, token: str, to: str, amount: int) -> int:
        if not is_address(token) or token.lower() == ETH_ADDRESS:
            raise ContractRevert("Invalid token address")
        return self._request(caller, token.lower(), to, amount, is_eth=False)

    def request_eth_withdrawal(self, caller: str, to: str, amount: int) -> int:
        return self._request(caller, ETH_ADDRESS, to, amount, is_eth=True)

    def _request(self, caller: str, token: str, to: str, amount: int, is_eth: bool) -> int:
        self._require_not_paused()
        self._require_withdrawer(caller)
        if not is_address(to) or to.lower() == ZERO_ADDRESS:
            raise ContractRevert("Invalid recipient")
        if amount <= 0:
            raise ContractRevert("Amount must be greater than 0")

        request_id = next(self._next_request_id)
        request = WithdrawalRequest(
            request_id=request_id,
            token=token,
            to=to.lower(),
            amount=amount,
            is_eth=is_eth,
            requester=caller.lower(),
            requested_at=self._now(),
            confirmations={caller.lower()},
        )
        self._requests[request_id] = request

        self._emit(
            "WithdrawalRequested",
            requestId=request_id,
            token=token,
            to=request.to,
            amount=amount,
            isEth=is_eth,
        )
        return request_id

    def confirm_withdrawal(self, caller: str, request_id: int) -> None:
        self._require_withdrawer(caller)
        request = self.get_request(request_id)
        if request.executed:
            raise ContractRevert("Already executed")
        if request.cancelled:
            raise ContractRevert("Request cancelled")
        if caller.lower() in request.confirmations:
            raise ContractRevert("Already confirmed")

        request.confirmations.add(caller.lower())
        self._emit("WithdrawalConfirmed", requestId=request_id, confirmer=caller.lower())

    def execute_withdrawal(self, caller: str, request_id: int) -> None:
        self._require_not_paused()
        request = self.get_request(request_id)
        if request.executed:
            raise ContractRevert("Already executed")
        if request.cancelled:
            raise ContractRevert("Request cancelled")
        if request.confirmation_count < self.required_confirmations:
            raise ContractRevert("Not enough confirmations")
        if self._now() < request.requested_at + self.withdrawal_delay:
            raise ContractRevert("Timelock not expired")

        self._roll_day()
        if self._spent_today + request.amount > self.daily_withdrawal_limit:
            raise ContractRevert("Daily withdrawal limit exceeded")
        if self._balances.get(request.token, 0) < request.amount:
            raise ContractRevert("Insufficient balance")

        self._spent_today += request.amount
        request.executed = True
        self._transfer_out(request.token, request.to, request.amount)

        self._emit(
            "WithdrawalExecuted",
            requestId=request_id,
            token=request.token,
            to=request.to,
            amount=request.amount,
            isEth=request.is_eth,
            executor=caller.lower(),
        )

    def cancel_withdrawal(self, caller: str, request_id: int) -> None:
        self._require_admin(caller)
        request = self.get_request(request_id)
        if request.executed:
            raise ContractRevert("Already executed")
        if request.cancelled:
            raise ContractRevert("Request cancelled")
        request.cancelled = True
        self._emit("WithdrawalCancelled", requestId=request_id, canceller=caller.lower())

    # =========================================================================
    # Admin
    # =========================================================================

    def set_daily_withdrawal_limit(self, caller: str, limit: int) -> None:
        self._require_admin(caller)
        if limit <= 0:
            raise ContractRevert("Daily limit must be positive")
        previous = self.daily_withdrawal_limit
        self.daily_withdrawal_limit = limit
        self._emit("DailyLimitUpdated", previousLimit=previous, newLimit=limit)

    def pause(self, caller: str) -> None:
        self._require_admin(caller)
        self._require_not_paused()
        self.paused = True
        self._emit("Paused", account=caller.lower())

    def unpause(self, caller: str) -> None:
        self._require_admin(caller)
        if not self.paused:
            raise ContractRevert("Pausable: not paused")
        self.paused = False
        self._emit("Unpaused", account=caller.lower())

    def emergency_withdraw(
        self,
        caller: str,
        token: Optional[str],
        to: str,
        amount: int,
        is_eth: bool,
    ) -> None:
        """Admin-only drain while paused. Skips confirmations, timelock and limit."""
        self._require_admin(caller)
        if not self.paused:
            raise ContractRevert("Pausable: not paused")
        if not is_address(to) or to.lower() == ZERO_ADDRESS:
            raise ContractRevert("Invalid recipient")
        if amount <= 0:
            raise ContractRevert("Amount must be greater than 0")

        token_key = ETH_ADDRESS if is_eth else self._token_key(token)
        if self._balances.get(token_key, 0) < amount:
            raise ContractRevert("Insufficient balance")

        self._transfer_out(token_key, to.lower(), amount)
        self._emit(
            "EmergencyWithdrawn",
            token=token_key,
            to=to.lower(),
            amount=amount,
            isEth=is_eth,
        )

    def grant_role(self, caller: str, role: Role, account: str) -> None:
        self._require_admin(caller)
        if not is_address(account):
            raise ContractRevert("Invalid account")
        self._grant(role, account)

    def revoke_role(self, caller: str, role: Role, account: str) -> None:
        self._require_admin(caller)
        if account.lower() in self._roles[role]:
            self._roles[role].discard(account.lower())
            self._emit("RoleRevoked", role=role.value, account=account.lower(), sender=caller.lower())

    # =========================================================================
    # Internals
    # =========================================================================

    def _now(self) -> int:
        return int(self._clock())

    def _roll_day(self) -> None:
        today = self._now() // SECONDS_PER_DAY
        if today != self._current_day:
            self._current_day = today
            self._spent_today = 0

    def _grant(self, role: Role, account: str) -> None:
        if account.lower() not in self._roles[role]:
            self._roles[role].add(account.lower())
            self._emit("RoleGranted", role=role.value, account=account.lower())

    def _transfer_out(self, token_key: str, to: str, amount: int) -> None:
        self._balances[token_key] -= amount
        holder_balances = self._recipient_balances.setdefault(token_key, {})
        holder_balances[to] = holder_balances.get(to, 0) + amount

    def _token_key(self, token: Optional[str]) -> str:
        if token is None:
            return ETH_ADDRESS
        return token.lower()

    def _require_admin(self, caller: str) -> None:
        if not self.has_role(Role.DEFAULT_ADMIN_ROLE, caller):
            raise ContractRevert("Caller is not an admin")

    def _require_withdrawer(self, caller: str) -> None:
        if not self.has_role(Role.WITHDRAWER_ROLE, caller):
            raise ContractRevert("Caller is not a withdrawer")

    def _require_not_paused(self) -> None:
        if self.paused:
            raise ContractRevert("Pausable: paused")

    def _emit(self, name: str, **args: Any) -> None:
        event = ContractEvent(name=name, args=args, timestamp=self._now())
        self._events.append(event)
        logger.debug(f"[VAULT] Event {name} | args={args}")


def deploy(
    admin: str,
    withdrawers: Iterable[str],
    daily_limit: int,
    clock: Optional[Callable[[], int]] = None,
    required_confirmations: int = REQUIRED_CONFIRMATIONS,
    withdrawal_delay: int = WITHDRAWAL_DELAY,
) -> TokenWithdrawal:
    """Deploy a vault with the default multisig parameters."""
    return TokenWithdrawal(
        admin=admin,
        withdrawers=withdrawers,
        daily_limit=daily_limit,
        clock=clock,
        required_confirmations=required_confirmations,
        withdrawal_delay=withdrawal_delay,
    )
