"""
============================================================================
Withdrawal Multisig - Gateway
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: All amounts use decimal.Decimal
Traceability: All operations include correlation_id for audit

The gateway is the single entry point for withdrawal state changes:

    create -> confirm (xN) -> [timelock] -> execute
                    \\-> cancel (admin)

EXECUTION GUARDS (checked in order):
    1. Vault not paused               (WDR-040)
    2. Timelock elapsed               (WDR-010)
    3. Daily limit respected          (WDR-020)
    4. Vault call succeeds            (WDR-050, stays confirmed)

FAIL-CLOSED BEHAVIOR:
    A blocked or failed execution never changes status. A confirmed
    withdrawal is retried by the execution worker on its next cycle.

============================================================================
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional
import logging
import threading
import uuid

from sqlalchemy.orm import Session

from app.chain.units import is_address
from app.chain.vault_client import VaultClient, VaultExecutionError, get_vault_client
from app.observability.metrics import (
    record_withdrawal_blocked,
    record_withdrawal_cancelled,
    record_withdrawal_confirmed,
    record_withdrawal_executed,
    record_withdrawal_requested,
    update_vault_paused,
)
from app.schemas.user import UserRole
from services.user_store import User
from services.withdrawal_config import WithdrawalConfig, get_withdrawal_config
from services.withdrawal_models import (
    Withdrawal,
    WithdrawalErrorCode,
    WithdrawalResult,
    WithdrawalStatus,
    utc_day,
)
from services.withdrawal_state_machine import validate_transition
from services.withdrawal_store import DuplicateConfirmationError, WithdrawalStore

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"

CONFIRMER_ROLES = (UserRole.WITHDRAWER.value, UserRole.ADMIN.value)

# Serializes guard checks and vault calls within the process
_EXECUTION_LOCK = threading.Lock()


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WithdrawalGateway:
    """
    Withdrawal multisig gateway.

    Reliability Level: L6 Critical
    Input Constraints: Valid session; users loaded from the users table
    Side Effects: Database writes, vault calls, metrics, audit log
    """

    def __init__(
        self,
        db_session: Session,
        config: Optional[WithdrawalConfig] = None,
        vault: Optional[VaultClient] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._db = db_session
        self._store = WithdrawalStore(db_session)
        self._config = config or get_withdrawal_config()
        self._vault = vault or get_vault_client()
        self._clock = clock or _utc_now

    @property
    def config(self) -> WithdrawalConfig:
        return self._config

    def serialize(self, withdrawal: Withdrawal) -> Dict[str, Any]:
        return withdrawal.to_dict(
            timelock_seconds=self._config.timelock_seconds,
            required_confirmations=self._config.required_confirmations,
        )

    # =========================================================================
    # create_withdrawal()
    # =========================================================================

    def create_withdrawal(
        self,
        user: User,
        token_address: str,
        amount: Decimal,
        to: str,
    ) -> WithdrawalResult:
        """
        Create a pending withdrawal request.

        Returns:
            WithdrawalResult with the pending withdrawal, or WDR-060
        """
        correlation_id = str(uuid.uuid4())

        if not is_address(to) or not is_address(token_address):
            return self._fail(
                WithdrawalErrorCode.INVALID_REQUEST,
                f"Invalid address | to={to} | token_address={token_address}",
                correlation_id,
            )
        if amount <= Decimal("0"):
            return self._fail(
                WithdrawalErrorCode.INVALID_REQUEST,
                f"Amount must be positive, got: {amount}",
                correlation_id,
            )

        now = self._clock()
        try:
            withdrawal = self._store.create(
                user_id=user.id,
                token_address=token_address.lower(),
                amount=amount,
                to=to.lower(),
                now=now,
            )
            self._store.record_transition(
                withdrawal_id=withdrawal.id,
                actor_id=user.id,
                action="WITHDRAWAL_REQUESTED",
                previous_state=None,
                new_state=withdrawal.status,
                correlation_id=correlation_id,
                now=now,
                payload={"amount": str(amount), "to": withdrawal.to},
            )
            self._db.commit()
        except Exception:
            self._db.rollback()
            raise

        record_withdrawal_requested(correlation_id)
        logger.info(
            f"[WDR-GATEWAY] Withdrawal requested | "
            f"withdrawal_id={withdrawal.id} | "
            f"user_id={user.id} | "
            f"amount={amount} | "
            f"to={withdrawal.to} | "
            f"correlation_id={correlation_id}"
        )
        return WithdrawalResult(
            success=True,
            withdrawal=withdrawal,
            correlation_id=correlation_id,
        )

    # =========================================================================
    # confirm_withdrawal()
    # =========================================================================

    def confirm_withdrawal(self, withdrawal_id: str, confirmer: User) -> WithdrawalResult:
        """
        Record a confirmation and promote to confirmed at the threshold.

        ========================================================================
        CONFIRMATION PROCEDURE:
        ========================================================================
        1. Confirmer holds withdrawer or admin role (SEC-090)
        2. Withdrawal exists (WDR-404)
        3. Withdrawal is pending (WDR-030)
        4. Confirmer has not confirmed before (WDR-001)
        5. Record confirmation, recount from the store, and at the
           threshold compare-and-set pending -> confirmed (WDR-030 if the
           row moved underneath us)
        6. If auto-execute is on and the timelock has elapsed, execute.
           Execution blockers leave the withdrawal confirmed without error.
        ========================================================================

        Steps 2-5 run under the execution lock so cancel and execute
        cannot interleave with them.
        """
        correlation_id = str(uuid.uuid4())

        if not confirmer.has_role(*CONFIRMER_ROLES):
            return self._fail(
                WithdrawalErrorCode.UNAUTHORIZED,
                f"User role {confirmer.role} is not authorized to confirm withdrawals",
                correlation_id,
            )

        with _EXECUTION_LOCK:
            withdrawal = self._store.get(withdrawal_id)
            if withdrawal is None:
                return self._not_found(withdrawal_id, correlation_id)

            if withdrawal.status != WithdrawalStatus.PENDING.value:
                return self._fail(
                    WithdrawalErrorCode.INVALID_TRANSITION,
                    f"Withdrawal is not pending (status: {withdrawal.status})",
                    correlation_id,
                    withdrawal,
                )

            if withdrawal.has_confirmed(confirmer.id):
                return self._fail(
                    WithdrawalErrorCode.ALREADY_CONFIRMED,
                    "You have already confirmed this withdrawal",
                    correlation_id,
                    withdrawal,
                )

            now = self._clock()
            reached_threshold = False
            try:
                self._store.add_confirmation(withdrawal.id, confirmer.id, now)
                count = self._store.count_confirmations(withdrawal.id)
                self._store.record_transition(
                    withdrawal_id=withdrawal.id,
                    actor_id=confirmer.id,
                    action="WITHDRAWAL_CONFIRMED",
                    previous_state=withdrawal.status,
                    new_state=withdrawal.status,
                    correlation_id=correlation_id,
                    now=now,
                    payload={"confirmations": count},
                )

                if count >= self._config.required_confirmations:
                    ok, code = validate_transition(
                        withdrawal.status, WithdrawalStatus.CONFIRMED.value, correlation_id
                    )
                    if ok:
                        ok = self._store.update_status(
                            withdrawal.id,
                            WithdrawalStatus.CONFIRMED.value,
                            now,
                            expected_status=WithdrawalStatus.PENDING.value,
                        )
                        code = WithdrawalErrorCode.INVALID_TRANSITION
                    if not ok:
                        self._db.rollback()
                        current = self._store.get(withdrawal.id) or withdrawal
                        return self._fail(
                            code,
                            f"Cannot confirm withdrawal with status: {current.status}",
                            correlation_id,
                            current,
                        )
                    self._store.record_transition(
                        withdrawal_id=withdrawal.id,
                        actor_id=confirmer.id,
                        action="STATE_TRANSITION",
                        previous_state=WithdrawalStatus.PENDING.value,
                        new_state=WithdrawalStatus.CONFIRMED.value,
                        correlation_id=correlation_id,
                        now=now,
                    )
                    reached_threshold = True
                self._db.commit()
            except DuplicateConfirmationError as e:
                self._db.rollback()
                return self._fail(
                    WithdrawalErrorCode.ALREADY_CONFIRMED,
                    str(e),
                    correlation_id,
                    withdrawal,
                )
            except Exception:
                self._db.rollback()
                raise

        record_withdrawal_confirmed(correlation_id)
        logger.info(
            f"[WDR-GATEWAY] Confirmation recorded | "
            f"withdrawal_id={withdrawal.id} | "
            f"confirmer={confirmer.id} | "
            f"confirmations={count}/{self._config.required_confirmations} | "
            f"correlation_id={correlation_id}"
        )

        updated = self._store.get(withdrawal.id)

        if (
            reached_threshold
            and self._config.auto_execute
            and updated.is_matured(now, self._config.timelock_seconds)
        ):
            execution = self._execute(updated, confirmer.id, correlation_id)
            if execution.success:
                return execution
            return WithdrawalResult(
                success=True,
                withdrawal=self._store.get(withdrawal.id),
                correlation_id=correlation_id,
                blocked_reason=execution.error_message,
            )

        return WithdrawalResult(
            success=True,
            withdrawal=updated,
            correlation_id=correlation_id,
        )

    # =========================================================================
    # execute_withdrawal()
    # =========================================================================

    def execute_withdrawal(
        self,
        withdrawal_id: str,
        actor: Optional[User] = None,
    ) -> WithdrawalResult:
        """
        Execute a confirmed withdrawal through the vault.

        Args:
            withdrawal_id: Withdrawal to execute
            actor: Requesting user, or None for the execution worker
        """
        correlation_id = str(uuid.uuid4())

        if actor is not None and not actor.has_role(*CONFIRMER_ROLES):
            return self._fail(
                WithdrawalErrorCode.UNAUTHORIZED,
                f"User role {actor.role} is not authorized to execute withdrawals",
                correlation_id,
            )

        withdrawal = self._store.get(withdrawal_id)
        if withdrawal is None:
            return self._not_found(withdrawal_id, correlation_id)

        return self._execute(
            withdrawal,
            actor.id if actor is not None else SYSTEM_ACTOR,
            correlation_id,
        )

    def _execute(
        self,
        withdrawal: Withdrawal,
        actor_id: str,
        correlation_id: str,
    ) -> WithdrawalResult:
        with _EXECUTION_LOCK:
            # Re-read under the lock so a concurrent execution is seen
            current = self._store.get(withdrawal.id) or withdrawal

            ok, code = validate_transition(
                current.status, WithdrawalStatus.EXECUTED.value, correlation_id
            )
            if not ok:
                return self._fail(
                    code,
                    f"Cannot execute withdrawal with status: {current.status}",
                    correlation_id,
                    current,
                )

            now = self._clock()

            # Guard 1: vault paused
            paused = self._vault.is_paused()
            update_vault_paused(paused)
            if paused:
                return self._blocked(
                    current, actor_id, "paused",
                    WithdrawalErrorCode.VAULT_PAUSED,
                    "Withdrawals are paused",
                    correlation_id, now,
                )

            # Guard 2: timelock
            executable_at = current.executable_at(self._config.timelock_seconds)
            if now < executable_at:
                return self._blocked(
                    current, actor_id, "timelock",
                    WithdrawalErrorCode.TIMELOCK_ACTIVE,
                    f"Timelock not expired. Executable at {executable_at.isoformat()}",
                    correlation_id, now,
                )

            # Guard 3: daily limit
            spent = self._store.spent_on_day(utc_day(now))
            if spent + current.amount > self._config.daily_limit:
                return self._blocked(
                    current, actor_id, "daily_limit",
                    WithdrawalErrorCode.DAILY_LIMIT_EXCEEDED,
                    (
                        f"Daily withdrawal limit exceeded | spent={spent} | "
                        f"amount={current.amount} | limit={self._config.daily_limit}"
                    ),
                    correlation_id, now,
                )

            # Guard 4: vault call
            try:
                receipt = self._vault.execute_withdrawal(
                    current.token_address, current.to, current.amount
                )
            except VaultExecutionError as e:
                record_withdrawal_executed("failed", correlation_id=correlation_id)
                return self._blocked(
                    current, actor_id, "chain",
                    WithdrawalErrorCode.CHAIN_FAILURE,
                    f"Vault execution failed: {e.reason}",
                    correlation_id, now,
                )

            try:
                updated = self._store.update_status(
                    current.id,
                    WithdrawalStatus.EXECUTED.value,
                    now,
                    expected_status=WithdrawalStatus.CONFIRMED.value,
                    tx_hash=receipt.tx_hash,
                )
                if not updated:
                    self._db.rollback()
                    logger.critical(
                        f"[WDR-GATEWAY] Vault executed but withdrawal left confirmed state | "
                        f"withdrawal_id={current.id} | "
                        f"tx_hash={receipt.tx_hash} | "
                        f"correlation_id={correlation_id}"
                    )
                    return self._fail(
                        WithdrawalErrorCode.INVALID_TRANSITION,
                        "Withdrawal status changed during execution",
                        correlation_id,
                        self._store.get(current.id) or current,
                    )
                self._store.record_transition(
                    withdrawal_id=current.id,
                    actor_id=actor_id,
                    action="STATE_TRANSITION",
                    previous_state=WithdrawalStatus.CONFIRMED.value,
                    new_state=WithdrawalStatus.EXECUTED.value,
                    correlation_id=correlation_id,
                    now=now,
                    payload={"tx_hash": receipt.tx_hash},
                )
                self._db.commit()
            except Exception:
                self._db.rollback()
                logger.critical(
                    f"[WDR-GATEWAY] Vault executed but status update failed | "
                    f"withdrawal_id={current.id} | "
                    f"tx_hash={receipt.tx_hash} | "
                    f"correlation_id={correlation_id}"
                )
                raise

        latency = (now - current.created_at).total_seconds()
        record_withdrawal_executed(
            "success",
            amount=current.amount,
            latency_seconds=latency,
            correlation_id=correlation_id,
        )
        logger.info(
            f"[WDR-GATEWAY] Withdrawal executed | "
            f"withdrawal_id={current.id} | "
            f"actor={actor_id} | "
            f"amount={current.amount} | "
            f"tx_hash={receipt.tx_hash} | "
            f"correlation_id={correlation_id}"
        )
        return WithdrawalResult(
            success=True,
            withdrawal=self._store.get(current.id),
            correlation_id=correlation_id,
            executed=True,
        )

    # =========================================================================
    # cancel_withdrawal()
    # =========================================================================

    def cancel_withdrawal(
        self,
        withdrawal_id: str,
        admin: User,
        reason: Optional[str] = None,
    ) -> WithdrawalResult:
        correlation_id = str(uuid.uuid4())

        if not admin.is_admin:
            return self._fail(
                WithdrawalErrorCode.UNAUTHORIZED,
                "Only admins can cancel withdrawals",
                correlation_id,
            )

        with _EXECUTION_LOCK:
            withdrawal = self._store.get(withdrawal_id)
            if withdrawal is None:
                return self._not_found(withdrawal_id, correlation_id)

            ok, code = validate_transition(
                withdrawal.status, WithdrawalStatus.CANCELLED.value, correlation_id
            )
            if not ok:
                return self._fail(
                    code,
                    f"Cannot cancel withdrawal with status: {withdrawal.status}",
                    correlation_id,
                    withdrawal,
                )

            now = self._clock()
            try:
                updated = self._store.update_status(
                    withdrawal.id,
                    WithdrawalStatus.CANCELLED.value,
                    now,
                    expected_status=withdrawal.status,
                    cancel_reason=reason,
                )
                if not updated:
                    self._db.rollback()
                    current = self._store.get(withdrawal.id) or withdrawal
                    return self._fail(
                        WithdrawalErrorCode.INVALID_TRANSITION,
                        f"Cannot cancel withdrawal with status: {current.status}",
                        correlation_id,
                        current,
                    )
                self._store.record_transition(
                    withdrawal_id=withdrawal.id,
                    actor_id=admin.id,
                    action="STATE_TRANSITION",
                    previous_state=withdrawal.status,
                    new_state=WithdrawalStatus.CANCELLED.value,
                    correlation_id=correlation_id,
                    now=now,
                    payload={"reason": reason},
                )
                self._db.commit()
            except Exception:
                self._db.rollback()
                raise

        record_withdrawal_cancelled(correlation_id)
        logger.info(
            f"[WDR-GATEWAY] Withdrawal cancelled | "
            f"withdrawal_id={withdrawal.id} | "
            f"admin={admin.id} | "
            f"previous_status={withdrawal.status} | "
            f"reason={reason} | "
            f"correlation_id={correlation_id}"
        )
        return WithdrawalResult(
            success=True,
            withdrawal=self._store.get(withdrawal.id),
            correlation_id=correlation_id,
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def get_withdrawal(self, withdrawal_id: str, viewer: User) -> WithdrawalResult:
        correlation_id = str(uuid.uuid4())
        withdrawal = self._store.get(withdrawal_id)
        if withdrawal is None:
            return self._not_found(withdrawal_id, correlation_id)
        if withdrawal.user_id != viewer.id and not viewer.is_admin:
            return self._fail(
                WithdrawalErrorCode.UNAUTHORIZED,
                "Not authorized to access this withdrawal",
                correlation_id,
            )
        return WithdrawalResult(success=True, withdrawal=withdrawal, correlation_id=correlation_id)

    def list_withdrawals(self, status: Optional[str] = None) -> List[Withdrawal]:
        return self._store.list(status)

    def list_my_withdrawals(self, user: User) -> List[Withdrawal]:
        return self._store.list_by_user(user.id)

    def get_pending_withdrawals(self) -> List[Withdrawal]:
        return self._store.pending_for_confirmation()

    def process_matured(self) -> List[WithdrawalResult]:
        """
        Execute every confirmed withdrawal whose timelock has elapsed.

        Blocked withdrawals stay confirmed and are retried next cycle.
        """
        matured = self._store.list_executable(self._clock(), self._config.timelock_seconds)
        results = []
        for withdrawal in matured:
            correlation_id = str(uuid.uuid4())
            try:
                results.append(self._execute(withdrawal, SYSTEM_ACTOR, correlation_id))
            except Exception as e:
                logger.error(
                    f"[WDR-GATEWAY] Matured execution failed | "
                    f"withdrawal_id={withdrawal.id} | "
                    f"error={str(e)} | "
                    f"correlation_id={correlation_id}"
                )
        return results

    # =========================================================================
    # Result helpers
    # =========================================================================

    def _blocked(
        self,
        withdrawal: Withdrawal,
        actor_id: str,
        reason: str,
        error_code: str,
        message: str,
        correlation_id: str,
        now: datetime,
    ) -> WithdrawalResult:
        record_withdrawal_blocked(reason, correlation_id)
        try:
            self._store.record_transition(
                withdrawal_id=withdrawal.id,
                actor_id=actor_id,
                action="EXECUTION_BLOCKED",
                previous_state=withdrawal.status,
                new_state=withdrawal.status,
                correlation_id=correlation_id,
                now=now,
                payload={"reason": reason, "message": message},
                error_code=error_code,
            )
            self._db.commit()
        except Exception as e:
            self._db.rollback()
            logger.error(
                f"[WDR-GATEWAY] Failed to audit blocked execution | "
                f"error={str(e)} | "
                f"correlation_id={correlation_id}"
            )
        return self._fail(error_code, message, correlation_id, withdrawal)

    def _not_found(self, withdrawal_id: str, correlation_id: str) -> WithdrawalResult:
        return self._fail(
            WithdrawalErrorCode.NOT_FOUND,
            f"Withdrawal not found with id of {withdrawal_id}",
            correlation_id,
        )

    @staticmethod
    def _fail(
        error_code: str,
        message: str,
        correlation_id: str,
        withdrawal: Optional[Withdrawal] = None,
    ) -> WithdrawalResult:
        logger.warning(
            f"[{error_code}] {message} | "
            f"withdrawal_id={withdrawal.id if withdrawal else None} | "
            f"correlation_id={correlation_id}"
        )
        return WithdrawalResult(
            success=False,
            withdrawal=withdrawal,
            error_code=error_code,
            error_message=message,
            correlation_id=correlation_id,
        )


__all__ = [
    "WithdrawalGateway",
    "SYSTEM_ACTOR",
    "CONFIRMER_ROLES",
]
