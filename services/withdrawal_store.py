"""
============================================================================
Withdrawal Multisig - Persistence
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Amounts are stored as decimal strings and summed as Decimal
Traceability: Every status transition writes an audit_log row

Raw SQL persistence for the withdrawals and withdrawal_confirmations
tables. Methods execute within the caller's session and never commit;
the gateway owns the transaction boundary.

============================================================================
"""

from decimal import Decimal
from typing import Optional, Dict, Any, List
from datetime import datetime, timedelta, timezone
import json
import logging
import uuid

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.schemas.common import parse_timestamp
from services.withdrawal_models import Confirmation, Withdrawal, WithdrawalStatus

logger = logging.getLogger(__name__)


_WITHDRAWAL_COLUMNS = """
    id, user_id, token_address, amount, to_address, status, tx_hash,
    cancel_reason, created_at, updated_at, confirmed_at, executed_at,
    cancelled_at
"""


def _ts(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat()


class DuplicateConfirmationError(Exception):
    """Raised when a user confirms the same withdrawal twice."""


class WithdrawalStore:
    """
    Withdrawal repository over a SQLAlchemy session.

    Reliability Level: L6 Critical
    Side Effects: Database writes (uncommitted)
    """

    def __init__(self, db_session: Session) -> None:
        self._db = db_session

    # =========================================================================
    # Writes
    # =========================================================================

    def create(
        self,
        user_id: str,
        token_address: str,
        amount: Decimal,
        to: str,
        now: datetime,
    ) -> Withdrawal:
        withdrawal = Withdrawal(
            id=str(uuid.uuid4()),
            user_id=user_id,
            token_address=token_address,
            amount=amount,
            to=to,
            status=WithdrawalStatus.PENDING.value,
            created_at=now,
            updated_at=now,
        )

        self._db.execute(text("""
            INSERT INTO withdrawals (
                id, user_id, token_address, amount, to_address, status,
                created_at, updated_at
            ) VALUES (
                :id, :user_id, :token_address, :amount, :to_address, :status,
                :created_at, :updated_at
            )
        """), {
            "id": withdrawal.id,
            "user_id": user_id,
            "token_address": token_address,
            "amount": str(amount),
            "to_address": to,
            "status": withdrawal.status,
            "created_at": _ts(now),
            "updated_at": _ts(now),
        })
        return withdrawal

    def add_confirmation(self, withdrawal_id: str, user_id: str, now: datetime) -> None:
        """
        Record a confirmation.

        Raises:
            DuplicateConfirmationError: If user_id already confirmed
        """
        existing = self._db.execute(text("""
            SELECT 1 FROM withdrawal_confirmations
            WHERE withdrawal_id = :withdrawal_id AND user_id = :user_id
        """), {"withdrawal_id": withdrawal_id, "user_id": user_id}).fetchone()
        if existing is not None:
            raise DuplicateConfirmationError(
                f"User {user_id} already confirmed withdrawal {withdrawal_id}"
            )

        self._db.execute(text("""
            INSERT INTO withdrawal_confirmations (withdrawal_id, user_id, confirmed_at)
            VALUES (:withdrawal_id, :user_id, :confirmed_at)
        """), {
            "withdrawal_id": withdrawal_id,
            "user_id": user_id,
            "confirmed_at": _ts(now),
        })

    def update_status(
        self,
        withdrawal_id: str,
        new_status: str,
        now: datetime,
        expected_status: str,
        tx_hash: Optional[str] = None,
        cancel_reason: Optional[str] = None,
    ) -> bool:
        """
        Compare-and-set the status and stamp the matching lifecycle timestamp.

        Returns:
            False if the row is no longer in expected_status
        """
        stamp_column = {
            WithdrawalStatus.CONFIRMED.value: "confirmed_at",
            WithdrawalStatus.EXECUTED.value: "executed_at",
            WithdrawalStatus.CANCELLED.value: "cancelled_at",
        }.get(new_status)

        assignments = ["status = :status", "updated_at = :now"]
        if stamp_column is not None:
            assignments.append(f"{stamp_column} = :now")
        if tx_hash is not None:
            assignments.append("tx_hash = :tx_hash")
        if cancel_reason is not None:
            assignments.append("cancel_reason = :cancel_reason")

        result = self._db.execute(
            text(
                f"UPDATE withdrawals SET {', '.join(assignments)} "
                f"WHERE id = :id AND status = :expected_status"
            ),
            {
                "id": withdrawal_id,
                "status": new_status,
                "expected_status": expected_status,
                "now": _ts(now),
                "tx_hash": tx_hash,
                "cancel_reason": cancel_reason,
            },
        )
        if result.rowcount == 0:
            logger.warning(
                f"[WDR-STORE] Status changed concurrently | "
                f"withdrawal_id={withdrawal_id} | "
                f"expected={expected_status} | "
                f"target={new_status}"
            )
            return False
        return True

    def count_confirmations(self, withdrawal_id: str) -> int:
        return self._db.execute(text("""
            SELECT COUNT(*) FROM withdrawal_confirmations
            WHERE withdrawal_id = :withdrawal_id
        """), {"withdrawal_id": withdrawal_id}).scalar() or 0

    def record_transition(
        self,
        withdrawal_id: str,
        actor_id: str,
        action: str,
        previous_state: Optional[str],
        new_state: Optional[str],
        correlation_id: str,
        now: datetime,
        payload: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        """Append an audit_log row for a withdrawal action."""
        self._db.execute(text("""
            INSERT INTO audit_log (
                id, actor_id, action, target_type, target_id,
                previous_state, new_state, payload, correlation_id,
                error_code, created_at
            ) VALUES (
                :id, :actor_id, :action, :target_type, :target_id,
                :previous_state, :new_state, :payload, :correlation_id,
                :error_code, :created_at
            )
        """), {
            "id": str(uuid.uuid4()),
            "actor_id": actor_id,
            "action": action,
            "target_type": "withdrawal",
            "target_id": withdrawal_id,
            "previous_state": json.dumps({"status": previous_state}) if previous_state else None,
            "new_state": json.dumps({"status": new_state}) if new_state else None,
            "payload": json.dumps(payload or {}, default=str),
            "correlation_id": correlation_id,
            "error_code": error_code,
            "created_at": _ts(now),
        })

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, withdrawal_id: str) -> Optional[Withdrawal]:
        row = self._db.execute(
            text(f"SELECT {_WITHDRAWAL_COLUMNS} FROM withdrawals WHERE id = :id"),
            {"id": withdrawal_id},
        ).mappings().fetchone()
        if row is None:
            return None
        return self._hydrate([row])[0]

    def list(self, status: Optional[str] = None) -> List[Withdrawal]:
        """All withdrawals, newest first, optionally filtered by status."""
        if status is None:
            rows = self._db.execute(text(
                f"SELECT {_WITHDRAWAL_COLUMNS} FROM withdrawals ORDER BY created_at DESC"
            )).mappings().fetchall()
        else:
            rows = self._db.execute(text(
                f"SELECT {_WITHDRAWAL_COLUMNS} FROM withdrawals "
                f"WHERE status = :status ORDER BY created_at DESC"
            ), {"status": status}).mappings().fetchall()
        return self._hydrate(rows)

    def list_by_user(self, user_id: str) -> List[Withdrawal]:
        rows = self._db.execute(text(
            f"SELECT {_WITHDRAWAL_COLUMNS} FROM withdrawals "
            f"WHERE user_id = :user_id ORDER BY created_at DESC"
        ), {"user_id": user_id}).mappings().fetchall()
        return self._hydrate(rows)

    def pending_for_confirmation(self) -> List[Withdrawal]:
        """Pending withdrawals, oldest first."""
        rows = self._db.execute(text(
            f"SELECT {_WITHDRAWAL_COLUMNS} FROM withdrawals "
            f"WHERE status = :status ORDER BY created_at ASC"
        ), {"status": WithdrawalStatus.PENDING.value}).mappings().fetchall()
        return self._hydrate(rows)

    def list_executable(self, now: datetime, timelock_seconds: int) -> List[Withdrawal]:
        """Confirmed withdrawals whose timelock has elapsed, oldest first."""
        cutoff = now - timedelta(seconds=timelock_seconds)
        rows = self._db.execute(text(
            f"SELECT {_WITHDRAWAL_COLUMNS} FROM withdrawals "
            f"WHERE status = :status AND created_at <= :cutoff "
            f"ORDER BY created_at ASC"
        ), {
            "status": WithdrawalStatus.CONFIRMED.value,
            "cutoff": _ts(cutoff),
        }).mappings().fetchall()
        return self._hydrate(rows)

    def spent_on_day(self, day: int) -> Decimal:
        """
        Sum of amounts executed during a UTC day.

        Args:
            day: UTC day number (epoch seconds // 86400)
        """
        start = datetime.fromtimestamp(day * 86400, tz=timezone.utc)
        end = start + timedelta(days=1)
        rows = self._db.execute(text("""
            SELECT amount FROM withdrawals
            WHERE status = :status
              AND executed_at >= :start
              AND executed_at < :end
        """), {
            "status": WithdrawalStatus.EXECUTED.value,
            "start": _ts(start),
            "end": _ts(end),
        }).fetchall()
        return sum((Decimal(row[0]) for row in rows), Decimal("0"))

    # =========================================================================
    # Hydration
    # =========================================================================

    def _confirmations_for(self, ids: List[str]) -> Dict[str, List[Confirmation]]:
        if not ids:
            return {}
        params = {f"id_{i}": value for i, value in enumerate(ids)}
        placeholders = ", ".join(f":{name}" for name in params)
        rows = self._db.execute(text(
            f"SELECT withdrawal_id, user_id, confirmed_at FROM withdrawal_confirmations "
            f"WHERE withdrawal_id IN ({placeholders}) ORDER BY confirmed_at ASC"
        ), params).fetchall()

        grouped: Dict[str, List[Confirmation]] = {value: [] for value in ids}
        for withdrawal_id, user_id, confirmed_at in rows:
            grouped[withdrawal_id].append(
                Confirmation(user_id=user_id, timestamp=parse_timestamp(confirmed_at))
            )
        return grouped

    def _hydrate(self, rows: List[Any]) -> List[Withdrawal]:
        confirmations = self._confirmations_for([row["id"] for row in rows])
        return [
            Withdrawal(
                id=row["id"],
                user_id=row["user_id"],
                token_address=row["token_address"],
                amount=Decimal(row["amount"]),
                to=row["to_address"],
                status=row["status"],
                created_at=parse_timestamp(row["created_at"]),
                updated_at=parse_timestamp(row["updated_at"]),
                confirmations=confirmations.get(row["id"], []),
                tx_hash=row["tx_hash"],
                cancel_reason=row["cancel_reason"],
                confirmed_at=parse_timestamp(row["confirmed_at"]),
                executed_at=parse_timestamp(row["executed_at"]),
                cancelled_at=parse_timestamp(row["cancelled_at"]),
            )
            for row in rows
        ]
