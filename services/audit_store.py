"""
============================================================================
RaceFi Backend v1.0.0
Audit Store - Contract Audit Records
============================================================================

Reliability Level: STANDARD
Input Constraints: Validated AuditCreate / AuditUpdate payloads
Side Effects: Database writes (committed per call)

Findings and metadata are stored as JSON text. completed_at is stamped
the first time an audit moves to completed and never overwritten.

============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple
import json
import logging
import uuid

from sqlalchemy import text
from sqlalchemy.orm import Session

from app.schemas.audit import AuditStatus
from app.schemas.common import parse_timestamp

logger = logging.getLogger(__name__)


_AUDIT_COLUMNS = """
    id, user_id, contract_address, network, status, findings, metadata,
    score, error, report_url, created_at, updated_at, completed_at
"""

SORTABLE_FIELDS = ("created_at", "updated_at", "score", "status", "network", "contract_address")
DEFAULT_SORT = "-created_at"


@dataclass
class Audit:
    id: str
    user_id: str
    contract_address: str
    network: str
    status: str
    created_at: datetime
    updated_at: datetime
    findings: List[Dict[str, Any]] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    score: Optional[int] = None
    error: Optional[str] = None
    report_url: Optional[str] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.created_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "contract_address": self.contract_address,
            "network": self.network,
            "status": self.status,
            "findings": self.findings,
            "metadata": self.metadata,
            "score": self.score,
            "error": self.error,
            "report_url": self.report_url,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


def parse_sort(sort: Optional[str]) -> str:
    """
    Translate "-field,field2" into an ORDER BY clause.

    Unknown fields are dropped; an empty result falls back to -created_at.
    """
    clauses = []
    for part in (sort or DEFAULT_SORT).split(","):
        part = part.strip()
        if not part:
            continue
        direction = "DESC" if part.startswith("-") else "ASC"
        name = part.lstrip("-+")
        if name in SORTABLE_FIELDS:
            clauses.append(f"{name} {direction}")
    if not clauses:
        clauses.append("created_at DESC")
    return ", ".join(clauses)


class AuditStore:
    """Raw SQL repository for the audits table."""

    def __init__(self, db_session: Session) -> None:
        self._db = db_session

    def create(
        self,
        user_id: str,
        contract_address: str,
        network: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Audit:
        now = datetime.now(timezone.utc)
        audit = Audit(
            id=str(uuid.uuid4()),
            user_id=user_id,
            contract_address=contract_address.lower(),
            network=network,
            status=AuditStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            metadata=metadata or {},
        )
        self._db.execute(text("""
            INSERT INTO audits (
                id, user_id, contract_address, network, status, findings,
                metadata, created_at, updated_at
            ) VALUES (
                :id, :user_id, :contract_address, :network, :status, :findings,
                :metadata, :created_at, :updated_at
            )
        """), {
            "id": audit.id,
            "user_id": user_id,
            "contract_address": audit.contract_address,
            "network": network,
            "status": audit.status,
            "findings": json.dumps(audit.findings),
            "metadata": json.dumps(audit.metadata),
            "created_at": now.isoformat(),
            "updated_at": now.isoformat(),
        })
        self._db.commit()

        logger.info(
            f"[AUDIT-STORE] Audit created | audit_id={audit.id} | "
            f"contract={audit.contract_address} | network={network}"
        )
        return audit

    def get(self, audit_id: str) -> Optional[Audit]:
        row = self._db.execute(
            text(f"SELECT {_AUDIT_COLUMNS} FROM audits WHERE id = :id"),
            {"id": audit_id},
        ).mappings().fetchone()
        return _to_audit(row) if row else None

    def list(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        network: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        limit: int = 25,
    ) -> Tuple[List[Audit], int]:
        """
        Page through audits.

        Args:
            user_id: Restrict to one owner (None for all, admin view)

        Returns:
            (page of audits, total matching count)
        """
        conditions = []
        params: Dict[str, Any] = {}
        if user_id is not None:
            conditions.append("user_id = :user_id")
            params["user_id"] = user_id
        if status is not None:
            conditions.append("status = :status")
            params["status"] = status
        if network is not None:
            conditions.append("network = :network")
            params["network"] = network
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        total = self._db.execute(
            text(f"SELECT COUNT(*) FROM audits {where}"), params
        ).scalar_one()

        params["limit"] = limit
        params["offset"] = (page - 1) * limit
        rows = self._db.execute(text(
            f"SELECT {_AUDIT_COLUMNS} FROM audits {where} "
            f"ORDER BY {parse_sort(sort)} LIMIT :limit OFFSET :offset"
        ), params).mappings().fetchall()

        return [_to_audit(row) for row in rows], int(total)

    def update(
        self,
        audit: Audit,
        status: Optional[str] = None,
        findings: Optional[List[Dict[str, Any]]] = None,
        score: Optional[int] = None,
        error: Optional[str] = None,
        report_url: Optional[str] = None,
    ) -> Audit:
        now = datetime.now(timezone.utc)
        if status is not None:
            audit.status = status
        if findings is not None:
            audit.findings = findings
        if score is not None:
            audit.score = score
        if error is not None:
            audit.error = error
        if report_url is not None:
            audit.report_url = report_url
        if audit.status == AuditStatus.COMPLETED.value and audit.completed_at is None:
            audit.completed_at = now
        audit.updated_at = now

        self._db.execute(text("""
            UPDATE audits
            SET status = :status, findings = :findings, score = :score,
                error = :error, report_url = :report_url,
                completed_at = :completed_at, updated_at = :updated_at
            WHERE id = :id
        """), {
            "id": audit.id,
            "status": audit.status,
            "findings": json.dumps(audit.findings),
            "score": audit.score,
            "error": audit.error,
            "report_url": audit.report_url,
            "completed_at": audit.completed_at.isoformat() if audit.completed_at else None,
            "updated_at": now.isoformat(),
        })
        self._db.commit()
        return audit

    def delete(self, audit_id: str) -> None:
        self._db.execute(text("DELETE FROM audits WHERE id = :id"), {"id": audit_id})
        self._db.commit()

    def stats(self, user_id: str) -> Dict[str, Any]:
        """
        Per-status counts and average scores for one user's audits.

        avg_score is rounded to 2 places and 0 when no audit has a score.
        """
        rows = self._db.execute(text("""
            SELECT status, COUNT(*) AS count, AVG(score) AS avg_score
            FROM audits
            WHERE user_id = :user_id
            GROUP BY status
            ORDER BY status ASC
        """), {"user_id": user_id}).mappings().fetchall()

        stats = []
        counts: Dict[str, int] = {}
        for row in rows:
            counts[row["status"]] = int(row["count"])
            avg = row["avg_score"]
            avg_score = (
                float(Decimal(str(avg)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
                if avg is not None else 0
            )
            stats.append({
                "status": row["status"],
                "count": int(row["count"]),
                "avg_score": avg_score,
            })

        return {
            "stats": stats,
            "total": sum(counts.values()),
            "completed": counts.get(AuditStatus.COMPLETED.value, 0),
            "in_progress": (
                counts.get(AuditStatus.PENDING.value, 0)
                + counts.get(AuditStatus.IN_PROGRESS.value, 0)
            ),
        }


def _to_audit(row: Any) -> Audit:
    return Audit(
        id=row["id"],
        user_id=row["user_id"],
        contract_address=row["contract_address"],
        network=row["network"],
        status=row["status"],
        created_at=parse_timestamp(row["created_at"]),
        updated_at=parse_timestamp(row["updated_at"]),
        findings=json.loads(row["findings"] or "[]"),
        metadata=json.loads(row["metadata"] or "{}"),
        score=row["score"],
        error=row["error"],
        report_url=row["report_url"],
        completed_at=parse_timestamp(row["completed_at"]),
    )
