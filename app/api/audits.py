"""
============================================================================
RaceFi Backend v1.0.0
Audit API Endpoints
============================================================================

Reliability Level: STANDARD
Input Constraints: Bearer token on every route; 0x contract addresses
Side Effects: Audit writes, audits_created_total metric

ENDPOINTS:
    POST   /api/v1/audits        - Request an audit (created pending)
    GET    /api/v1/audits        - Paginated list (own audits unless admin)
    GET    /api/v1/audits/stats  - Per-status counts for the caller
    GET    /api/v1/audits/{id}   - Get one (owner or admin)
    PUT    /api/v1/audits/{id}   - Update status / findings / score
    DELETE /api/v1/audits/{id}   - Delete (owner or admin)

ERROR CODES:
    AUD-404: Audit not found
    SEC-090: Not the owner (401)

============================================================================
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api.errors import api_error
from app.auth.dependencies import get_current_user
from app.database.session import get_db
from app.observability.metrics import record_audit_created
from app.schemas.audit import AuditCreate, AuditNetwork, AuditStatus, AuditUpdate
from services.audit_store import DEFAULT_SORT, Audit, AuditStore
from services.user_store import User

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100


def _load_owned(store: AuditStore, audit_id: str, user: User, action: str) -> Audit:
    audit = store.get(audit_id)
    if audit is None:
        raise api_error("AUD-404", f"Audit not found with id of {audit_id}", status_code=404)
    if audit.user_id != user.id and not user.is_admin:
        logger.warning(
            f"[SEC-090] Audit access denied | audit_id={audit_id} | "
            f"user_id={user.id} | action={action}"
        )
        raise api_error(
            "SEC-090",
            f"User {user.id} is not authorized to {action} this audit",
            status_code=401,
        )
    return audit


@router.post("", status_code=201, summary="Request a contract audit")
def create_audit(
    payload: AuditCreate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    audit = AuditStore(db).create(
        user_id=user.id,
        contract_address=payload.contract_address,
        network=payload.network.value,
        metadata=payload.metadata.model_dump(exclude_none=True) if payload.metadata else None,
    )
    record_audit_created(audit.network)
    return {
        "success": True,
        "data": audit.to_dict(),
        "message": "Audit request recorded.",
    }


@router.get("", summary="List audits")
def list_audits(
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    sort: str = Query(DEFAULT_SORT, description="Comma-separated fields, '-' for descending"),
    status: Optional[AuditStatus] = Query(None),
    network: Optional[AuditNetwork] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    audits, total = AuditStore(db).list(
        user_id=None if user.is_admin else user.id,
        status=status.value if status else None,
        network=network.value if network else None,
        sort=sort,
        page=page,
        limit=limit,
    )

    pagination: Dict[str, Any] = {}
    if page * limit < total:
        pagination["next"] = {"page": page + 1, "limit": limit}
    if page > 1:
        pagination["prev"] = {"page": page - 1, "limit": limit}

    return {
        "success": True,
        "count": len(audits),
        "total": total,
        "pagination": pagination,
        "data": [a.to_dict() for a in audits],
    }


@router.get("/stats", summary="Audit statistics for the caller")
def get_audit_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return {"success": True, "data": AuditStore(db).stats(user.id)}


@router.get("/{audit_id}", summary="Get an audit")
def get_audit(
    audit_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    audit = _load_owned(AuditStore(db), audit_id, user, "access")
    return {"success": True, "data": audit.to_dict()}


@router.put("/{audit_id}", summary="Update an audit")
def update_audit(
    audit_id: str,
    payload: AuditUpdate,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    store = AuditStore(db)
    audit = _load_owned(store, audit_id, user, "update")
    updated = store.update(
        audit,
        status=payload.status.value if payload.status else None,
        findings=(
            [f.model_dump(mode="json") for f in payload.findings]
            if payload.findings is not None else None
        ),
        score=payload.score,
        error=payload.error,
        report_url=payload.report_url,
    )
    logger.info(
        f"[AUDITS] Audit updated | audit_id={audit_id} | "
        f"status={updated.status} | user_id={user.id}"
    )
    return {"success": True, "data": updated.to_dict()}


@router.delete("/{audit_id}", summary="Delete an audit")
def delete_audit(
    audit_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    store = AuditStore(db)
    _load_owned(store, audit_id, user, "delete")
    store.delete(audit_id)
    logger.info(f"[AUDITS] Audit deleted | audit_id={audit_id} | user_id={user.id}")
    return {"success": True, "data": {}}
