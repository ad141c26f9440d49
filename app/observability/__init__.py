"""
============================================================================
RaceFi Backend v1.0.0
Observability Module - Prometheus Metrics and Request Logging
============================================================================

Reliability Level: STANDARD
Input Constraints: None
Side Effects: Exposes Prometheus metrics

============================================================================
"""

from app.observability.metrics import (
    WITHDRAWAL_REQUESTS,
    WITHDRAWAL_CONFIRMATIONS,
    WITHDRAWAL_EXECUTIONS,
    WITHDRAWAL_CANCELLATIONS,
    WITHDRAWAL_BLOCKED,
    WITHDRAWAL_EXECUTION_LATENCY,
    VAULT_PAUSED_GAUGE,
    AUDITS_CREATED,
    record_withdrawal_requested,
    record_withdrawal_confirmed,
    record_withdrawal_executed,
    record_withdrawal_cancelled,
    record_withdrawal_blocked,
    update_vault_paused,
    record_audit_created,
    record_http_request,
)
from app.observability.request_logger import log_requests

__all__ = [
    "WITHDRAWAL_REQUESTS",
    "WITHDRAWAL_CONFIRMATIONS",
    "WITHDRAWAL_EXECUTIONS",
    "WITHDRAWAL_CANCELLATIONS",
    "WITHDRAWAL_BLOCKED",
    "WITHDRAWAL_EXECUTION_LATENCY",
    "VAULT_PAUSED_GAUGE",
    "AUDITS_CREATED",
    "record_withdrawal_requested",
    "record_withdrawal_confirmed",
    "record_withdrawal_executed",
    "record_withdrawal_cancelled",
    "record_withdrawal_blocked",
    "update_vault_paused",
    "record_audit_created",
    "record_http_request",
    "log_requests",
]
