"""
============================================================================
RaceFi Backend v1.0.0
Prometheus Metrics - Withdrawal, Audit and HTTP Observability
============================================================================

Reliability Level: L6 Critical
Input Constraints: Amounts as Decimal
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- withdrawal_requests_total: Withdrawals created
- withdrawal_confirmations_total: Confirmations recorded
- withdrawal_executions_total: Executions by outcome
- withdrawal_cancellations_total: Cancellations
- withdrawal_blocked_total: Execution attempts blocked, by reason
- withdrawal_request_to_execution_seconds: Request-to-execution latency
- withdrawal_amount_executed: Executed amount distribution (ether)
- vault_paused: 1 while the vault is paused
- audits_created_total: Audits created, by network
- http_requests_total / http_request_duration_seconds: API traffic

ZERO-FLOAT MANDATE
------------------
Amounts are converted from Decimal to float ONLY at the Prometheus
boundary. Recording a metric never raises.

============================================================================
"""

import logging
from decimal import Decimal
from typing import Optional

from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

WITHDRAWAL_REQUESTS = Counter(
    "withdrawal_requests_total",
    "Total number of withdrawal requests created",
)

WITHDRAWAL_CONFIRMATIONS = Counter(
    "withdrawal_confirmations_total",
    "Total number of withdrawal confirmations recorded",
)

WITHDRAWAL_EXECUTIONS = Counter(
    "withdrawal_executions_total",
    "Total number of withdrawal execution attempts by outcome",
    ["outcome"]
)

WITHDRAWAL_CANCELLATIONS = Counter(
    "withdrawal_cancellations_total",
    "Total number of cancelled withdrawals",
)

WITHDRAWAL_BLOCKED = Counter(
    "withdrawal_blocked_total",
    "Withdrawal executions blocked before reaching the vault",
    ["reason"]
)

# Buckets span seconds (timelock disabled) to days (default 2 day timelock)
WITHDRAWAL_EXECUTION_LATENCY = Histogram(
    "withdrawal_request_to_execution_seconds",
    "Time from withdrawal request to on-chain execution",
    buckets=[1, 60, 3600, 21600, 86400, 172800, 259200, 604800]
)

WITHDRAWAL_AMOUNT = Histogram(
    "withdrawal_amount_executed",
    "Distribution of executed withdrawal amounts in ether units",
    buckets=[0.01, 0.1, 0.5, 1, 2, 5, 10, 50, 100]
)

VAULT_PAUSED_GAUGE = Gauge(
    "vault_paused",
    "1 while the withdrawal vault is paused, otherwise 0"
)

AUDITS_CREATED = Counter(
    "audits_created_total",
    "Total number of contract audits requested",
    ["network"]
)

HTTP_REQUESTS = Counter(
    "http_requests_total",
    "Total HTTP requests by method, route and status",
    ["method", "route", "status"]
)

HTTP_REQUEST_DURATION = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "route"]
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_withdrawal_requested(correlation_id: Optional[str] = None) -> None:
    try:
        WITHDRAWAL_REQUESTS.inc()
        logger.debug(
            "Metric: withdrawal_requested | correlation_id=%s", correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record withdrawal_requested metric | error=%s",
            str(e)
        )


def record_withdrawal_confirmed(correlation_id: Optional[str] = None) -> None:
    try:
        WITHDRAWAL_CONFIRMATIONS.inc()
        logger.debug(
            "Metric: withdrawal_confirmed | correlation_id=%s", correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record withdrawal_confirmed metric | error=%s",
            str(e)
        )


def record_withdrawal_executed(
    outcome: str,
    amount: Optional[Decimal] = None,
    latency_seconds: Optional[float] = None,
    correlation_id: Optional[str] = None
) -> None:
    """
    Record an execution attempt.

    Reliability Level: L6 Critical
    Input Constraints: outcome is "success" or "failed"
    Side Effects: Increments counter, observes histograms on success

    Args:
        outcome: Execution outcome label
        amount: Executed amount (Decimal, ether units)
        latency_seconds: Seconds between request and execution
        correlation_id: Optional tracking ID
    """
    try:
        WITHDRAWAL_EXECUTIONS.labels(outcome=outcome).inc()
        if amount is not None:
            WITHDRAWAL_AMOUNT.observe(float(amount))
        if latency_seconds is not None:
            WITHDRAWAL_EXECUTION_LATENCY.observe(latency_seconds)
        logger.debug(
            "Metric: withdrawal_executed | outcome=%s | amount=%s | "
            "latency_seconds=%s | correlation_id=%s",
            outcome, amount, latency_seconds, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record withdrawal_executed metric | error=%s",
            str(e)
        )


def record_withdrawal_cancelled(correlation_id: Optional[str] = None) -> None:
    try:
        WITHDRAWAL_CANCELLATIONS.inc()
    except Exception as e:
        logger.error(
            "[OBS-004] Failed to record withdrawal_cancelled metric | error=%s",
            str(e)
        )


def record_withdrawal_blocked(reason: str, correlation_id: Optional[str] = None) -> None:
    """
    Record an execution blocked by a guard.

    Args:
        reason: Guard that blocked (paused, timelock, daily_limit, chain)
        correlation_id: Optional tracking ID
    """
    try:
        WITHDRAWAL_BLOCKED.labels(reason=reason).inc()
        logger.debug(
            "Metric: withdrawal_blocked | reason=%s | correlation_id=%s",
            reason, correlation_id
        )
    except Exception as e:
        logger.error(
            "[OBS-005] Failed to record withdrawal_blocked metric | error=%s",
            str(e)
        )


def update_vault_paused(paused: bool) -> None:
    try:
        VAULT_PAUSED_GAUGE.set(1 if paused else 0)
    except Exception as e:
        logger.error(
            "[OBS-006] Failed to update vault_paused gauge | error=%s",
            str(e)
        )


def record_audit_created(network: str) -> None:
    try:
        AUDITS_CREATED.labels(network=network).inc()
    except Exception as e:
        logger.error(
            "[OBS-007] Failed to record audit_created metric | error=%s",
            str(e)
        )


def record_http_request(
    method: str,
    route: str,
    status: int,
    duration_seconds: float
) -> None:
    try:
        HTTP_REQUESTS.labels(method=method, route=route, status=str(status)).inc()
        HTTP_REQUEST_DURATION.labels(method=method, route=route).observe(duration_seconds)
    except Exception as e:
        logger.error(
            "[OBS-008] Failed to record http_request metric | error=%s",
            str(e)
        )
