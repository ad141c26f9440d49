"""
============================================================================
RaceFi Backend v1.0.0
Database Schema - Table Definitions
============================================================================

Reliability Level: L6 Critical
Input Constraints: SQLAlchemy engine (SQLite or PostgreSQL)
Side Effects: CREATE TABLE / CREATE INDEX (idempotent)

STORAGE CONVENTIONS:
    - Identifiers are UUID strings
    - Timestamps are ISO-8601 UTC strings
    - Token amounts are decimal strings (no floats, no precision loss)
    - Nested documents (findings, metadata) are JSON text

============================================================================
"""

from typing import List

from sqlalchemy import text
from sqlalchemy.engine import Engine


SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'user',
        reset_password_token TEXT,
        reset_password_expire TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audits (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        contract_address TEXT NOT NULL,
        network TEXT NOT NULL DEFAULT 'ethereum',
        status TEXT NOT NULL DEFAULT 'pending',
        findings TEXT NOT NULL DEFAULT '[]',
        metadata TEXT NOT NULL DEFAULT '{}',
        score INTEGER,
        error TEXT,
        report_url TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        completed_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_audits_contract_network ON audits (contract_address, network)",
    "CREATE INDEX IF NOT EXISTS ix_audits_status ON audits (status)",
    "CREATE INDEX IF NOT EXISTS ix_audits_user ON audits (user_id)",
    """
    CREATE TABLE IF NOT EXISTS withdrawals (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users(id),
        token_address TEXT NOT NULL,
        amount TEXT NOT NULL,
        to_address TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        tx_hash TEXT,
        cancel_reason TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        confirmed_at TEXT,
        executed_at TEXT,
        cancelled_at TEXT
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_withdrawals_user_status ON withdrawals (user_id, status)",
    "CREATE INDEX IF NOT EXISTS ix_withdrawals_status_created ON withdrawals (status, created_at)",
    """
    CREATE TABLE IF NOT EXISTS withdrawal_confirmations (
        withdrawal_id TEXT NOT NULL REFERENCES withdrawals(id) ON DELETE CASCADE,
        user_id TEXT NOT NULL,
        confirmed_at TEXT NOT NULL,
        PRIMARY KEY (withdrawal_id, user_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id TEXT PRIMARY KEY,
        actor_id TEXT NOT NULL,
        action TEXT NOT NULL,
        target_type TEXT NOT NULL,
        target_id TEXT NOT NULL,
        previous_state TEXT,
        new_state TEXT,
        payload TEXT,
        correlation_id TEXT NOT NULL,
        error_code TEXT,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_audit_log_target ON audit_log (target_type, target_id)",
]


def init_schema(target: Engine) -> None:
    """Create all tables and indexes if they do not exist."""
    with target.begin() as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))
