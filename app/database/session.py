"""
============================================================================
RaceFi Backend v1.0.0
Database Session - SQLAlchemy Engine & Session Management
============================================================================

Reliability Level: L6 Critical
Input Constraints: DATABASE_URL (SQLite for development, PostgreSQL in production)
Side Effects: Database connections

- Connection pooling for PostgreSQL
- All connections run in UTC
- Sessions roll back on any request error

============================================================================
"""

import os
from typing import Any, Dict, Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from dotenv import load_dotenv

load_dotenv()


# ============================================================================
# DATABASE CONFIGURATION
# ============================================================================

DEFAULT_DATABASE_URL = "sqlite:///./racefi.db"


def get_database_url() -> str:
    """
    Read the database URL from the environment.

    Environment Variables:
        DATABASE_URL: SQLAlchemy URL (default: sqlite:///./racefi.db)
    """
    return os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)


def build_engine(database_url: str) -> Engine:
    """
    Create an engine with dialect-appropriate settings.

    SQLite gets cross-thread access for FastAPI's threadpool; PostgreSQL
    gets a connection pool and UTC session timezone.
    """
    echo = os.getenv("DB_ECHO", "false").lower() == "true"

    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )

    kwargs: Dict[str, Any] = {
        "pool_size": 10,
        "max_overflow": 20,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "pool_pre_ping": True,
        "echo": echo,
    }
    pg_engine = create_engine(database_url, **kwargs)

    @event.listens_for(pg_engine, "connect")
    def set_timezone(dbapi_connection, connection_record):
        """All timestamps are UTC."""
        cursor = dbapi_connection.cursor()
        cursor.execute("SET timezone TO 'UTC'")
        cursor.close()

    return pg_engine


# ============================================================================
# ENGINE / SESSION FACTORY
# ============================================================================

DATABASE_URL = get_database_url()

engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine
)


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database session injection.

    Yields:
        Session: SQLAlchemy database session

    The session is closed after the request and rolled back on exception.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# ============================================================================
# HEALTH CHECK
# ============================================================================

def check_database_connection(target: Engine = None) -> bool:
    """
    Verify database connectivity.

    Raises:
        Exception: If database connection fails
    """
    try:
        with (target or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        raise Exception(f"Database connection failed: {e}")


# ============================================================================
# END OF DATABASE SESSION MODULE
# ============================================================================
