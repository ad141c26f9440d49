# ============================================================================
# RaceFi Backend v1.0.0
# Database Module - SQLAlchemy Session Management
# ============================================================================

from app.database.session import get_db, engine, SessionLocal, check_database_connection
from app.database.schema import init_schema

__all__ = ["get_db", "engine", "SessionLocal", "check_database_connection", "init_schema"]
