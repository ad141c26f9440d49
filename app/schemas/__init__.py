# ============================================================================
# RaceFi Backend v1.0.0
# Pydantic Schemas - Data Validation Layer
# ============================================================================

from app.schemas.user import UserRole, UserOut, RegisterRequest, LoginRequest
from app.schemas.audit import AuditCreate, AuditUpdate, AuditOut
from app.schemas.withdrawal import WithdrawalCreate, WithdrawalOut

__all__ = [
    "UserRole",
    "UserOut",
    "RegisterRequest",
    "LoginRequest",
    "AuditCreate",
    "AuditUpdate",
    "AuditOut",
    "WithdrawalCreate",
    "WithdrawalOut",
]
