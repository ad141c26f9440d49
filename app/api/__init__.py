# ============================================================================
# RaceFi Backend v1.0.0
# API Routes Module
# ============================================================================

from app.api.audits import router as audits_router
from app.api.auth import router as auth_router
from app.api.users import router as users_router
from app.api.vault import router as vault_router
from app.api.withdrawals import router as withdrawals_router

__all__ = [
    "audits_router",
    "auth_router",
    "users_router",
    "vault_router",
    "withdrawals_router",
]
