# ============================================================================
# RaceFi Backend v1.0.0
# Authentication & Security Module
# ============================================================================

from app.auth.security import (
    TokenError,
    hash_password,
    verify_password,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
)
from app.auth.dependencies import get_current_user, require_roles

__all__ = [
    "TokenError",
    "hash_password",
    "verify_password",
    "create_access_token",
    "create_refresh_token",
    "decode_access_token",
    "decode_refresh_token",
    "get_current_user",
    "require_roles",
]
