"""
============================================================================
RaceFi Backend v1.0.0
Security Module - Password Hashing and JWT Tokens
============================================================================

Reliability Level: L6 Critical
Input Constraints: Secrets of at least 32 characters
Side Effects: None (pure hashing / signing)

SECURITY MANDATE:
- Passwords are stored as bcrypt hashes only
- Access and refresh tokens are HS256 JWTs signed with separate secrets
- Password reset tokens are stored as SHA-256 digests, never in clear
- No silent failures - explicit error codes

============================================================================
"""

import hashlib
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
from dotenv import load_dotenv
from jose import ExpiredSignatureError, JWTError, jwt

load_dotenv()


# ============================================================================
# CONSTANTS
# ============================================================================

ACCESS_SECRET_ENV_VAR = "JWT_SECRET"
REFRESH_SECRET_ENV_VAR = "REFRESH_TOKEN_SECRET"

JWT_ALGORITHM = "HS256"

# 30 days
DEFAULT_ACCESS_EXPIRE_MINUTES = 30 * 24 * 60

DEFAULT_REFRESH_EXPIRE_MINUTES = 7 * 24 * 60

RESET_TOKEN_EXPIRE_MINUTES = 10

MIN_SECRET_LENGTH = 32

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class TokenError(Exception):
    """
    Exception raised when a token cannot be issued or verified.

    Error Codes:
        SEC-001: Missing or malformed credentials
        SEC-002: Missing or invalid secret key
        SEC-003: Invalid or expired token
    """

    def __init__(self, error_code: str, message: str):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# ============================================================================
# SECRETS
# ============================================================================

def _get_secret(env_var: str) -> str:
    """
    Read a signing secret from the environment.

    Raises:
        TokenError: If the secret is missing or shorter than 32 chars (SEC-002)
    """
    secret = os.getenv(env_var)

    if not secret:
        raise TokenError(
            "SEC-002",
            f"{env_var} environment variable is not set. "
            f"Tokens cannot be issued or verified without a secret."
        )

    if len(secret) < MIN_SECRET_LENGTH:
        raise TokenError(
            "SEC-002",
            f"{env_var} is too short ({len(secret)} chars). "
            f"Minimum {MIN_SECRET_LENGTH} characters required."
        )

    return secret


def _read_minutes(env_var: str, default: int) -> int:
    raw = os.getenv(env_var)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value > 0 else default


# ============================================================================
# PASSWORDS
# ============================================================================

def _password_bytes(password: str) -> bytes:
    # bcrypt only hashes the first 72 bytes
    return password.encode("utf-8")[:72]


def hash_password(password: str) -> str:
    """Hash a password with a fresh bcrypt salt."""
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Check a password against its bcrypt hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(_password_bytes(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


# ============================================================================
# JWT
# ============================================================================

def _encode(subject: str, token_type: str, secret: str, expire_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "type": token_type,
        "iat": now,
        "exp": now + timedelta(minutes=expire_minutes),
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: str) -> str:
    return _encode(
        user_id,
        TOKEN_TYPE_ACCESS,
        _get_secret(ACCESS_SECRET_ENV_VAR),
        _read_minutes("JWT_EXPIRE_MINUTES", DEFAULT_ACCESS_EXPIRE_MINUTES),
    )


def create_refresh_token(user_id: str) -> str:
    return _encode(
        user_id,
        TOKEN_TYPE_REFRESH,
        _get_secret(REFRESH_SECRET_ENV_VAR),
        _read_minutes("REFRESH_TOKEN_EXPIRE_MINUTES", DEFAULT_REFRESH_EXPIRE_MINUTES),
    )


def _decode(token: str, secret: str, expected_type: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            options={"require_sub": True, "require_exp": True},
        )
    except ExpiredSignatureError:
        raise TokenError("SEC-003", "Token has expired")
    except JWTError as e:
        raise TokenError("SEC-003", f"Invalid token: {e}")

    if payload.get("type") != expected_type:
        raise TokenError(
            "SEC-003",
            f"Wrong token type: expected {expected_type}, got {payload.get('type')}"
        )
    return payload


def decode_access_token(token: str) -> str:
    """
    Verify an access token.

    Returns:
        The user id carried in the sub claim

    Raises:
        TokenError: SEC-002 on secret misconfiguration, SEC-003 on bad token
    """
    return _decode(token, _get_secret(ACCESS_SECRET_ENV_VAR), TOKEN_TYPE_ACCESS)["sub"]


def decode_refresh_token(token: str) -> str:
    return _decode(token, _get_secret(REFRESH_SECRET_ENV_VAR), TOKEN_TYPE_REFRESH)["sub"]


# ============================================================================
# PASSWORD RESET TOKENS
# ============================================================================

def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_reset_token(now: Optional[datetime] = None) -> Tuple[str, str, datetime]:
    """
    Create a password reset token.

    Returns:
        (clear token for the reset URL, SHA-256 digest to store, expiry)
    """
    issued_at = now or datetime.now(timezone.utc)
    token = secrets.token_urlsafe(32)
    return (
        token,
        hash_reset_token(token),
        issued_at + timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES),
    )
