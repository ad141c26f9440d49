"""
Unit Tests for Password Hashing and JWT Tokens

Reliability Level: L6 Critical

Tests:
- bcrypt hashing and verification
- access / refresh token round trips and type separation
- SEC-002 on missing or short secrets
- password reset token digests and expiry
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from app.auth.security import (
    JWT_ALGORITHM,
    RESET_TOKEN_EXPIRE_MINUTES,
    TokenError,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
    generate_reset_token,
    hash_password,
    hash_reset_token,
    verify_password,
)


class TestPasswords:

    def test_hash_is_not_plaintext(self) -> None:
        hashed = hash_password("hunter22")
        assert hashed != "hunter22"
        assert hashed.startswith("$2")

    def test_verify(self) -> None:
        hashed = hash_password("hunter22")
        assert verify_password("hunter22", hashed)
        assert not verify_password("hunter23", hashed)

    def test_salted(self) -> None:
        assert hash_password("hunter22") != hash_password("hunter22")

    def test_malformed_hash_never_matches(self) -> None:
        assert not verify_password("hunter22", "not-a-bcrypt-hash")


class TestTokens:

    def test_access_round_trip(self) -> None:
        assert decode_access_token(create_access_token("user-1")) == "user-1"

    def test_refresh_round_trip(self) -> None:
        assert decode_refresh_token(create_refresh_token("user-1")) == "user-1"

    def test_refresh_token_rejected_as_access(self, monkeypatch) -> None:
        # Same secret for both so only the type claim differs
        secret = "shared-secret-0123456789abcdef-0123456789"
        monkeypatch.setenv("JWT_SECRET", secret)
        monkeypatch.setenv("REFRESH_TOKEN_SECRET", secret)

        with pytest.raises(TokenError) as exc_info:
            decode_access_token(create_refresh_token("user-1"))
        assert exc_info.value.error_code == "SEC-003"

    def test_tampered_token(self) -> None:
        token = create_access_token("user-1")
        with pytest.raises(TokenError) as exc_info:
            decode_access_token(token[:-2] + ("AA" if token[-2:] != "AA" else "BB"))
        assert exc_info.value.error_code == "SEC-003"

    def test_expired_token(self, monkeypatch) -> None:
        secret = "expiry-secret-0123456789abcdef-0123456789"
        monkeypatch.setenv("JWT_SECRET", secret)
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        token = jwt.encode(
            {"sub": "user-1", "type": "access", "iat": past, "exp": past + timedelta(minutes=1)},
            secret,
            algorithm=JWT_ALGORITHM,
        )
        with pytest.raises(TokenError) as exc_info:
            decode_access_token(token)
        assert exc_info.value.message == "Token has expired"

    def test_missing_secret(self, monkeypatch) -> None:
        monkeypatch.delenv("JWT_SECRET", raising=False)
        with pytest.raises(TokenError) as exc_info:
            create_access_token("user-1")
        assert exc_info.value.error_code == "SEC-002"

    def test_short_secret(self, monkeypatch) -> None:
        monkeypatch.setenv("JWT_SECRET", "too-short")
        with pytest.raises(TokenError) as exc_info:
            create_access_token("user-1")
        assert exc_info.value.error_code == "SEC-002"


class TestResetTokens:

    def test_digest_matches(self) -> None:
        token, digest, _ = generate_reset_token()
        assert digest == hash_reset_token(token)
        assert token not in digest

    def test_expiry(self) -> None:
        issued = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
        _, _, expires = generate_reset_token(issued)
        assert expires == issued + timedelta(minutes=RESET_TOKEN_EXPIRE_MINUTES)

    def test_unique(self) -> None:
        assert generate_reset_token()[0] != generate_reset_token()[0]
