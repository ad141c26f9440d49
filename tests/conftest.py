"""
============================================================================
RaceFi Backend v1.0.0
Shared Test Fixtures
============================================================================

In-memory SQLite engine, a controllable clock shared by the gateway and
the vault, seeded users per role and a TestClient wired through
dependency_overrides.

============================================================================
"""

import os
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Dict

os.environ.setdefault("JWT_SECRET", "test-access-secret-0123456789abcdef-racefi")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-0123456789abcdef-racefi")

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.auth.security import create_access_token, hash_password
from app.chain.vault_client import VaultClient
from app.database.schema import init_schema
from app.database.session import get_db
from services.user_store import User, UserStore
from services.withdrawal_config import WithdrawalConfig
from services.withdrawal_gateway import WithdrawalGateway

RELAYER = "0x" + "5e" * 20
RECIPIENT = "0x" + "ab" * 20
TEST_PASSWORD = "hunter22"


class FrozenClock:
    """Aware UTC clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now

    def epoch(self) -> int:
        return int(self.now.timestamp())


# ============================================================================
# Database
# ============================================================================

@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_schema(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> Callable[[], Session]:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


# ============================================================================
# Withdrawal stack
# ============================================================================

@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def withdrawal_config() -> WithdrawalConfig:
    return WithdrawalConfig(
        required_confirmations=2,
        timelock_seconds=2 * 24 * 60 * 60,
        daily_limit=Decimal("10"),
        auto_execute=True,
        worker_enabled=False,
        worker_interval_seconds=60,
        confirm_cooldown_seconds=0.0,
        relayer_address=RELAYER,
    )


@pytest.fixture
def vault(withdrawal_config, clock) -> VaultClient:
    client = VaultClient(
        relayer_address=RELAYER,
        daily_limit=withdrawal_config.daily_limit,
        clock=clock.epoch,
    )
    client.deposit(None, Decimal("100"))
    return client


@pytest.fixture
def gateway(db_session, withdrawal_config, vault, clock) -> WithdrawalGateway:
    return WithdrawalGateway(db_session, config=withdrawal_config, vault=vault, clock=clock)


# ============================================================================
# Users
# ============================================================================

@pytest.fixture
def make_user(db_session) -> Callable[..., User]:
    store = UserStore(db_session)
    counter = {"n": 0}

    def _make(role: str = "user", name: str = None, email: str = None) -> User:
        counter["n"] += 1
        n = counter["n"]
        return store.create(
            name=name or f"{role.title()} {n}",
            email=email or f"{role}{n}@racefi.io",
            password_hash=hash_password(TEST_PASSWORD),
            role=role,
        )

    return _make


@pytest.fixture
def user(make_user) -> User:
    return make_user("user")


@pytest.fixture
def other_user(make_user) -> User:
    return make_user("user")


@pytest.fixture
def withdrawer(make_user) -> User:
    return make_user("withdrawer")


@pytest.fixture
def second_withdrawer(make_user) -> User:
    return make_user("withdrawer")


@pytest.fixture
def admin(make_user) -> User:
    return make_user("admin")


@pytest.fixture
def auth_headers() -> Callable[[User], Dict[str, str]]:
    def _headers(user: User) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers


# ============================================================================
# Application
# ============================================================================

@pytest.fixture
def test_app(session_factory, withdrawal_config, vault, clock):
    from app.api.vault import get_config, get_vault
    from app.api.withdrawals import get_gateway, reset_rate_limits
    from app.main import app as racefi_app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_get_gateway(db: Session = Depends(get_db)) -> WithdrawalGateway:
        return WithdrawalGateway(db, config=withdrawal_config, vault=vault, clock=clock)

    racefi_app.dependency_overrides[get_db] = override_get_db
    racefi_app.dependency_overrides[get_gateway] = override_get_gateway
    racefi_app.dependency_overrides[get_vault] = lambda: vault
    racefi_app.dependency_overrides[get_config] = lambda: withdrawal_config
    reset_rate_limits()

    yield racefi_app

    racefi_app.dependency_overrides.clear()
    reset_rate_limits()


@pytest.fixture
def client(test_app) -> TestClient:
    return TestClient(test_app)
