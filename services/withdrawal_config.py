"""
============================================================================
Withdrawal Multisig - Configuration
============================================================================

Reliability Level: L6 Critical
Decimal Integrity: Daily limit is a Decimal in ether units
Traceability: Configuration loading is logged

This module provides configuration management for the withdrawal multisig:
- Environment variable parsing with type safety
- Default values for optional configuration
- Validation with fail-closed behavior (CFG-040)

ENVIRONMENT VARIABLES:
    - WITHDRAWAL_REQUIRED_CONFIRMATIONS: Confirmation threshold (default: 2)
    - WITHDRAWAL_TIMELOCK_SECONDS: Delay before execution (default: 172800)
    - WITHDRAWAL_DAILY_LIMIT: Ether-denominated daily cap (default: 10)
    - WITHDRAWAL_AUTO_EXECUTE: Execute on final confirmation (default: true)
    - WITHDRAWAL_WORKER_ENABLED: Run the execution worker (default: true)
    - WITHDRAWAL_WORKER_INTERVAL_SECONDS: Worker cadence (default: 60)
    - WITHDRAWAL_CONFIRM_COOLDOWN_SECONDS: Double-click guard (default: 2)
    - VAULT_RELAYER_ADDRESS: Address the backend signs vault calls with
    - VAULT_SEED_BALANCE: ETH credited to the vault at startup (default: 0)

ERROR CODES:
    - CFG-040: Configuration invalid

============================================================================
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, List
from dataclasses import dataclass, field
import logging
import os

from dotenv import load_dotenv

from app.chain.units import is_address

load_dotenv()

logger = logging.getLogger(__name__)


# =============================================================================
# Error Codes
# =============================================================================

class WithdrawalConfigErrorCode:
    """Configuration error codes for audit logging."""
    CONFIG_INVALID = "CFG-040"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_REQUIRED_CONFIRMATIONS = 2

# 2 days, same delay as the vault contract
DEFAULT_TIMELOCK_SECONDS = 2 * 24 * 60 * 60

DEFAULT_DAILY_LIMIT = Decimal("10")

DEFAULT_AUTO_EXECUTE = True

DEFAULT_WORKER_ENABLED = True

DEFAULT_WORKER_INTERVAL_SECONDS = 60

DEFAULT_CONFIRM_COOLDOWN_SECONDS = 2.0

DEFAULT_RELAYER_ADDRESS = "0x" + "5e" * 20

DEFAULT_VAULT_SEED_BALANCE = Decimal("0")

_TRUE_VALUES = ("true", "1", "yes", "on")


# =============================================================================
# Configuration Exception
# =============================================================================

class WithdrawalConfigurationError(Exception):
    """
    Raised when withdrawal configuration is invalid.

    Startup fails on this error rather than running with unsafe limits.
    """

    def __init__(self, message: str, error_code: str = WithdrawalConfigErrorCode.CONFIG_INVALID):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# WithdrawalConfig Class
# =============================================================================

@dataclass
class WithdrawalConfig:
    """
    Withdrawal multisig configuration.

    Reliability Level: L6 Critical
    Input Constraints: Positive threshold, limit and interval
    Side Effects: Logs configuration on validation
    """

    required_confirmations: int = DEFAULT_REQUIRED_CONFIRMATIONS
    timelock_seconds: int = DEFAULT_TIMELOCK_SECONDS
    daily_limit: Decimal = field(default_factory=lambda: DEFAULT_DAILY_LIMIT)
    auto_execute: bool = DEFAULT_AUTO_EXECUTE
    worker_enabled: bool = DEFAULT_WORKER_ENABLED
    worker_interval_seconds: int = DEFAULT_WORKER_INTERVAL_SECONDS
    confirm_cooldown_seconds: float = DEFAULT_CONFIRM_COOLDOWN_SECONDS
    relayer_address: str = DEFAULT_RELAYER_ADDRESS
    vault_seed_balance: Decimal = field(default_factory=lambda: DEFAULT_VAULT_SEED_BALANCE)

    def __post_init__(self) -> None:
        if not isinstance(self.daily_limit, Decimal):
            self.daily_limit = Decimal(str(self.daily_limit))
        if not isinstance(self.vault_seed_balance, Decimal):
            self.vault_seed_balance = Decimal(str(self.vault_seed_balance))

    def validate(self) -> None:
        """
        Validate configuration completeness.

        Raises:
            WithdrawalConfigurationError: If any value is out of range
        """
        errors: List[str] = []

        if self.required_confirmations < 1:
            errors.append(
                f"WITHDRAWAL_REQUIRED_CONFIRMATIONS must be >= 1, got: {self.required_confirmations}"
            )
        if self.timelock_seconds < 0:
            errors.append(
                f"WITHDRAWAL_TIMELOCK_SECONDS must be non-negative, got: {self.timelock_seconds}"
            )
        if self.daily_limit <= Decimal("0"):
            errors.append(
                f"WITHDRAWAL_DAILY_LIMIT must be positive, got: {self.daily_limit}"
            )
        if self.worker_interval_seconds <= 0:
            errors.append(
                f"WITHDRAWAL_WORKER_INTERVAL_SECONDS must be positive, got: {self.worker_interval_seconds}"
            )
        if self.confirm_cooldown_seconds < 0:
            errors.append(
                f"WITHDRAWAL_CONFIRM_COOLDOWN_SECONDS must be non-negative, got: {self.confirm_cooldown_seconds}"
            )
        if not is_address(self.relayer_address):
            errors.append(
                f"VAULT_RELAYER_ADDRESS must be a 0x address, got: {self.relayer_address}"
            )
        if self.vault_seed_balance < Decimal("0"):
            errors.append(
                f"VAULT_SEED_BALANCE must be non-negative, got: {self.vault_seed_balance}"
            )

        if errors:
            error_msg = "Withdrawal configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{WithdrawalConfigErrorCode.CONFIG_INVALID}] {error_msg}")
            raise WithdrawalConfigurationError(error_msg)

        logger.info(
            f"[WDR-CONFIG] Configuration validated | "
            f"required_confirmations={self.required_confirmations} | "
            f"timelock_seconds={self.timelock_seconds} | "
            f"daily_limit={self.daily_limit} | "
            f"auto_execute={self.auto_execute}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "WithdrawalConfig":
        """
        Load configuration from environment variables.

        Unparsable values fall back to their defaults with a warning.

        Raises:
            WithdrawalConfigurationError: If validate is set and values are out of range
        """
        config = cls(
            required_confirmations=_read_int(
                "WITHDRAWAL_REQUIRED_CONFIRMATIONS", DEFAULT_REQUIRED_CONFIRMATIONS
            ),
            timelock_seconds=_read_int(
                "WITHDRAWAL_TIMELOCK_SECONDS", DEFAULT_TIMELOCK_SECONDS
            ),
            daily_limit=_read_decimal("WITHDRAWAL_DAILY_LIMIT", DEFAULT_DAILY_LIMIT),
            auto_execute=_read_bool("WITHDRAWAL_AUTO_EXECUTE", DEFAULT_AUTO_EXECUTE),
            worker_enabled=_read_bool("WITHDRAWAL_WORKER_ENABLED", DEFAULT_WORKER_ENABLED),
            worker_interval_seconds=_read_int(
                "WITHDRAWAL_WORKER_INTERVAL_SECONDS", DEFAULT_WORKER_INTERVAL_SECONDS
            ),
            confirm_cooldown_seconds=_read_float(
                "WITHDRAWAL_CONFIRM_COOLDOWN_SECONDS", DEFAULT_CONFIRM_COOLDOWN_SECONDS
            ),
            relayer_address=os.environ.get(
                "VAULT_RELAYER_ADDRESS", DEFAULT_RELAYER_ADDRESS
            ).strip(),
            vault_seed_balance=_read_decimal("VAULT_SEED_BALANCE", DEFAULT_VAULT_SEED_BALANCE),
        )

        logger.info(
            f"[WDR-CONFIG] Loading configuration from environment | "
            f"WITHDRAWAL_REQUIRED_CONFIRMATIONS={config.required_confirmations} | "
            f"WITHDRAWAL_TIMELOCK_SECONDS={config.timelock_seconds} | "
            f"WITHDRAWAL_DAILY_LIMIT={config.daily_limit}"
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> dict:
        return {
            "required_confirmations": self.required_confirmations,
            "timelock_seconds": self.timelock_seconds,
            "daily_limit": str(self.daily_limit),
            "auto_execute": self.auto_execute,
            "worker_enabled": self.worker_enabled,
            "worker_interval_seconds": self.worker_interval_seconds,
            "confirm_cooldown_seconds": self.confirm_cooldown_seconds,
            "relayer_address": self.relayer_address,
            "vault_seed_balance": str(self.vault_seed_balance),
        }


# =============================================================================
# Environment Parsing Helpers
# =============================================================================

def _read_int(name: str, default: int) -> int:
    raw = os.environ.get(name, str(default))
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"[WDR-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


def _read_float(name: str, default: float) -> float:
    raw = os.environ.get(name, str(default))
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning(f"[WDR-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default


def _read_decimal(name: str, default: Decimal) -> Decimal:
    raw = os.environ.get(name, str(default))
    try:
        value = Decimal(raw.strip())
    except InvalidOperation:
        logger.warning(f"[WDR-CONFIG] Invalid {name} value: {raw}, using default: {default}")
        return default
    if not value.is_finite():
        logger.warning(f"[WDR-CONFIG] Non-finite {name} value: {raw}, using default: {default}")
        return default
    return value


def _read_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower().strip() in _TRUE_VALUES


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[WithdrawalConfig] = None


def get_withdrawal_config(validate: bool = True) -> WithdrawalConfig:
    """Get the global withdrawal configuration, loading it on first access."""
    global _config_instance

    if _config_instance is None:
        _config_instance = WithdrawalConfig.from_environment(validate=validate)

    return _config_instance


def reset_withdrawal_config() -> None:
    """Clear the global configuration instance (used by tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[WDR-CONFIG] Configuration instance reset")


__all__ = [
    "WithdrawalConfig",
    "WithdrawalConfigurationError",
    "WithdrawalConfigErrorCode",
    "DEFAULT_REQUIRED_CONFIRMATIONS",
    "DEFAULT_TIMELOCK_SECONDS",
    "DEFAULT_DAILY_LIMIT",
    "get_withdrawal_config",
    "reset_withdrawal_config",
]
