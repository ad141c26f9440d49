"""
============================================================================
RaceFi Backend v1.0.0
Common Schema Validators - Addresses and Token Amounts
============================================================================

Reliability Level: L6 Critical
Input Constraints: Amounts as strings or integers, never floats
Side Effects: None (pure validation)

- Token amounts are decimal.Decimal, at most 18 fractional digits (wei)
- Addresses are 0x-prefixed 20-byte hex, stored lower-case

============================================================================
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Optional

from app.chain.units import ETHER_DECIMALS, is_address, to_decimal


def validate_token_amount(value: Any, field_name: str) -> Decimal:
    """
    Validate a positive token amount.

    Raises:
        ValueError: On float input, non-positive value or excess precision
    """
    if value is None:
        raise ValueError(f"{field_name} cannot be None")

    if isinstance(value, float):
        raise ValueError(
            f"{field_name} must be a string or integer, not float. "
            f"Received: {value}. Use string representation like '0.5'"
        )

    try:
        decimal_value = to_decimal(value)
    except ValueError as e:
        raise ValueError(f"{field_name}: {e}")

    if decimal_value <= Decimal("0"):
        raise ValueError(f"{field_name} must be positive. Received: {decimal_value}")

    exponent = decimal_value.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -ETHER_DECIMALS:
        raise ValueError(
            f"{field_name} has {-exponent} decimal places. "
            f"Maximum allowed: {ETHER_DECIMALS}"
        )

    return decimal_value


def validate_address(value: Any, field_name: str) -> str:
    """
    Validate and lower-case an Ethereum address.

    Raises:
        ValueError: If value is not a 0x address
    """
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a string")
    value = value.strip()
    if not is_address(value):
        raise ValueError(f"{value} is not a valid Ethereum address!")
    return value.lower()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO-8601 timestamp as an aware UTC datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
