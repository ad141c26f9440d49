"""
============================================================================
RaceFi Backend v1.0.0
Chain Units - Wei/Ether Conversion and Address Checks
============================================================================

Reliability Level: STANDARD
Input Constraints: Amounts as Decimal, str or int (never float)
Side Effects: None (pure functions)

All on-chain amounts are integers in wei (18 decimals). The API speaks
ether-denominated Decimal strings; conversion happens only here.

============================================================================
"""

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Union

# ============================================================================
# CONSTANTS
# ============================================================================

ETHER_DECIMALS = 18
WEI_PER_ETHER = 10 ** ETHER_DECIMALS

ZERO_ADDRESS = "0x" + "0" * 40

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


# ============================================================================
# ADDRESSES
# ============================================================================

def is_address(value: Any) -> bool:
    """Return True for a 0x-prefixed, 20-byte hex address."""
    if not isinstance(value, str):
        return False
    return bool(_ADDRESS_PATTERN.match(value))


def normalize_address(value: str) -> str:
    """
    Lower-case an address for storage and comparison.

    Raises:
        ValueError: If value is not a valid address
    """
    if not is_address(value):
        raise ValueError(f"Invalid Ethereum address: {value}")
    return value.lower()


# ============================================================================
# AMOUNTS
# ============================================================================

def to_decimal(value: Union[Decimal, str, int]) -> Decimal:
    """
    Convert an amount to Decimal, rejecting floats and non-finite values.

    Raises:
        ValueError: On float input or unparsable value
    """
    if isinstance(value, float):
        raise ValueError(
            f"Float amounts are not accepted. Received: {value}"
        )
    try:
        decimal_value = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a valid decimal amount: {value}")

    if not decimal_value.is_finite():
        raise ValueError(f"Amount must be finite. Received: {value}")
    return decimal_value


def parse_ether(value: Union[Decimal, str, int]) -> int:
    """
    Convert an ether-denominated amount to integer wei.

    Raises:
        ValueError: If the amount has more than 18 fractional digits
    """
    decimal_value = to_decimal(value)
    exponent = decimal_value.as_tuple().exponent
    if isinstance(exponent, int) and exponent < -ETHER_DECIMALS:
        raise ValueError(
            f"Amount exceeds {ETHER_DECIMALS} decimal places: {value}"
        )
    return int(decimal_value.scaleb(ETHER_DECIMALS))


def format_ether(wei: int) -> str:
    """Format integer wei as a normalized ether string ("1.5", "10")."""
    value = Decimal(wei).scaleb(-ETHER_DECIMALS)
    if value == value.to_integral_value():
        return str(value.quantize(Decimal(1)))
    return format(value.normalize(), "f")
