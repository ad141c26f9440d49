"""
Unit Tests for Ether Unit Conversion and Address Validation

Reliability Level: L6 Critical
"""

from decimal import Decimal

import pytest

from app.chain.units import (
    WEI_PER_ETHER,
    ZERO_ADDRESS,
    format_ether,
    is_address,
    normalize_address,
    parse_ether,
    to_decimal,
)


class TestParseEther:

    def test_whole_and_fractional(self) -> None:
        assert parse_ether("1") == WEI_PER_ETHER
        assert parse_ether("1.5") == 1500000000000000000
        assert parse_ether(Decimal("0.000000000000000001")) == 1

    def test_integer_input(self) -> None:
        assert parse_ether(3) == 3 * WEI_PER_ETHER

    def test_rejects_excess_precision(self) -> None:
        with pytest.raises(ValueError, match="decimal places"):
            parse_ether("0.0000000000000000001")

    def test_rejects_float(self) -> None:
        with pytest.raises(ValueError, match="Float"):
            parse_ether(0.1)

    def test_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            to_decimal("ten")

    def test_rejects_infinity(self) -> None:
        with pytest.raises(ValueError, match="finite"):
            to_decimal("Infinity")


class TestFormatEther:

    def test_integral_has_no_fraction(self) -> None:
        assert format_ether(10 * WEI_PER_ETHER) == "10"
        assert format_ether(0) == "0"

    def test_fraction_is_normalized(self) -> None:
        assert format_ether(1500000000000000000) == "1.5"
        assert format_ether(1) == "0.000000000000000001"


class TestAddresses:

    @pytest.mark.parametrize("value", [
        "0x" + "ab" * 20,
        "0x" + "AB" * 20,
        ZERO_ADDRESS,
    ])
    def test_valid(self, value) -> None:
        assert is_address(value)

    @pytest.mark.parametrize("value", [
        "",
        "0x123",
        "ab" * 20,
        "0x" + "zz" * 20,
        None,
        42,
    ])
    def test_invalid(self, value) -> None:
        assert not is_address(value)

    def test_normalize_lowercases(self) -> None:
        assert normalize_address("0x" + "AB" * 20) == "0x" + "ab" * 20

    def test_normalize_rejects_invalid(self) -> None:
        with pytest.raises(ValueError):
            normalize_address("0xnope")
