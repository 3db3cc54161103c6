"""Tests for base-unit conversion and on-chain identifier helpers."""

from decimal import Decimal

import pytest

from app.core.exceptions import ValidationError
from app.utils.units import from_base_units, to_base_units
from app.utils.validators import (
    normalize_tx_hash,
    topic_to_address,
    validate_address,
    validate_tx_hash,
)


@pytest.mark.parametrize(
    "amount,decimals,expected",
    [
        (Decimal("300"), 6, "300000000"),
        ("0.1", 6, "100000"),
        ("0.01", 18, "10000000000000000"),
        (Decimal("299.999999"), 6, "299999999"),
        ("1", 0, "1"),
    ],
)
def test_to_base_units_is_exact(amount, decimals, expected):
    assert to_base_units(amount, decimals) == expected


def test_float_input_goes_through_its_decimal_string():
    assert to_base_units(0.1, 6) == "100000"


@pytest.mark.parametrize("amount", ["0", "-5", "abc", "NaN", "Infinity"])
def test_to_base_units_rejects_invalid_amounts(amount):
    with pytest.raises(ValidationError):
        to_base_units(amount, 6)


def test_to_base_units_rejects_excess_precision():
    with pytest.raises(ValidationError, match="decimal places"):
        to_base_units("0.0000001", 6)


def test_from_base_units():
    assert from_base_units("300000000", 6) == Decimal("300")
    assert from_base_units(10**16, 18) == Decimal("0.01")


def test_tx_hash_validation():
    good = "0x" + "aB" * 32
    assert validate_tx_hash(good)
    assert normalize_tx_hash(good) == good.lower()
    assert not validate_tx_hash("0x" + "a" * 63)
    assert not validate_tx_hash("a" * 66)
    assert not validate_tx_hash("0x" + "g" * 64)


def test_address_helpers():
    assert validate_address("0x" + "F" * 40)
    assert not validate_address("0x" + "F" * 39)
    topic = "0x" + "0" * 24 + "AbCdEf" + "1" * 34
    assert topic_to_address(topic) == "0x" + "abcdef" + "1" * 34


@pytest.mark.parametrize("amount", ["1e20", "1e80", "1e5000"])
def test_to_base_units_rejects_amounts_beyond_the_column_width(amount):
    with pytest.raises(ValidationError, match="less than"):
        to_base_units(amount, 6)


def test_largest_storable_amount_fits_uint256():
    assert to_base_units("99999999999999999999", 18) == "99999999999999999999" + "0" * 18


def test_to_base_units_rejects_values_beyond_uint256():
    with pytest.raises(ValidationError, match="maximum supply"):
        to_base_units("1", 78)
