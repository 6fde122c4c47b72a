"""
Tests for currency validation and precision-derived rounding.

- Currency codes are validated against the ISO 4217 registry at the domain
  boundary.
- Rounding precision is derived from the currency's decimal places, never
  from a fixed tolerance.
"""

from decimal import Decimal

import pytest

from farm_kernel.domain.currency import CurrencyInfo, CurrencyRegistry
from farm_kernel.domain.values import Currency, Money


class TestISO4217Enforcement:
    """Registry validation and normalization."""

    def test_regional_currency_codes_accepted(self):
        for code in ["UYU", "USD", "ARS", "BRL", "PYG", "CLP", "EUR"]:
            assert CurrencyRegistry.is_valid(code)
            assert CurrencyRegistry.validate(code) == code

    def test_lowercase_and_whitespace_normalized(self):
        assert CurrencyRegistry.validate("uyu") == "UYU"
        assert CurrencyRegistry.validate(" usd ") == "USD"

    def test_invalid_codes_rejected(self):
        for code in ["XXY", "ABC", "123", "US", "USDD", "", "X"]:
            assert not CurrencyRegistry.is_valid(code)

    def test_validate_raises_on_unsupported_code(self):
        with pytest.raises(ValueError, match="Unsupported ISO 4217 currency code"):
            CurrencyRegistry.validate("XXY")

    def test_validate_raises_on_wrong_length(self):
        with pytest.raises(ValueError, match="must be 3 characters"):
            CurrencyRegistry.validate("US")

    @pytest.mark.parametrize("value", [None, 123, ""])
    def test_validate_raises_on_non_string(self, value):
        with pytest.raises(ValueError, match="Invalid currency code"):
            CurrencyRegistry.validate(value)

    def test_currency_value_object_normalizes(self):
        assert Currency("uyu").code == "UYU"
        assert str(Currency("USD")) == "USD"

    def test_currency_value_object_rejects_unknown(self):
        with pytest.raises(ValueError):
            Currency("ZZZ")

    def test_all_codes_is_frozen(self):
        codes = CurrencyRegistry.all_codes()
        assert isinstance(codes, frozenset)
        assert "UYU" in codes


class TestPrecisionDerivedRounding:
    """Decimal places and quantum per currency."""

    @pytest.mark.parametrize(
        "code,places,quantum",
        [
            ("UYU", 2, Decimal("0.01")),
            ("USD", 2, Decimal("0.01")),
            ("PYG", 0, Decimal("1")),
            ("CLP", 0, Decimal("1")),
            ("KWD", 3, Decimal("0.001")),
            ("CLF", 4, Decimal("0.0001")),
        ],
    )
    def test_decimal_places_and_quantum(self, code, places, quantum):
        assert CurrencyRegistry.get_decimal_places(code) == places
        assert CurrencyRegistry.get_quantum(code) == quantum
        assert Currency(code).quantum == quantum

    def test_unknown_code_falls_back_to_default_places(self):
        assert CurrencyRegistry.get_decimal_places("ZZZ") == CurrencyRegistry.DEFAULT_DECIMAL_PLACES

    def test_currency_info_quantum(self):
        info = CurrencyInfo("UYU", 2, "Uruguayan Peso")
        assert info.quantum == Decimal("0.01")

    def test_rounding_follows_currency_precision(self):
        assert Money.of("1234.5", "PYG").round().amount == Decimal("1235")
        assert Money.of("1.2345", "KWD").round().amount == Decimal("1.235")
        assert Money.of("10.005", "UYU").round().amount == Decimal("10.01")
