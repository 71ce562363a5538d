"""
Unit tests for Currency, Money and Balance.

Verifies:
- Currency normalization and rejection of unknown codes
- Major-unit parsing with half-up rounding to the minor unit
- Non-negativity of Money, signed Balance
- Same-currency arithmetic and comparisons
- Float prohibition
"""

from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from agency_kernel.domain.values import Balance, Currency, Money
from agency_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidCurrencyError,
    NegativeAmountError,
)


class TestCurrency:
    def test_normalizes_case_and_whitespace(self):
        assert Currency(" eur ").code == "EUR"

    def test_unknown_code_rejected(self):
        with pytest.raises(InvalidCurrencyError) as exc_info:
            Currency("XYZ")
        assert exc_info.value.currency == "XYZ"

    def test_decimal_places(self):
        assert Currency("ILS").decimal_places == 2
        assert Currency("JPY").decimal_places == 0
        assert Currency("KWD").decimal_places == 3

    def test_quantum(self):
        assert Currency("EUR").quantum == Decimal("0.01")
        assert Currency("JPY").quantum == Decimal("1")


class TestMoneyConstruction:
    def test_of_parses_major_units(self):
        assert Money.of("100.50", "EUR").minor_units == 10050

    def test_of_rounds_half_up(self):
        assert Money.of("100.005", "EUR").minor_units == 10001
        assert Money.of("100.004", "EUR").minor_units == 10000

    def test_of_respects_currency_precision(self):
        assert Money.of("1.5", "JPY").minor_units == 2
        assert Money.of("1.2345", "KWD").minor_units == 1235

    def test_float_amount_rejected(self):
        with pytest.raises(TypeError):
            Money.of(10.5, "EUR")

    def test_non_numeric_amount_rejected(self):
        with pytest.raises(ValueError):
            Money.of("ten", "EUR")

    def test_infinite_amount_rejected(self):
        with pytest.raises(ValueError):
            Money.of("Infinity", "EUR")

    def test_negative_minor_units_rejected(self):
        with pytest.raises(NegativeAmountError):
            Money(-1, "EUR")

    def test_non_int_minor_units_rejected(self):
        with pytest.raises(TypeError):
            Money(Decimal("1"), "EUR")
        with pytest.raises(TypeError):
            Money(True, "EUR")

    def test_amount_view(self):
        assert Money(10050, "EUR").amount == Decimal("100.50")
        assert str(Money(10050, "EUR")) == "100.50 EUR"


class TestMoneyArithmetic:
    def test_addition(self):
        assert Money.of("100", "EUR") + Money.of("50", "EUR") == Money.of("150", "EUR")

    def test_subtraction_below_zero_raises(self):
        with pytest.raises(NegativeAmountError):
            Money.of("10", "EUR") - Money.of("20", "EUR")

    def test_cross_currency_addition_raises(self):
        with pytest.raises(CurrencyMismatchError) as exc_info:
            Money.of("10", "EUR") + Money.of("10", "ILS")
        assert exc_info.value.expected == "EUR"
        assert exc_info.value.actual == "ILS"

    def test_cross_currency_comparison_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money.of("10", "EUR") < Money.of("10", "ILS")

    def test_percentage_rounds_half_up(self):
        # 10% of 0.05 EUR is 0.005 -> 0.01
        assert Money(5, "EUR").percentage("10").minor_units == 1
        assert Money(10000, "EUR").percentage(Decimal("12.5")).minor_units == 1250

    def test_percentage_rejects_float(self):
        with pytest.raises(TypeError):
            Money(100, "EUR").percentage(10.0)

    @given(
        a=st.integers(min_value=0, max_value=10**15),
        b=st.integers(min_value=0, max_value=10**15),
    )
    def test_addition_is_exact(self, a, b):
        total = Money(a, "ILS") + Money(b, "ILS")
        assert total.minor_units == a + b
        assert total - Money(b, "ILS") == Money(a, "ILS")

    @given(st.decimals(min_value=0, max_value=10**9, places=2, allow_nan=False))
    def test_of_is_exact_at_currency_precision(self, amount):
        assert Money.of(amount, "EUR").amount == amount


class TestBalance:
    def test_may_go_negative(self):
        net = Money.of("10", "EUR").to_balance() - Money.of("25", "EUR")
        assert net.minor_units == -1500
        assert net.is_negative

    def test_negation(self):
        assert -Balance(300, "EUR") == Balance(-300, "EUR")

    def test_cross_currency_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Balance.zero("EUR") + Money(1, "USD")

    def test_zero(self):
        assert Balance.zero("ILS").minor_units == 0
        assert not Balance.zero("ILS").is_negative
