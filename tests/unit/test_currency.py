"""Tests for the payment normalizer (shipment_kernel/domain/currency.py)."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from shipment_kernel.domain.currency import (
    ACCOUNTING_CURRENCY,
    Currency,
    normalize_payment,
    parse_currency,
)
from shipment_kernel.exceptions import ValidationError

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("9999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
rates = st.decimals(
    min_value=Decimal("0.0001"),
    max_value=Decimal("999.9999"),
    places=4,
    allow_nan=False,
    allow_infinity=False,
)


class TestParseCurrency:

    def test_codes_are_case_insensitive(self):
        assert parse_currency("rmb") == Currency.RMB
        assert parse_currency(" egp ") == Currency.EGP
        assert parse_currency(Currency.USD) == Currency.USD

    def test_unknown_code_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_currency("EUR")
        assert exc_info.value.field == "payment_currency"

    def test_accounting_currency_is_egp(self):
        assert ACCOUNTING_CURRENCY == Currency.EGP


class TestEgpPayments:

    def test_amount_unchanged_and_rate_none(self):
        result = normalize_payment("EGP", Decimal("400.00"))
        assert result.amount_egp == Decimal("400.00")
        assert result.amount_original == Decimal("400.00")
        assert result.exchange_rate_to_egp is None

    def test_supplied_rate_ignored(self):
        result = normalize_payment("EGP", Decimal("400.00"), Decimal("7.0000"))
        assert result.amount_egp == Decimal("400.00")
        assert result.exchange_rate_to_egp is None

    @given(amount=amounts)
    @settings(max_examples=200)
    def test_egp_is_identity(self, amount):
        result = normalize_payment(Currency.EGP, amount)
        assert result.amount_egp == amount
        assert result.exchange_rate_to_egp is None


class TestForeignPayments:

    def test_rmb_converted_with_rate(self):
        result = normalize_payment("RMB", Decimal("100"), Decimal("7.0000"))
        assert result.amount_egp == Decimal("700.00")
        assert result.exchange_rate_to_egp == Decimal("7.0000")

    def test_usd_requires_rate(self):
        with pytest.raises(ValidationError) as exc_info:
            normalize_payment("USD", Decimal("10"))
        assert exc_info.value.field == "exchange_rate_to_egp"

    def test_rmb_requires_rate(self):
        with pytest.raises(ValidationError):
            normalize_payment("RMB", Decimal("10"), None)

    @pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-1.5"), "0.00001"])
    def test_non_positive_rate_rejected(self, rate):
        with pytest.raises(ValidationError):
            normalize_payment("RMB", Decimal("10"), rate)

    def test_rate_quantized_before_use(self):
        result = normalize_payment("RMB", Decimal("100.00"), Decimal("7.15555"))
        assert result.exchange_rate_to_egp == Decimal("7.1556")
        assert result.amount_egp == Decimal("715.56")

    def test_result_rounded_half_up(self):
        # 0.05 * 7.1000 = 0.355 -> 0.36
        result = normalize_payment("RMB", Decimal("0.05"), Decimal("7.1000"))
        assert result.amount_egp == Decimal("0.36")

    @given(amount=amounts, rate=rates)
    @settings(max_examples=200)
    def test_egp_amount_is_rounded_product(self, amount, rate):
        result = normalize_payment("RMB", amount, rate)
        assert result.amount_egp == (amount * rate).quantize(Decimal("0.01"), rounding="ROUND_HALF_UP")
        assert result.amount_egp.as_tuple().exponent == -2


class TestAmountValidation:

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "0.001"])
    def test_non_positive_amount_rejected(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            normalize_payment("EGP", amount)
        assert exc_info.value.field == "amount_original"

    def test_non_numeric_amount_rejected(self):
        with pytest.raises(ValidationError):
            normalize_payment("EGP", "abc")

    def test_float_amount_rejected(self):
        with pytest.raises(ValidationError):
            normalize_payment("EGP", 10.5)

    def test_numeric_string_accepted(self):
        assert normalize_payment("EGP", "12.345").amount_egp == Decimal("12.35")
