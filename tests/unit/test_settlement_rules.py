"""
Pure settlement rules: remaining balance, payment state, no-overdraw check.

These run without a database; the service-level behaviour (locking,
persistence) is covered in tests/services/test_settlement_service.py.
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from shipment_kernel.domain.settlement import (
    DEFAULT_OVERPAYMENT_EPSILON,
    PaymentState,
    check_payment_fits,
    derive_totals,
    overpaid_amount,
    payment_state,
    remaining_balance,
)
from shipment_kernel.exceptions import OverpaymentError

money = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("1000000"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


class TestRemainingBalance:

    def test_partial(self):
        assert remaining_balance(Decimal("1000.00"), Decimal("400.00")) == Decimal("600.00")

    def test_never_negative(self):
        assert remaining_balance(Decimal("100.00"), Decimal("150.00")) == Decimal("0.00")

    def test_overpaid_amount_for_display(self):
        assert overpaid_amount(Decimal("100.00"), Decimal("150.00")) == Decimal("50.00")
        assert overpaid_amount(Decimal("100.00"), Decimal("50.00")) == Decimal("0.00")

    @given(final=money, paid=money)
    @settings(max_examples=200)
    def test_clamped_difference(self, final, paid):
        balance = remaining_balance(final, paid)
        assert balance >= 0
        assert balance == max(Decimal("0"), final - paid)


class TestPaymentState:

    @pytest.mark.parametrize("final,paid,expected", [
        ("1000.00", "0.00", PaymentState.UNPAID),
        ("1000.00", "400.00", PaymentState.PARTIALLY_PAID),
        ("1000.00", "1000.00", PaymentState.SETTLED),
        ("0.00", "0.00", PaymentState.UNPAID),
    ])
    def test_states(self, final, paid, expected):
        assert payment_state(Decimal(final), Decimal(paid)) == expected


class TestCheckPaymentFits:

    def test_within_balance_returns_remaining(self):
        remaining = check_payment_fits(uuid4(), Decimal("1000.00"), Decimal("400.00"), Decimal("600.00"))
        assert remaining == Decimal("600.00")

    def test_overdraw_carries_remaining(self):
        shipment_id = uuid4()
        with pytest.raises(OverpaymentError) as exc_info:
            check_payment_fits(shipment_id, Decimal("1000.00"), Decimal("400.00"), Decimal("700.00"))
        err = exc_info.value
        assert err.code == "OVERPAYMENT"
        assert err.remaining_egp == Decimal("600.00")
        assert err.attempted_egp == Decimal("700.00")
        assert err.shipment_id == str(shipment_id)

    def test_epsilon_tolerance(self):
        # A sub-epsilon excess is admitted, a cent is not
        check_payment_fits(uuid4(), Decimal("10.00"), Decimal("0"), Decimal("10.0001"))
        with pytest.raises(OverpaymentError):
            check_payment_fits(uuid4(), Decimal("10.00"), Decimal("0"), Decimal("10.01"))

    def test_zero_epsilon_is_strict(self):
        with pytest.raises(OverpaymentError):
            check_payment_fits(
                uuid4(), Decimal("10.00"), Decimal("0"), Decimal("10.0001"), epsilon=Decimal("0")
            )

    def test_settled_shipment_refuses_any_payment(self):
        with pytest.raises(OverpaymentError):
            check_payment_fits(uuid4(), Decimal("10.00"), Decimal("10.00"), Decimal("0.01"))

    @given(final=money, paid=money, amount=money)
    @settings(max_examples=300)
    def test_admitted_payment_never_overdraws(self, final, paid, amount):
        try:
            check_payment_fits(uuid4(), final, paid, amount)
        except OverpaymentError:
            return
        assert paid + amount <= max(final, paid) + DEFAULT_OVERPAYMENT_EPSILON


class TestDeriveTotals:

    def test_columns(self):
        totals = derive_totals(Decimal("1000.00"), Decimal("400"))
        assert totals.total_paid_egp == Decimal("400.00")
        assert totals.balance_egp == Decimal("600.00")
        assert totals.state == PaymentState.PARTIALLY_PAID

    def test_settled(self):
        totals = derive_totals(Decimal("250.00"), Decimal("250.00"))
        assert totals.balance_egp == Decimal("0.00")
        assert totals.state == PaymentState.SETTLED
