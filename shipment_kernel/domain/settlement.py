"""
Settlement -- balance rules for applying payments to shipments.
Responsibility:
    The pure half of the settlement engine: remaining balance, payment
    state, and the no-overdraw check.  SettlementService supplies the lock,
    the persistence and the transaction around these rules.
Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
Invariants enforced:
    - balance == max(0, final_total - total_paid); never negative.
    - A payment is admitted only if amount_egp <= remaining + epsilon.
Failure modes:
    - OverpaymentError carrying the remaining balance.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from shipment_kernel.db.types import ZERO, round_money
from shipment_kernel.exceptions import OverpaymentError

DEFAULT_OVERPAYMENT_EPSILON = Decimal("0.0001")


class PaymentState(str, Enum):
    """Where a shipment stands against its total cost."""

    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    SETTLED = "settled"


def remaining_balance(final_total_cost_egp: Decimal, total_paid_egp: Decimal) -> Decimal:
    """max(0, final - paid), 2dp."""
    return round_money(max(ZERO, final_total_cost_egp - total_paid_egp))


def overpaid_amount(final_total_cost_egp: Decimal, total_paid_egp: Decimal) -> Decimal:
    """max(0, paid - final), 2dp.  Display only; the write path never creates it."""
    return round_money(max(ZERO, total_paid_egp - final_total_cost_egp))


def payment_state(final_total_cost_egp: Decimal, total_paid_egp: Decimal) -> PaymentState:
    if total_paid_egp <= 0:
        return PaymentState.UNPAID
    if total_paid_egp < final_total_cost_egp:
        return PaymentState.PARTIALLY_PAID
    return PaymentState.SETTLED


def check_payment_fits(
    shipment_id,
    final_total_cost_egp: Decimal,
    total_paid_egp: Decimal,
    amount_egp: Decimal,
    epsilon: Decimal = DEFAULT_OVERPAYMENT_EPSILON,
) -> Decimal:
    """
    Admit or refuse a payment against the current totals.

    Returns:
        The remaining balance before the payment.

    Raises:
        OverpaymentError: amount_egp > remaining + epsilon.
    """
    remaining = remaining_balance(final_total_cost_egp, total_paid_egp)
    if amount_egp > remaining + epsilon:
        raise OverpaymentError(
            shipment_id=str(shipment_id),
            remaining_egp=remaining,
            attempted_egp=amount_egp,
        )
    return remaining


@dataclass(frozen=True)
class SettlementTotals:
    """Derived paid-side columns of a shipment."""

    total_paid_egp: Decimal
    balance_egp: Decimal
    state: PaymentState


def derive_totals(final_total_cost_egp: Decimal, total_paid_egp: Decimal) -> SettlementTotals:
    paid = round_money(total_paid_egp)
    return SettlementTotals(
        total_paid_egp=paid,
        balance_egp=remaining_balance(final_total_cost_egp, paid),
        state=payment_state(final_total_cost_egp, paid),
    )
