"""
Pure domain layer.

Dataclasses and rules with NO dependencies on:
- ORM (SQLAlchemy sessions or models)
- Database
- Wall-clock time
- I/O

Everything here is deterministic; rates and totals are passed in.
"""

from shipment_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from shipment_kernel.domain.costing import (
    CostBreakdown,
    ItemCostInput,
    LandedCost,
    PurchaseRateBasis,
    ShippingSnapshot,
    aggregate_costs,
    allocate,
    allocate_landed_costs,
)
from shipment_kernel.domain.currency import (
    ACCOUNTING_CURRENCY,
    Currency,
    NormalizedAmount,
    normalize_payment,
)
from shipment_kernel.domain.settlement import (
    DEFAULT_OVERPAYMENT_EPSILON,
    PaymentState,
    check_payment_fits,
    derive_totals,
    payment_state,
    remaining_balance,
)

__all__ = [
    "ACCOUNTING_CURRENCY",
    "Clock",
    "CostBreakdown",
    "Currency",
    "DEFAULT_OVERPAYMENT_EPSILON",
    "DeterministicClock",
    "ItemCostInput",
    "LandedCost",
    "NormalizedAmount",
    "PaymentState",
    "PurchaseRateBasis",
    "ShippingSnapshot",
    "SystemClock",
    "aggregate_costs",
    "allocate",
    "allocate_landed_costs",
    "check_payment_fits",
    "derive_totals",
    "normalize_payment",
    "payment_state",
    "remaining_balance",
]
