"""
Report Models (``shipment_reports.models``).

Responsibility
--------------
Frozen dataclass value objects for report outputs (dashboards, supplier
balances and statements, the movement ledger, payment-method totals) and
for the filters that select their input.

Architecture position
---------------------
**Reports layer** -- pure data definitions with ZERO I/O.  Consumed by
``ReportService`` and returned to callers.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from shipment_kernel.domain.dtos import PaymentRecord


# =========================================================================
# Enums
# =========================================================================


class BalanceType(str, Enum):
    """Where a supplier stands: we owe them, we are even, or we paid ahead."""

    OWING = "owing"
    SETTLED = "settled"
    CREDIT = "credit"


class MovementType(str, Enum):
    """Kind of line in the movement ledger."""

    SHIPMENT_COST = "shipment_cost"
    PAYMENT = "payment"


# =========================================================================
# Filters
# =========================================================================


@dataclass(frozen=True)
class ReportFilters:
    """Shipment selection shared by the accounting reports.

    Dates are inclusive and apply to purchase_date for shipments and to
    payment_date for payments.
    """

    date_from: date | None = None
    date_to: date | None = None
    supplier_id: UUID | None = None
    shipment_status: str | None = None
    payment_state: str | None = None
    include_archived: bool = False


@dataclass(frozen=True)
class SupplierBalanceFilters:
    date_from: date | None = None
    date_to: date | None = None
    supplier_id: UUID | None = None
    balance_type: BalanceType | None = None  # None means all


@dataclass(frozen=True)
class MovementFilters:
    date_from: date | None = None
    date_to: date | None = None
    shipment_id: UUID | None = None
    supplier_id: UUID | None = None
    movement_type: MovementType | None = None
    cost_component: str | None = None
    payment_method: str | None = None
    shipment_status: str | None = None
    payment_state: str | None = None
    include_archived: bool = False


# =========================================================================
# Overview statistics
# =========================================================================


@dataclass(frozen=True)
class ShipmentSummary:
    id: UUID
    shipment_code: str
    shipment_name: str
    status: str
    purchase_date: date
    final_total_cost_egp: Decimal
    total_paid_egp: Decimal
    balance_egp: Decimal


@dataclass(frozen=True)
class DashboardStats:
    """Totals over every shipment.

    total_overpaid_egp can only be non-zero for rows written before
    overpayment was refused; it is shown, never produced.
    """

    total_shipments: int
    total_cost_egp: Decimal
    total_paid_egp: Decimal
    total_balance_egp: Decimal
    total_overpaid_egp: Decimal
    pending_shipments: int
    completed_shipments: int
    recent_shipments: tuple[ShipmentSummary, ...]


@dataclass(frozen=True)
class PaymentStats:
    payment_count: int
    total_cost_egp: Decimal
    total_paid_egp: Decimal
    total_balance_egp: Decimal
    total_overpaid_egp: Decimal
    last_payment: PaymentRecord | None


@dataclass(frozen=True)
class InventoryStats:
    total_pieces: int
    total_cost_egp: Decimal
    total_items: int
    avg_unit_cost_egp: Decimal  # 4dp


# =========================================================================
# Accounting
# =========================================================================


@dataclass(frozen=True)
class AccountingDashboard:
    """Cost components and settlement totals over the filtered shipments."""

    shipment_count: int
    total_purchase_rmb: Decimal
    total_purchase_egp: Decimal
    total_commission_rmb: Decimal
    total_commission_egp: Decimal
    total_shipping_rmb: Decimal
    total_shipping_egp: Decimal
    total_customs_egp: Decimal
    total_takhreeg_egp: Decimal
    total_cost_egp: Decimal
    total_paid_egp: Decimal
    total_balance_egp: Decimal
    unsettled_shipments_count: int


@dataclass(frozen=True)
class SupplierBalance:
    supplier_id: UUID
    supplier_name: str
    total_cost_egp: Decimal
    total_paid_egp: Decimal
    balance_egp: Decimal  # cost - paid; negative means credit
    balance_type: BalanceType


@dataclass(frozen=True)
class SupplierStatementLine:
    entry_date: date
    line_type: MovementType
    shipment_id: UUID
    shipment_code: str
    description: str
    cost_egp: Decimal
    paid_egp: Decimal
    running_balance_egp: Decimal
    payment_method: str | None = None


@dataclass(frozen=True)
class SupplierStatement:
    supplier_id: UUID
    supplier_name: str
    date_from: date | None
    date_to: date | None
    opening_balance_egp: Decimal
    lines: tuple[SupplierStatementLine, ...]
    total_cost_egp: Decimal
    total_paid_egp: Decimal
    closing_balance_egp: Decimal


@dataclass(frozen=True)
class MovementLine:
    movement_date: date
    movement_type: MovementType
    shipment_id: UUID
    shipment_code: str
    cost_component: str
    amount_egp: Decimal
    payment_id: UUID | None = None
    payment_currency: str | None = None
    amount_original: Decimal | None = None
    payment_method: str | None = None


@dataclass(frozen=True)
class MovementReport:
    lines: tuple[MovementLine, ...]
    total_cost_egp: Decimal
    total_paid_egp: Decimal
    net_balance_egp: Decimal


@dataclass(frozen=True)
class PaymentMethodSummary:
    payment_method: str
    payment_count: int
    total_amount_egp: Decimal


@dataclass(frozen=True)
class PaymentMethodsReport:
    date_from: date | None
    date_to: date | None
    methods: tuple[PaymentMethodSummary, ...]
    total_count: int
    total_amount_egp: Decimal
