"""
Data transfer objects for the shipment kernel.

Inputs are what callers hand to services; records are what services and
selectors hand back.  None of these are ORM objects and all are immutable,
so a caller can never reach around a service and mutate a row.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from shipment_kernel.db.types import ZERO
from shipment_kernel.domain.settlement import PaymentState

# =============================================================================
# Inputs
# =============================================================================


@dataclass(frozen=True)
class ShipmentHeader:
    """Wizard step 1: the shipment's identity."""

    shipment_code: str
    shipment_name: str
    purchase_date: date
    status: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ItemInput:
    """Wizard step 1: one product line.  Derived fields are never accepted."""

    product_name: str
    cartons: int
    pieces_per_carton: int
    unit_price_rmb: Decimal
    supplier_id: UUID | None = None
    product_type: str | None = None
    country_of_origin: str | None = None
    image_url: str | None = None
    customs_cost_per_carton_egp: Decimal = ZERO
    takhreeg_cost_per_carton_egp: Decimal = ZERO


@dataclass(frozen=True)
class ShippingDetailsInput:
    """Wizard step 2: commission, area pricing and the rates at shipping."""

    commission_rate_percent: Decimal = ZERO
    shipping_area_sqm: Decimal = ZERO
    shipping_cost_per_sqm_usd: Decimal = ZERO
    usd_to_rmb_rate: Decimal | None = None
    rmb_to_egp_rate: Decimal | None = None
    shipping_date: date | None = None


@dataclass(frozen=True)
class ItemCustomsInput:
    """Wizard step 3: landing costs for one existing item."""

    item_id: UUID
    customs_cost_per_carton_egp: Decimal = ZERO
    takhreeg_cost_per_carton_egp: Decimal = ZERO


@dataclass(frozen=True)
class PaymentInput:
    """A payment as entered by the user."""

    payment_currency: str
    amount_original: Decimal
    payment_date: date
    exchange_rate_to_egp: Decimal | None = None
    cost_component: str = "goods"
    payment_method: str = "cash"
    receiver_name: str | None = None
    reference_number: str | None = None
    note: str | None = None
    attachment_url: str | None = None


# =============================================================================
# Records
# =============================================================================


@dataclass(frozen=True)
class ShipmentItemRecord:
    id: UUID
    line_no: int
    product_name: str
    supplier_id: UUID | None
    cartons: int
    pieces_per_carton: int
    total_pieces: int
    unit_price_rmb: Decimal
    line_total_rmb: Decimal
    customs_cost_per_carton_egp: Decimal
    takhreeg_cost_per_carton_egp: Decimal


@dataclass(frozen=True)
class ShipmentRecord:
    """A shipment with its cost breakdown and settlement totals."""

    id: UUID
    shipment_code: str
    shipment_name: str
    purchase_date: date
    status: str
    purchase_cost_rmb: Decimal
    purchase_cost_egp: Decimal
    commission_cost_rmb: Decimal
    commission_cost_egp: Decimal
    shipping_cost_usd: Decimal
    shipping_cost_rmb: Decimal
    shipping_cost_egp: Decimal
    customs_cost_egp: Decimal
    takhreeg_cost_egp: Decimal
    final_total_cost_egp: Decimal
    total_paid_egp: Decimal
    balance_egp: Decimal
    last_payment_date: date | None
    payment_state: PaymentState
    purchase_rate_is_preliminary: bool
    items: tuple[ShipmentItemRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PaymentRecord:
    id: UUID
    shipment_id: UUID
    payment_date: date
    payment_currency: str
    amount_original: Decimal
    exchange_rate_to_egp: Decimal | None
    amount_egp: Decimal
    cost_component: str
    payment_method: str
    receiver_name: str | None = None
    reference_number: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of one successful settlement."""

    payment: PaymentRecord
    remaining_before_egp: Decimal
    total_paid_egp: Decimal
    balance_egp: Decimal
    last_payment_date: date | None
    payment_state: PaymentState


@dataclass(frozen=True)
class PaymentTotals:
    """SUM(amount_egp), MAX(payment_date) and COUNT over a shipment's payments."""

    total_paid_egp: Decimal
    last_payment_date: date | None
    payment_count: int = 0


@dataclass(frozen=True)
class ExchangeRateRecord:
    id: UUID
    from_currency: str
    to_currency: str
    rate: Decimal
    rate_date: date
    source: str


@dataclass(frozen=True)
class InventoryMovementRecord:
    id: UUID
    shipment_id: UUID
    shipment_item_id: UUID
    movement_date: date
    total_pieces_in: int
    unit_cost_rmb: Decimal
    unit_cost_egp: Decimal
    total_cost_egp: Decimal


@dataclass(frozen=True)
class ReconciliationResult:
    """Stored paid-side columns versus values re-derived from payments."""

    shipment_id: UUID
    stored_total_paid_egp: Decimal
    derived_total_paid_egp: Decimal
    stored_balance_egp: Decimal
    derived_balance_egp: Decimal
    stored_last_payment_date: date | None
    derived_last_payment_date: date | None

    @property
    def is_consistent(self) -> bool:
        return (
            self.stored_total_paid_egp == self.derived_total_paid_egp
            and self.stored_balance_egp == self.derived_balance_egp
            and self.stored_last_payment_date == self.derived_last_payment_date
        )
