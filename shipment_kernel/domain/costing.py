"""
Costing -- shipment cost aggregation.
Responsibility:
    Computes a shipment's cost breakdown (purchase, commission, shipping,
    customs, takhreeg) from its items and its shipping-time snapshot, and
    splits the landed total back over items for stock valuation.
Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The "latest rate"
    used for a preliminary purchase estimate is passed in by the caller;
    nothing here looks a rate up.
Invariants enforced:
    - Everything is recomputed from inputs on every call; no component is
      patched incrementally, so repeated calls give identical results.
    - Every component is rounded to 2dp half-up; the final total is the sum
      of the rounded EGP components.
    - Missing or zero area / rates make their component zero, never an error.
Failure modes:
    - ValidationError for negative quantities, prices or percentages.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Sequence

from shipment_kernel.db.types import (
    UNIT_COST_DECIMAL_PLACES,
    ZERO,
    round_money,
    round_rate,
    to_decimal,
)
from shipment_kernel.exceptions import ValidationError

_HUNDRED = Decimal("100")


class PurchaseRateBasis(str, Enum):
    """Which RMB->EGP rate priced the purchase cost."""

    SHIPPING = "shipping"
    PRELIMINARY = "preliminary"
    NONE = "none"


@dataclass(frozen=True)
class ItemCostInput:
    """The cost-relevant fields of one shipment item."""

    cartons: int
    pieces_per_carton: int
    unit_price_rmb: Decimal
    customs_cost_per_carton_egp: Decimal = ZERO
    takhreeg_cost_per_carton_egp: Decimal = ZERO

    @property
    def total_pieces(self) -> int:
        return self.cartons * self.pieces_per_carton

    @property
    def line_total_rmb(self) -> Decimal:
        return round_money(self.total_pieces * self.unit_price_rmb)

    @property
    def customs_cost_egp(self) -> Decimal:
        return round_money(self.cartons * self.customs_cost_per_carton_egp)

    @property
    def takhreeg_cost_egp(self) -> Decimal:
        return round_money(self.cartons * self.takhreeg_cost_per_carton_egp)


@dataclass(frozen=True)
class ShippingSnapshot:
    """Shipping-time inputs.  Rates are the ones captured at shipping."""

    commission_rate_percent: Decimal = ZERO
    shipping_area_sqm: Decimal = ZERO
    shipping_cost_per_sqm_usd: Decimal = ZERO
    usd_to_rmb_rate: Decimal | None = None
    rmb_to_egp_rate: Decimal | None = None


@dataclass(frozen=True)
class CostBreakdown:
    """Result of one aggregation; maps 1:1 onto the Shipment cost columns."""

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
    purchase_rate_basis: PurchaseRateBasis

    @property
    def is_preliminary(self) -> bool:
        return self.purchase_rate_basis == PurchaseRateBasis.PRELIMINARY


def make_item_input(
    cartons,
    pieces_per_carton,
    unit_price_rmb,
    customs_cost_per_carton_egp=ZERO,
    takhreeg_cost_per_carton_egp=ZERO,
) -> ItemCostInput:
    """
    Validate raw item fields and build an ItemCostInput.

    Raises:
        ValidationError: non-integer or negative quantities, negative prices.
    """
    quantities = {}
    for name, value in (("cartons", cartons), ("pieces_per_carton", pieces_per_carton)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(f"{name} must be an integer, got {value!r}", field=name)
        if value < 0:
            raise ValidationError(f"{name} must not be negative, got {value}", field=name)
        quantities[name] = value

    amounts = {}
    for name, value in (
        ("unit_price_rmb", unit_price_rmb),
        ("customs_cost_per_carton_egp", customs_cost_per_carton_egp),
        ("takhreeg_cost_per_carton_egp", takhreeg_cost_per_carton_egp),
    ):
        amounts[name] = _non_negative(value, name)

    return ItemCostInput(
        cartons=quantities["cartons"],
        pieces_per_carton=quantities["pieces_per_carton"],
        unit_price_rmb=round_money(amounts["unit_price_rmb"], UNIT_COST_DECIMAL_PLACES),
        customs_cost_per_carton_egp=round_money(amounts["customs_cost_per_carton_egp"]),
        takhreeg_cost_per_carton_egp=round_money(amounts["takhreeg_cost_per_carton_egp"]),
    )


def make_shipping_snapshot(
    commission_rate_percent=ZERO,
    shipping_area_sqm=ZERO,
    shipping_cost_per_sqm_usd=ZERO,
    usd_to_rmb_rate=None,
    rmb_to_egp_rate=None,
) -> ShippingSnapshot:
    """
    Validate raw shipping fields and build a ShippingSnapshot.

    Rates are quantized to 4dp; a missing or zero rate is kept as None.

    Raises:
        ValidationError: negative values.
    """
    return ShippingSnapshot(
        commission_rate_percent=_non_negative(commission_rate_percent, "commission_rate_percent"),
        shipping_area_sqm=_non_negative(shipping_area_sqm, "shipping_area_sqm"),
        shipping_cost_per_sqm_usd=_non_negative(
            shipping_cost_per_sqm_usd, "shipping_cost_per_sqm_usd"
        ),
        usd_to_rmb_rate=_optional_rate(usd_to_rmb_rate, "usd_to_rmb_rate"),
        rmb_to_egp_rate=_optional_rate(rmb_to_egp_rate, "rmb_to_egp_rate"),
    )


def _non_negative(value, field: str) -> Decimal:
    if value is None or value == "":
        return ZERO
    try:
        result = to_decimal(value, field)
    except (TypeError, ValueError) as exc:
        raise ValidationError(str(exc), field=field) from None
    if result < 0:
        raise ValidationError(f"{field} must not be negative, got {result}", field=field)
    return result


def _optional_rate(value, field: str) -> Decimal | None:
    rate = _non_negative(value, field)
    rate = round_rate(rate)
    return rate if rate > 0 else None


def aggregate_costs(
    items: Sequence[ItemCostInput],
    shipping: ShippingSnapshot | None = None,
    preliminary_rmb_to_egp: Decimal | None = None,
) -> CostBreakdown:
    """
    Compute a shipment's full cost breakdown.

    The purchase cost is priced in EGP with the shipping-time RMB->EGP rate.
    Until that rate exists, ``preliminary_rmb_to_egp`` (a latest-rate
    snapshot read by the caller) is used and the breakdown is flagged
    preliminary.  With neither, purchase EGP is zero.

    Postconditions:
        - final_total_cost_egp == purchase + commission + shipping + customs
          + takhreeg (all EGP, all 2dp).
    """
    shipping = shipping or ShippingSnapshot()

    purchase_rmb = round_money(sum((i.line_total_rmb for i in items), ZERO))
    customs_egp = round_money(sum((i.customs_cost_egp for i in items), ZERO))
    takhreeg_egp = round_money(sum((i.takhreeg_cost_egp for i in items), ZERO))

    rmb_to_egp = shipping.rmb_to_egp_rate
    usd_to_rmb = shipping.usd_to_rmb_rate

    commission_rmb = round_money(purchase_rmb * shipping.commission_rate_percent / _HUNDRED)
    commission_egp = round_money(commission_rmb * rmb_to_egp) if rmb_to_egp else ZERO

    shipping_usd = round_money(shipping.shipping_area_sqm * shipping.shipping_cost_per_sqm_usd)
    shipping_rmb = round_money(shipping_usd * usd_to_rmb) if usd_to_rmb else ZERO
    shipping_egp = round_money(shipping_rmb * rmb_to_egp) if rmb_to_egp else ZERO

    if rmb_to_egp:
        basis = PurchaseRateBasis.SHIPPING
        purchase_egp = round_money(purchase_rmb * rmb_to_egp)
    elif preliminary_rmb_to_egp is not None and preliminary_rmb_to_egp > 0:
        basis = PurchaseRateBasis.PRELIMINARY
        purchase_egp = round_money(purchase_rmb * round_rate(preliminary_rmb_to_egp))
    else:
        basis = PurchaseRateBasis.NONE
        purchase_egp = ZERO

    final_egp = purchase_egp + commission_egp + shipping_egp + customs_egp + takhreeg_egp

    return CostBreakdown(
        purchase_cost_rmb=purchase_rmb,
        purchase_cost_egp=purchase_egp,
        commission_cost_rmb=commission_rmb,
        commission_cost_egp=commission_egp,
        shipping_cost_usd=shipping_usd,
        shipping_cost_rmb=shipping_rmb,
        shipping_cost_egp=shipping_egp,
        customs_cost_egp=customs_egp,
        takhreeg_cost_egp=takhreeg_egp,
        final_total_cost_egp=round_money(final_egp),
        purchase_rate_basis=basis,
    )


def allocate(total: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    """
    Split ``total`` over ``weights`` in 2dp shares that sum exactly to total.

    Zero or empty weights split equally.  The rounding residue goes to the
    last share.
    """
    if not weights:
        return []
    weight_sum = sum(weights, Decimal("0"))
    if weight_sum <= 0:
        weights = [Decimal("1")] * len(weights)
        weight_sum = Decimal(len(weights))

    shares = [round_money(total * w / weight_sum) for w in weights[:-1]]
    shares.append(round_money(total - sum(shares, ZERO)))
    return shares


@dataclass(frozen=True)
class LandedCost:
    """An item's share of the shipment total, for stock valuation."""

    total_pieces: int
    unit_cost_rmb: Decimal
    unit_cost_egp: Decimal
    total_cost_egp: Decimal


def allocate_landed_costs(
    items: Sequence[ItemCostInput],
    breakdown: CostBreakdown,
) -> list[LandedCost]:
    """
    Spread a shipment's final EGP total over its items.

    Purchase, commission and shipping EGP are shared by line value (RMB);
    customs and takhreeg stay with the item that incurred them.

    Postconditions:
        - SUM(total_cost_egp) == breakdown.final_total_cost_egp.
    """
    shared_pool = (
        breakdown.purchase_cost_egp
        + breakdown.commission_cost_egp
        + breakdown.shipping_cost_egp
    )
    shares = allocate(shared_pool, [i.line_total_rmb for i in items])

    landed: list[LandedCost] = []
    for item, share in zip(items, shares):
        total = share + item.customs_cost_egp + item.takhreeg_cost_egp
        pieces = item.total_pieces
        unit = round_money(total / pieces, UNIT_COST_DECIMAL_PLACES) if pieces else Decimal("0.0000")
        landed.append(
            LandedCost(
                total_pieces=pieces,
                unit_cost_rmb=item.unit_price_rmb,
                unit_cost_egp=unit,
                total_cost_egp=total,
            )
        )
    return landed
