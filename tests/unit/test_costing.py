"""Tests for the cost aggregator and landed-cost allocation (domain/costing.py)."""

from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from shipment_kernel.domain.costing import (
    PurchaseRateBasis,
    ShippingSnapshot,
    aggregate_costs,
    allocate,
    allocate_landed_costs,
    make_item_input,
    make_shipping_snapshot,
)
from shipment_kernel.exceptions import ValidationError


def scenario_c_items():
    return [make_item_input(10, 12, Decimal("5.00"))]


def scenario_c_shipping():
    return make_shipping_snapshot(
        commission_rate_percent=Decimal("5"),
        rmb_to_egp_rate=Decimal("7.15"),
    )


class TestAggregateCosts:

    def test_purchase_and_commission(self):
        breakdown = aggregate_costs(scenario_c_items(), scenario_c_shipping())
        assert breakdown.purchase_cost_rmb == Decimal("600.00")
        assert breakdown.commission_cost_rmb == Decimal("30.00")
        assert breakdown.commission_cost_egp == Decimal("214.50")
        assert breakdown.purchase_cost_egp == Decimal("4290.00")
        assert breakdown.purchase_rate_basis == PurchaseRateBasis.SHIPPING

    def test_shipping_chain(self):
        shipping = make_shipping_snapshot(
            shipping_area_sqm=Decimal("12.5"),
            shipping_cost_per_sqm_usd=Decimal("40"),
            usd_to_rmb_rate=Decimal("7.2"),
            rmb_to_egp_rate=Decimal("7"),
        )
        breakdown = aggregate_costs([make_item_input(1, 1, Decimal("1"))], shipping)
        assert breakdown.shipping_cost_usd == Decimal("500.00")
        assert breakdown.shipping_cost_rmb == Decimal("3600.00")
        assert breakdown.shipping_cost_egp == Decimal("25200.00")

    def test_customs_and_takhreeg_per_carton(self):
        items = [
            make_item_input(4, 10, Decimal("2"), Decimal("15.50"), Decimal("3")),
            make_item_input(2, 5, Decimal("1"), Decimal("10"), Decimal("0")),
        ]
        breakdown = aggregate_costs(items)
        assert breakdown.customs_cost_egp == Decimal("82.00")
        assert breakdown.takhreeg_cost_egp == Decimal("12.00")

    def test_final_is_sum_of_egp_components(self):
        items = [make_item_input(3, 7, Decimal("1.33"), Decimal("9.99"), Decimal("1.01"))]
        shipping = make_shipping_snapshot(
            commission_rate_percent=Decimal("3.5"),
            shipping_area_sqm=Decimal("1.75"),
            shipping_cost_per_sqm_usd=Decimal("33.3"),
            usd_to_rmb_rate=Decimal("7.1234"),
            rmb_to_egp_rate=Decimal("6.9876"),
        )
        b = aggregate_costs(items, shipping)
        assert b.final_total_cost_egp == (
            b.purchase_cost_egp
            + b.commission_cost_egp
            + b.shipping_cost_egp
            + b.customs_cost_egp
            + b.takhreeg_cost_egp
        )

    def test_missing_rates_zero_components(self):
        shipping = make_shipping_snapshot(
            commission_rate_percent=Decimal("5"),
            shipping_area_sqm=Decimal("10"),
            shipping_cost_per_sqm_usd=Decimal("5"),
        )
        breakdown = aggregate_costs(scenario_c_items(), shipping)
        assert breakdown.commission_cost_rmb == Decimal("30.00")
        assert breakdown.commission_cost_egp == Decimal("0.00")
        assert breakdown.shipping_cost_usd == Decimal("50.00")
        assert breakdown.shipping_cost_rmb == Decimal("0.00")
        assert breakdown.shipping_cost_egp == Decimal("0.00")
        assert breakdown.purchase_cost_egp == Decimal("0.00")
        assert breakdown.purchase_rate_basis == PurchaseRateBasis.NONE

    def test_zero_rate_treated_as_missing(self):
        shipping = make_shipping_snapshot(rmb_to_egp_rate=Decimal("0"))
        assert shipping.rmb_to_egp_rate is None

    def test_preliminary_rate_used_before_shipping(self):
        breakdown = aggregate_costs(scenario_c_items(), None, Decimal("7.0"))
        assert breakdown.purchase_cost_egp == Decimal("4200.00")
        assert breakdown.is_preliminary

    def test_shipping_rate_wins_over_preliminary(self):
        breakdown = aggregate_costs(scenario_c_items(), scenario_c_shipping(), Decimal("9"))
        assert breakdown.purchase_cost_egp == Decimal("4290.00")
        assert not breakdown.is_preliminary

    def test_empty_items(self):
        breakdown = aggregate_costs([], ShippingSnapshot())
        assert breakdown.final_total_cost_egp == Decimal("0.00")

    @given(
        cartons=st.integers(min_value=0, max_value=500),
        per_carton=st.integers(min_value=0, max_value=200),
        price=st.decimals(min_value=Decimal("0"), max_value=Decimal("9999.9999"), places=4),
        rate=st.decimals(min_value=Decimal("0.0001"), max_value=Decimal("99.9999"), places=4),
    )
    @settings(max_examples=150)
    def test_idempotent(self, cartons, per_carton, price, rate):
        items = [make_item_input(cartons, per_carton, price)]
        shipping = make_shipping_snapshot(
            commission_rate_percent=Decimal("5"), rmb_to_egp_rate=rate
        )
        assert aggregate_costs(items, shipping) == aggregate_costs(items, shipping)


class TestInputValidation:

    @pytest.mark.parametrize("field,args", [
        ("cartons", (-1, 1, Decimal("1"))),
        ("pieces_per_carton", (1, -1, Decimal("1"))),
        ("unit_price_rmb", (1, 1, Decimal("-0.01"))),
    ])
    def test_negative_values_rejected(self, field, args):
        with pytest.raises(ValidationError) as exc_info:
            make_item_input(*args)
        assert exc_info.value.field == field

    def test_fractional_cartons_rejected(self):
        with pytest.raises(ValidationError):
            make_item_input(Decimal("1.5"), 1, Decimal("1"))

    def test_negative_commission_rejected(self):
        with pytest.raises(ValidationError):
            make_shipping_snapshot(commission_rate_percent=Decimal("-1"))

    def test_float_rejected(self):
        with pytest.raises(ValidationError):
            make_item_input(1, 1, 1.25)


class TestAllocate:

    def test_shares_sum_to_total(self):
        shares = allocate(Decimal("100.00"), [Decimal("1"), Decimal("1"), Decimal("1")])
        assert shares == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]

    def test_zero_weights_split_equally(self):
        assert allocate(Decimal("10.00"), [Decimal("0"), Decimal("0")]) == [
            Decimal("5.00"),
            Decimal("5.00"),
        ]

    def test_empty(self):
        assert allocate(Decimal("10.00"), []) == []

    @given(
        total=st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2),
        weights=st.lists(
            st.decimals(min_value=Decimal("0"), max_value=Decimal("10000"), places=2),
            min_size=1,
            max_size=8,
        ),
    )
    @settings(max_examples=200)
    def test_exact_sum(self, total, weights):
        assert sum(allocate(total, weights)) == total


class TestLandedCosts:

    def test_total_matches_final(self):
        items = [
            make_item_input(10, 12, Decimal("5.00"), Decimal("20"), Decimal("5")),
            make_item_input(3, 7, Decimal("1.10"), Decimal("0"), Decimal("2")),
        ]
        shipping = make_shipping_snapshot(
            commission_rate_percent=Decimal("5"),
            shipping_area_sqm=Decimal("3"),
            shipping_cost_per_sqm_usd=Decimal("25"),
            usd_to_rmb_rate=Decimal("7.2"),
            rmb_to_egp_rate=Decimal("7.15"),
        )
        breakdown = aggregate_costs(items, shipping)
        landed = allocate_landed_costs(items, breakdown)
        assert sum(c.total_cost_egp for c in landed) == breakdown.final_total_cost_egp
        assert landed[0].total_pieces == 120
        assert landed[0].unit_cost_rmb == Decimal("5.0000")

    def test_customs_stays_with_its_item(self):
        items = [
            make_item_input(1, 1, Decimal("0"), Decimal("50"), Decimal("0")),
            make_item_input(1, 1, Decimal("0"), Decimal("0"), Decimal("0")),
        ]
        landed = allocate_landed_costs(items, aggregate_costs(items))
        assert landed[0].total_cost_egp == Decimal("50.00")
        assert landed[1].total_cost_egp == Decimal("0.00")

    def test_zero_pieces_unit_cost_zero(self):
        items = [make_item_input(0, 10, Decimal("3"))]
        landed = allocate_landed_costs(items, aggregate_costs(items))
        assert landed[0].unit_cost_egp == Decimal("0.0000")
