"""
Tests for ShipmentCostingService -- the shipment wizard.

Covers:
- create_shipment(): validation, duplicate codes, preliminary purchase rate
- save_shipping_details(): snapshot rates, status advance, recompute
- save_customs_costs(): per-carton landing costs, unknown items
- finalize_shipment() / change_status(): transition graph, stock-in
- replace_items(), recompute(), delete_shipment()
- Recompute below the amount already paid is refused
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from shipment_kernel.domain.dtos import (
    ItemCustomsInput,
    ItemInput,
    PaymentInput,
    ShipmentHeader,
    ShippingDetailsInput,
)
from shipment_kernel.exceptions import (
    DuplicateShipmentCodeError,
    InvalidStatusTransitionError,
    ShipmentHasPaymentsError,
    ShipmentNotFoundError,
    SupplierNotFoundError,
    TotalBelowPaidError,
    ValidationError,
)
from shipment_kernel.models.audit_log import AuditLog
from shipment_kernel.models.inventory_movement import InventoryMovement
from shipment_kernel.models.shipment import Shipment, ShipmentItem, ShipmentStatus
from shipment_kernel.services.costing_service import ALLOWED_TRANSITIONS, can_transition
from shipment_kernel.services.exchange_rate_service import ExchangeRateService
from shipment_kernel.services.supplier_service import SupplierService


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def header(code="SHP-100", status=None):
    return ShipmentHeader(
        shipment_code=code,
        shipment_name="Spring lighting order",
        purchase_date=date(2024, 2, 1),
        status=status,
    )


def scenario_items():
    return [ItemInput("LED panel", cartons=10, pieces_per_carton=12, unit_price_rmb=Decimal("5.00"))]


def scenario_shipping(**overrides):
    values = dict(
        commission_rate_percent=Decimal("5"),
        shipping_area_sqm=Decimal("2"),
        shipping_cost_per_sqm_usd=Decimal("50"),
        usd_to_rmb_rate=Decimal("7.2"),
        rmb_to_egp_rate=Decimal("7.15"),
        shipping_date=date(2024, 2, 15),
    )
    values.update(overrides)
    return ShippingDetailsInput(**values)


def audit_actions(session, shipment_id):
    return [
        e.action_type
        for e in session.scalars(
            select(AuditLog)
            .where(AuditLog.entity_type == "Shipment", AuditLog.entity_id == str(shipment_id))
            .order_by(AuditLog.created_at)
        )
    ]


# ---------------------------------------------------------------------------
# create_shipment
# ---------------------------------------------------------------------------


class TestCreateShipment:

    def test_creates_new_shipment_with_items(self, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)

        assert record.status == "new"
        assert record.purchase_cost_rmb == Decimal("600.00")
        assert len(record.items) == 1
        item = record.items[0]
        assert item.line_no == 1
        assert item.total_pieces == 120
        assert item.line_total_rmb == Decimal("600.00")

    def test_without_any_rate_purchase_egp_is_zero(self, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)

        assert record.purchase_cost_egp == Decimal("0.00")
        assert record.final_total_cost_egp == Decimal("0.00")
        assert not record.purchase_rate_is_preliminary

    def test_latest_rate_used_as_preliminary(self, session, clock, costing, test_actor_id):
        ExchangeRateService(session, clock=clock).create_rate("RMB", "EGP", Decimal("7.0"), test_actor_id)

        record = costing.create_shipment(header(), scenario_items(), test_actor_id)

        assert record.purchase_cost_egp == Decimal("4200.00")
        assert record.final_total_cost_egp == Decimal("4200.00")
        assert record.balance_egp == Decimal("4200.00")
        assert record.purchase_rate_is_preliminary

    def test_may_start_awaiting_shipping(self, costing, test_actor_id):
        record = costing.create_shipment(
            header(status="awaiting_shipping"), scenario_items(), test_actor_id
        )
        assert record.status == "awaiting_shipping"

    def test_may_not_start_received(self, costing, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            costing.create_shipment(header(status="received"), scenario_items(), test_actor_id)
        assert exc_info.value.field == "status"

    def test_unknown_status(self, costing, test_actor_id):
        with pytest.raises(ValidationError):
            costing.create_shipment(header(status="lost"), scenario_items(), test_actor_id)

    def test_duplicate_code(self, costing, test_actor_id):
        costing.create_shipment(header("SHP-DUP"), scenario_items(), test_actor_id)

        with pytest.raises(DuplicateShipmentCodeError) as exc_info:
            costing.create_shipment(header("SHP-DUP"), scenario_items(), test_actor_id)
        assert exc_info.value.code == "DUPLICATE_SHIPMENT_CODE"

    @pytest.mark.parametrize("code,name", [("", "x"), ("  ", "x"), ("SHP-1", "")])
    def test_required_header_fields(self, costing, test_actor_id, code, name):
        with pytest.raises(ValidationError):
            costing.create_shipment(
                ShipmentHeader(code, name, date(2024, 2, 1)), scenario_items(), test_actor_id
            )

    def test_needs_items(self, session, costing, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            costing.create_shipment(header("SHP-EMPTY"), [], test_actor_id)
        assert exc_info.value.field == "items"
        count = session.execute(
            select(func.count(Shipment.id)).where(Shipment.shipment_code == "SHP-EMPTY")
        ).scalar_one()
        assert count == 0

    def test_negative_cartons_rejected(self, costing, test_actor_id):
        with pytest.raises(ValidationError) as exc_info:
            costing.create_shipment(
                header(), [ItemInput("Bad", -1, 1, Decimal("1"))], test_actor_id
            )
        assert exc_info.value.field == "cartons"

    def test_unknown_supplier(self, costing, test_actor_id):
        with pytest.raises(SupplierNotFoundError):
            costing.create_shipment(
                header(),
                [ItemInput("Cable", 1, 1, Decimal("1"), supplier_id=uuid4())],
                test_actor_id,
            )

    def test_known_supplier_linked(self, session, costing, test_actor_id):
        supplier = SupplierService(session).create_supplier("Ningbo Lights", test_actor_id)

        record = costing.create_shipment(
            header(),
            [ItemInput("Cable", 1, 1, Decimal("1"), supplier_id=supplier.id)],
            test_actor_id,
        )
        assert record.items[0].supplier_id == supplier.id

    def test_audited_and_logged(self, session, captured_logs, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)

        assert audit_actions(session, record.id) == ["CREATE"]
        messages = [r["message"] for r in captured_logs()]
        assert "create_shipment_started" in messages
        assert "shipment_created" in messages
        assert "create_shipment_completed" in messages


# ---------------------------------------------------------------------------
# Shipping details and customs
# ---------------------------------------------------------------------------


class TestShippingDetails:

    def test_full_breakdown(self, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)

        record = costing.save_shipping_details(record.id, scenario_shipping(), test_actor_id)

        assert record.status == "ready_for_receipt"
        assert record.purchase_cost_egp == Decimal("4290.00")
        assert record.commission_cost_rmb == Decimal("30.00")
        assert record.commission_cost_egp == Decimal("214.50")
        assert record.shipping_cost_usd == Decimal("100.00")
        assert record.shipping_cost_rmb == Decimal("720.00")
        assert record.shipping_cost_egp == Decimal("5148.00")
        assert record.final_total_cost_egp == Decimal("9652.50")
        assert record.balance_egp == Decimal("9652.50")
        assert not record.purchase_rate_is_preliminary

    def test_shipping_rate_replaces_preliminary(self, session, clock, costing, test_actor_id):
        ExchangeRateService(session, clock=clock).create_rate("RMB", "EGP", Decimal("6.5"), test_actor_id)
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)
        assert record.purchase_rate_is_preliminary

        record = costing.save_shipping_details(
            record.id, ShippingDetailsInput(rmb_to_egp_rate=Decimal("7.15")), test_actor_id
        )

        assert record.purchase_cost_egp == Decimal("4290.00")
        assert not record.purchase_rate_is_preliminary

    def test_later_rate_changes_do_not_reprice(self, session, clock, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)
        record = costing.save_shipping_details(record.id, scenario_shipping(), test_actor_id)

        ExchangeRateService(session, clock=clock).create_rate("RMB", "EGP", Decimal("9.0"), test_actor_id)
        again = costing.recompute(record.id, test_actor_id)

        assert again.final_total_cost_egp == record.final_total_cost_egp

    def test_second_save_keeps_status(self, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)
        costing.save_shipping_details(record.id, scenario_shipping(), test_actor_id)

        record = costing.save_shipping_details(
            record.id, scenario_shipping(commission_rate_percent=Decimal("0")), test_actor_id
        )

        assert record.status == "ready_for_receipt"
        assert record.commission_cost_egp == Decimal("0.00")

    def test_negative_area_rejected(self, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)

        with pytest.raises(ValidationError) as exc_info:
            costing.save_shipping_details(
                record.id, ShippingDetailsInput(shipping_area_sqm=Decimal("-1")), test_actor_id
            )
        assert exc_info.value.field == "shipping_area_sqm"

    def test_unknown_shipment(self, costing, test_actor_id):
        with pytest.raises(ShipmentNotFoundError):
            costing.save_shipping_details(uuid4(), scenario_shipping(), test_actor_id)


class TestCustomsCosts:

    def test_customs_and_takhreeg_added(self, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)
        record = costing.save_shipping_details(record.id, scenario_shipping(), test_actor_id)
        item_id = record.items[0].id

        record = costing.save_customs_costs(
            record.id,
            [ItemCustomsInput(item_id, Decimal("25"), Decimal("4.5"))],
            test_actor_id,
        )

        assert record.customs_cost_egp == Decimal("250.00")
        assert record.takhreeg_cost_egp == Decimal("45.00")
        assert record.final_total_cost_egp == Decimal("9947.50")

    def test_item_of_another_shipment_rejected(self, costing, test_actor_id):
        first = costing.create_shipment(header("SHP-A"), scenario_items(), test_actor_id)
        second = costing.create_shipment(header("SHP-B"), scenario_items(), test_actor_id)

        with pytest.raises(ValidationError) as exc_info:
            costing.save_customs_costs(
                first.id, [ItemCustomsInput(second.items[0].id, Decimal("1"))], test_actor_id
            )
        assert exc_info.value.field == "item_id"


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


class TestReplaceItems:

    def test_items_replaced_and_renumbered(self, session, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)

        record = costing.replace_items(
            record.id,
            [
                ItemInput("Bulb", 5, 20, Decimal("0.85")),
                ItemInput("Socket", 2, 50, Decimal("0.4")),
            ],
            test_actor_id,
        )

        assert [i.line_no for i in record.items] == [1, 2]
        assert [i.product_name for i in record.items] == ["Bulb", "Socket"]
        assert record.purchase_cost_rmb == Decimal("125.00")
        count = session.execute(
            select(func.count(ShipmentItem.id)).where(ShipmentItem.shipment_id == record.id)
        ).scalar_one()
        assert count == 2

    def test_cost_below_paid_refused(self, costing, settlement, create_shipment_with_total, test_actor_id):
        shipment = create_shipment_with_total(Decimal("1000.00"))
        settlement.record_payment(
            shipment.id,
            PaymentInput("EGP", Decimal("800"), date(2024, 2, 10)),
            test_actor_id,
        )

        with pytest.raises(TotalBelowPaidError) as exc_info:
            costing.replace_items(
                shipment.id, [ItemInput("Widget", 1, 1, Decimal("500"))], test_actor_id
            )

        assert exc_info.value.total_paid_egp == Decimal("800.00")
        assert exc_info.value.final_total_cost_egp == Decimal("500.00")
        assert costing.recompute(shipment.id).final_total_cost_egp == Decimal("1000.00")

    def test_cost_raise_rederives_balance(
        self, costing, settlement, create_shipment_with_total, test_actor_id
    ):
        shipment = create_shipment_with_total(Decimal("1000.00"))
        settlement.record_payment(
            shipment.id,
            PaymentInput("EGP", Decimal("400"), date(2024, 2, 10)),
            test_actor_id,
        )

        record = costing.replace_items(
            shipment.id, [ItemInput("Widget", 1, 1, Decimal("1500"))], test_actor_id
        )

        assert record.total_paid_egp == Decimal("400.00")
        assert record.balance_egp == Decimal("1100.00")
        assert record.last_payment_date == date(2024, 2, 10)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:

    def test_transition_graph(self):
        assert can_transition("new", "ready_for_receipt")
        assert can_transition("ready_for_receipt", "received")
        assert not can_transition("received", "new")
        assert not can_transition("new", "new")
        assert ALLOWED_TRANSITIONS[ShipmentStatus.ARCHIVED] == frozenset()

    def test_finalize_stocks_in_at_landed_cost(self, session, clock, costing, test_actor_id):
        record = costing.create_shipment(
            header(),
            [
                ItemInput("LED panel", 10, 12, Decimal("5.00"), customs_cost_per_carton_egp=Decimal("25")),
                ItemInput("Driver", 4, 25, Decimal("1.20")),
            ],
            test_actor_id,
        )
        costing.save_shipping_details(record.id, scenario_shipping(), test_actor_id)

        record = costing.finalize_shipment(record.id, test_actor_id)

        assert record.status == "received"
        movements = list(
            session.scalars(
                select(InventoryMovement)
                .where(InventoryMovement.shipment_id == record.id)
                .order_by(InventoryMovement.line_no)
            )
        )
        assert [m.total_pieces_in for m in movements] == [120, 100]
        assert sum(m.total_cost_egp for m in movements) == record.final_total_cost_egp
        assert all(m.movement_date == clock.today() for m in movements)

    def test_finalize_twice_is_noop(self, session, costing, create_shipment_with_total, test_actor_id):
        shipment = create_shipment_with_total(Decimal("1000.00"))
        costing.finalize_shipment(shipment.id, test_actor_id, movement_date=date(2024, 3, 5))

        record = costing.finalize_shipment(shipment.id, test_actor_id)

        assert record.status == "received"
        count = session.execute(
            select(func.count(InventoryMovement.id)).where(InventoryMovement.shipment_id == shipment.id)
        ).scalar_one()
        assert count == 1

    def test_finalize_from_new_refused(self, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            costing.finalize_shipment(record.id, test_actor_id)
        assert exc_info.value.from_status == "new"
        assert exc_info.value.to_status == "received"

    def test_change_status_to_received_stocks_in(
        self, session, costing, create_shipment_with_total, test_actor_id
    ):
        shipment = create_shipment_with_total(Decimal("250.00"))

        record = costing.change_status(shipment.id, "received", test_actor_id)

        assert record.status == "received"
        total = session.execute(
            select(func.sum(InventoryMovement.total_cost_egp)).where(
                InventoryMovement.shipment_id == shipment.id
            )
        ).scalar_one()
        assert Decimal(total) == Decimal("250.00")

    def test_received_shipment_is_frozen(self, costing, create_shipment_with_total, test_actor_id):
        shipment = create_shipment_with_total(Decimal("1000.00"))
        costing.finalize_shipment(shipment.id, test_actor_id)

        with pytest.raises(ValidationError):
            costing.replace_items(shipment.id, scenario_items(), test_actor_id)
        with pytest.raises(ValidationError):
            costing.save_shipping_details(shipment.id, scenario_shipping(), test_actor_id)

    def test_archive_and_no_way_back(self, costing, create_shipment_with_total, test_actor_id):
        shipment = create_shipment_with_total(Decimal("1000.00"))

        record = costing.archive_shipment(shipment.id, test_actor_id)
        assert record.status == "archived"

        with pytest.raises(InvalidStatusTransitionError):
            costing.change_status(shipment.id, "ready_for_receipt", test_actor_id)

    def test_same_status_refused(self, costing, create_shipment_with_total, test_actor_id):
        shipment = create_shipment_with_total(Decimal("1000.00"))

        with pytest.raises(InvalidStatusTransitionError):
            costing.change_status(shipment.id, "ready_for_receipt", test_actor_id)

    def test_status_changes_audited(self, session, costing, test_actor_id):
        record = costing.create_shipment(header(), scenario_items(), test_actor_id)
        costing.change_status(record.id, "awaiting_shipping", test_actor_id)

        actions = audit_actions(session, record.id)
        assert actions.count("STATUS_CHANGE") == 1

    def test_recompute_idempotent(self, costing, create_shipment_with_total):
        shipment = create_shipment_with_total(Decimal("777.77"))

        first = costing.recompute(shipment.id)
        second = costing.recompute(shipment.id)

        assert first == second


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


class TestDeleteShipment:

    def test_delete_cascades(self, session, costing, create_shipment_with_total, test_actor_id):
        shipment = create_shipment_with_total(Decimal("1000.00"))

        costing.delete_shipment(shipment.id, test_actor_id)

        assert session.get(Shipment, shipment.id) is None
        count = session.execute(
            select(func.count(ShipmentItem.id)).where(ShipmentItem.shipment_id == shipment.id)
        ).scalar_one()
        assert count == 0
        assert "DELETE" in audit_actions(session, shipment.id)

    def test_delete_with_payments_refused(
        self, session, costing, settlement, create_shipment_with_total, test_actor_id
    ):
        shipment = create_shipment_with_total(Decimal("1000.00"))
        settlement.record_payment(
            shipment.id,
            PaymentInput("EGP", Decimal("10"), date(2024, 2, 10)),
            test_actor_id,
        )

        with pytest.raises(ShipmentHasPaymentsError) as exc_info:
            costing.delete_shipment(shipment.id, test_actor_id)

        assert exc_info.value.payment_count == 1
        assert session.get(Shipment, shipment.id) is not None
