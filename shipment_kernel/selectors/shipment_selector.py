"""
Module: shipment_kernel.selectors.shipment_selector
Responsibility: Read access to shipments, their payments and their inventory
    movements, returned as frozen DTOs.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - payment_state is computed from the stored totals on read; it is not a
      column and cannot drift.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from shipment_kernel.domain.dtos import (
    InventoryMovementRecord,
    PaymentRecord,
    ShipmentItemRecord,
    ShipmentRecord,
)
from shipment_kernel.domain.settlement import payment_state
from shipment_kernel.models.inventory_movement import InventoryMovement
from shipment_kernel.models.payment import ShipmentPayment
from shipment_kernel.models.shipment import Shipment, ShipmentItem, ShipmentStatus
from shipment_kernel.selectors.base import BaseSelector


def _value(enum_or_str) -> str:
    return getattr(enum_or_str, "value", enum_or_str)


def to_item_record(item: ShipmentItem) -> ShipmentItemRecord:
    return ShipmentItemRecord(
        id=item.id,
        line_no=item.line_no,
        product_name=item.product_name,
        supplier_id=item.supplier_id,
        cartons=item.cartons,
        pieces_per_carton=item.pieces_per_carton,
        total_pieces=item.total_pieces,
        unit_price_rmb=item.unit_price_rmb,
        line_total_rmb=item.line_total_rmb,
        customs_cost_per_carton_egp=item.customs_cost_per_carton_egp,
        takhreeg_cost_per_carton_egp=item.takhreeg_cost_per_carton_egp,
    )


def to_shipment_record(shipment: Shipment, include_items: bool = True) -> ShipmentRecord:
    items = tuple(to_item_record(i) for i in shipment.items) if include_items else ()
    return ShipmentRecord(
        id=shipment.id,
        shipment_code=shipment.shipment_code,
        shipment_name=shipment.shipment_name,
        purchase_date=shipment.purchase_date,
        status=_value(shipment.status),
        purchase_cost_rmb=shipment.purchase_cost_rmb,
        purchase_cost_egp=shipment.purchase_cost_egp,
        commission_cost_rmb=shipment.commission_cost_rmb,
        commission_cost_egp=shipment.commission_cost_egp,
        shipping_cost_usd=shipment.shipping_cost_usd,
        shipping_cost_rmb=shipment.shipping_cost_rmb,
        shipping_cost_egp=shipment.shipping_cost_egp,
        customs_cost_egp=shipment.customs_cost_egp,
        takhreeg_cost_egp=shipment.takhreeg_cost_egp,
        final_total_cost_egp=shipment.final_total_cost_egp,
        total_paid_egp=shipment.total_paid_egp,
        balance_egp=shipment.balance_egp,
        last_payment_date=shipment.last_payment_date,
        payment_state=payment_state(shipment.final_total_cost_egp, shipment.total_paid_egp),
        purchase_rate_is_preliminary=shipment.purchase_rate_is_preliminary,
        items=items,
    )


def to_payment_record(payment: ShipmentPayment) -> PaymentRecord:
    return PaymentRecord(
        id=payment.id,
        shipment_id=payment.shipment_id,
        payment_date=payment.payment_date,
        payment_currency=payment.payment_currency,
        amount_original=payment.amount_original,
        exchange_rate_to_egp=payment.exchange_rate_to_egp,
        amount_egp=payment.amount_egp,
        cost_component=_value(payment.cost_component),
        payment_method=_value(payment.payment_method),
        receiver_name=payment.receiver_name,
        reference_number=payment.reference_number,
        note=payment.note,
    )


def to_movement_record(movement: InventoryMovement) -> InventoryMovementRecord:
    return InventoryMovementRecord(
        id=movement.id,
        shipment_id=movement.shipment_id,
        shipment_item_id=movement.shipment_item_id,
        movement_date=movement.movement_date,
        total_pieces_in=movement.total_pieces_in,
        unit_cost_rmb=movement.unit_cost_rmb,
        unit_cost_egp=movement.unit_cost_egp,
        total_cost_egp=movement.total_cost_egp,
    )


class ShipmentSelector(BaseSelector[Shipment]):
    """Shipment, payment and movement queries."""

    def get(self, shipment_id: UUID) -> ShipmentRecord | None:
        shipment = self.session.get(Shipment, shipment_id)
        return to_shipment_record(shipment) if shipment is not None else None

    def get_by_code(self, shipment_code: str) -> ShipmentRecord | None:
        shipment = self.session.scalars(
            select(Shipment).where(Shipment.shipment_code == shipment_code)
        ).first()
        return to_shipment_record(shipment) if shipment is not None else None

    def list_shipments(
        self,
        status: str | None = None,
        include_archived: bool = False,
        include_items: bool = False,
    ) -> list[ShipmentRecord]:
        """Shipments newest purchase first."""
        stmt = select(Shipment)
        if status is not None:
            stmt = stmt.where(Shipment.status == ShipmentStatus(status).value)
        elif not include_archived:
            stmt = stmt.where(Shipment.status != ShipmentStatus.ARCHIVED.value)
        stmt = stmt.order_by(Shipment.purchase_date.desc(), Shipment.shipment_code)
        return [
            to_shipment_record(s, include_items=include_items) for s in self.session.scalars(stmt)
        ]

    def payments(self, shipment_id: UUID) -> list[PaymentRecord]:
        """Payments oldest first."""
        stmt = (
            select(ShipmentPayment)
            .where(ShipmentPayment.shipment_id == shipment_id)
            .order_by(ShipmentPayment.payment_date, ShipmentPayment.created_at)
        )
        return [to_payment_record(p) for p in self.session.scalars(stmt)]

    def payments_between(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[PaymentRecord]:
        """Payments across all shipments, oldest first, dates inclusive."""
        stmt = select(ShipmentPayment)
        if date_from is not None:
            stmt = stmt.where(ShipmentPayment.payment_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(ShipmentPayment.payment_date <= date_to)
        stmt = stmt.order_by(ShipmentPayment.payment_date, ShipmentPayment.created_at)
        return [to_payment_record(p) for p in self.session.scalars(stmt)]

    def all_movements(self) -> list[InventoryMovementRecord]:
        stmt = select(InventoryMovement).order_by(
            InventoryMovement.movement_date, InventoryMovement.line_no
        )
        return [to_movement_record(m) for m in self.session.scalars(stmt)]

    def movements(self, shipment_id: UUID) -> list[InventoryMovementRecord]:
        stmt = (
            select(InventoryMovement)
            .where(InventoryMovement.shipment_id == shipment_id)
            .order_by(InventoryMovement.line_no)
        )
        return [to_movement_record(m) for m in self.session.scalars(stmt)]
