"""
Module: shipment_kernel.services.payment_repository
Responsibility: Append payments and aggregate them per shipment.
Architecture position: Kernel > Services.  Flush-only; the caller owns the
    transaction.

Invariants enforced:
    - insert() is the only write; payments are never updated or deleted.
    - sum_and_latest_date() is computed in SQL over every persisted row,
      so the totals it returns are the authoritative paid side.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from shipment_kernel.db.types import ZERO, round_money
from shipment_kernel.domain.dtos import PaymentTotals
from shipment_kernel.models.payment import ShipmentPayment
from shipment_kernel.services.base import BaseService


class PaymentRepository(BaseService[ShipmentPayment]):
    """Append-only payment persistence."""

    def insert(self, payment: ShipmentPayment) -> ShipmentPayment:
        self.session.add(payment)
        self.session.flush()
        return payment

    def sum_and_latest_date(self, shipment_id: UUID) -> PaymentTotals:
        stmt = select(
            func.coalesce(func.sum(ShipmentPayment.amount_egp), 0),
            func.max(ShipmentPayment.payment_date),
            func.count(ShipmentPayment.id),
        ).where(ShipmentPayment.shipment_id == shipment_id)
        total, last_date, count = self.session.execute(stmt).one()
        return PaymentTotals(
            total_paid_egp=round_money(_as_decimal(total)),
            last_payment_date=last_date,
            payment_count=count,
        )

    def count_for_shipment(self, shipment_id: UUID) -> int:
        stmt = select(func.count(ShipmentPayment.id)).where(
            ShipmentPayment.shipment_id == shipment_id
        )
        return self.session.execute(stmt).scalar_one()

    def list_for_shipment(self, shipment_id: UUID) -> list[ShipmentPayment]:
        stmt = (
            select(ShipmentPayment)
            .where(ShipmentPayment.shipment_id == shipment_id)
            .order_by(ShipmentPayment.payment_date)
        )
        return list(self.session.scalars(stmt))


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # SQLite hands back int 0 from COALESCE on an empty set
    return Decimal(str(value))
