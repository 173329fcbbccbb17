"""
Module: shipment_kernel.models.payment
Responsibility: ORM persistence for payments applied against shipments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only.  A payment is never updated or deleted; corrections are
      new offsetting records.  ORM listeners in db/immutability.py refuse
      UPDATE and DELETE.
    - amount_egp is derived once (by the currency normalizer) and persisted;
      it is never recomputed from a later exchange rate.
    - exchange_rate_to_egp is NULL exactly when payment_currency is EGP.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    Shipment.total_paid_egp is by definition SUM(amount_egp) over this table
    for the shipment, so this table is the settlement ledger.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from shipment_kernel.db.base import TrackedBase, UUIDString


class PaymentMethod(str, Enum):
    """How the money was handed over."""

    CASH = "cash"
    VODAFONE_CASH = "vodafone_cash"
    INSTAPAY = "instapay"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class CostComponent(str, Enum):
    """Cost bucket a payment is tagged against (informational only)."""

    GOODS = "goods"
    SHIPPING = "shipping"
    CUSTOMS_TAKHREEG = "customs_takhreeg"
    OTHER = "other"


class ShipmentPayment(TrackedBase):
    """
    A single payment applied to a shipment.

    Contract:
        Rows are created only by SettlementService.record_payment, inside the
        same transaction that re-derives the shipment's paid totals.

    Guarantees:
        - amount_original is rounded to 2dp in payment_currency.
        - amount_egp is rounded to 2dp.
        - exchange_rate_to_egp is rounded to 4dp, or NULL for EGP.
    """

    __tablename__ = "shipment_payments"

    __table_args__ = (
        Index("idx_payment_shipment", "shipment_id"),
        Index("idx_payment_date", "payment_date"),
        Index("idx_payment_method", "payment_method"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id"),
        nullable=False,
    )

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    payment_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    amount_original: Mapped[Decimal] = mapped_column(nullable=False)

    exchange_rate_to_egp: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 4), nullable=True
    )

    amount_egp: Mapped[Decimal] = mapped_column(nullable=False)

    cost_component: Mapped[CostComponent] = mapped_column(
        String(30),
        nullable=False,
        default=CostComponent.GOODS,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        String(30),
        nullable=False,
        default=PaymentMethod.CASH,
    )

    receiver_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    note: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    attachment_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<ShipmentPayment {self.amount_original} {self.payment_currency}"
            f" = {self.amount_egp} EGP>"
        )
