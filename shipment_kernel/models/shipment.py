"""
Module: shipment_kernel.models.shipment
Responsibility: ORM persistence for shipments, their line items and their
    shipping-time snapshot (commission rate, area pricing, exchange rates).
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - balance_egp == max(0, final_total_cost_egp - total_paid_egp).  The
      columns are written only by ShipmentCostingService (cost side) and
      SettlementService (paid side), both of which re-derive the balance.
    - total_paid_egp is the SUM of persisted ShipmentPayment.amount_egp.
    - ShipmentItem.total_pieces == cartons * pieces_per_carton and
      line_total_rmb == round(total_pieces * unit_price_rmb, 2).
    - ShippingDetails rates are historical snapshots; they are never
      refreshed from the exchange_rates table.

Failure modes:
    - IntegrityError on duplicate shipment_code.
    - IntegrityError on deleting a shipment still referenced by payments.

Audit relevance:
    Every cost column is reproducible from items + shipping details via
    domain.costing.aggregate_costs; every paid column is reproducible from
    the payments table.  Nothing here is a running counter.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shipment_kernel.db.base import TrackedBase, UUIDString


class ShipmentStatus(str, Enum):
    """Shipment lifecycle status."""

    NEW = "new"
    AWAITING_SHIPPING = "awaiting_shipping"
    READY_FOR_RECEIPT = "ready_for_receipt"
    RECEIVED = "received"
    ARCHIVED = "archived"


class Shipment(TrackedBase):
    """
    A purchase of goods moving from supplier to warehouse.

    Contract:
        Holds the cost breakdown of the latest recomputation and the
        settlement totals of the latest payment.  Both sides are derived;
        callers never write them directly.

    Guarantees:
        - Money columns are Numeric(14, 2).
        - purchase_rate_is_preliminary is True while purchase_cost_egp was
          computed from a latest-rate snapshot instead of the shipping-time
          rate.

    Non-goals:
        - Does NOT track per-component payment balances; a payment's
          cost_component tag is informational.
    """

    __tablename__ = "shipments"

    __table_args__ = (
        UniqueConstraint("shipment_code", name="uq_shipment_code"),
        Index("idx_shipment_status", "status"),
        Index("idx_shipment_purchase_date", "purchase_date"),
    )

    # Business identifier shown to users
    shipment_code: Mapped[str] = mapped_column(String(50), nullable=False)

    shipment_name: Mapped[str] = mapped_column(String(255), nullable=False)

    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[ShipmentStatus] = mapped_column(
        String(30),
        nullable=False,
        default=ShipmentStatus.NEW,
    )

    # Cost components
    purchase_cost_rmb: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    purchase_cost_egp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    commission_cost_rmb: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    commission_cost_egp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    shipping_cost_usd: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    shipping_cost_rmb: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    shipping_cost_egp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    customs_cost_egp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    takhreeg_cost_egp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))

    purchase_rate_is_preliminary: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    # Derived totals
    final_total_cost_egp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    total_paid_egp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))
    balance_egp: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0.00"))

    # MAX(payment_date), not the time the last payment was keyed in
    last_payment_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    items: Mapped[list["ShipmentItem"]] = relationship(
        back_populates="shipment",
        cascade="all, delete-orphan",
        order_by="ShipmentItem.line_no",
        lazy="selectin",
    )

    shipping_details: Mapped["ShippingDetails | None"] = relationship(
        back_populates="shipment",
        cascade="all, delete-orphan",
        uselist=False,
    )

    movements: Mapped[list["InventoryMovement"]] = relationship(
        cascade="all, delete-orphan",
        order_by="InventoryMovement.line_no",
    )

    def __repr__(self) -> str:
        return f"<Shipment {self.shipment_code} status={self.status}>"

    @property
    def is_archived(self) -> bool:
        return self.status == ShipmentStatus.ARCHIVED


class ShipmentItem(TrackedBase):
    """
    One product line of a shipment.

    Guarantees:
        - total_pieces and line_total_rmb are derived at write time by
          ShipmentCostingService, never accepted from the caller.
    """

    __tablename__ = "shipment_items"

    __table_args__ = (
        Index("idx_item_shipment", "shipment_id"),
        Index("idx_item_supplier", "supplier_id"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Position within the shipment, for deterministic ordering
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    supplier_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("suppliers.id"),
        nullable=True,
    )

    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    country_of_origin: Mapped[str | None] = mapped_column(String(100), nullable=True)
    image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Quantities
    cartons: Mapped[int] = mapped_column(Integer, nullable=False)
    pieces_per_carton: Mapped[int] = mapped_column(Integer, nullable=False)
    total_pieces: Mapped[int] = mapped_column(Integer, nullable=False)

    # Purchase price per piece (RMB) and derived line total
    unit_price_rmb: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    line_total_rmb: Mapped[Decimal] = mapped_column(nullable=False)

    # Per-carton landing costs (EGP), filled in at the customs step
    customs_cost_per_carton_egp: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0.00")
    )
    takhreeg_cost_per_carton_egp: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0.00")
    )

    shipment: Mapped["Shipment"] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<ShipmentItem {self.product_name} {self.cartons}x{self.pieces_per_carton}>"


class ShippingDetails(TrackedBase):
    """
    Shipping-time inputs for one shipment.

    Contract:
        The two exchange rates are captured when shipping is recorded so a
        shipment's cost never changes because global rates moved later.
    """

    __tablename__ = "shipping_details"

    __table_args__ = (
        UniqueConstraint("shipment_id", name="uq_shipping_details_shipment"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id", ondelete="CASCADE"),
        nullable=False,
    )

    commission_rate_percent: Mapped[Decimal] = mapped_column(
        Numeric(7, 4), nullable=False, default=Decimal("0")
    )

    shipping_area_sqm: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )

    shipping_cost_per_sqm_usd: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), nullable=False, default=Decimal("0")
    )

    # Rate snapshots, 4dp
    usd_to_rmb_rate_at_shipping: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 4), nullable=True
    )
    rmb_to_egp_rate_at_shipping: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 4), nullable=True
    )

    shipping_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    shipment: Mapped["Shipment"] = relationship(back_populates="shipping_details")

    def __repr__(self) -> str:
        return f"<ShippingDetails shipment={self.shipment_id}>"
