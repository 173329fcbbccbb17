"""
Module: shipment_kernel.models.inventory_movement
Responsibility: ORM persistence for stock-in movements created when a
    shipment is received.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One movement per shipment item, written once by
      InventoryService.receive_shipment.
    - SUM(total_cost_egp) over a shipment's movements equals the
      shipment's final_total_cost_egp at receipt time.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shipment_kernel.db.base import TrackedBase, UUIDString


class InventoryMovement(TrackedBase):
    """Pieces taken into stock for one shipment item, at landed cost."""

    __tablename__ = "inventory_movements"

    __table_args__ = (
        UniqueConstraint("shipment_item_id", name="uq_movement_item"),
        Index("idx_movement_shipment", "shipment_id"),
        Index("idx_movement_date", "movement_date"),
    )

    shipment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipments.id", ondelete="CASCADE"),
        nullable=False,
    )

    shipment_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("shipment_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    movement_date: Mapped[date] = mapped_column(Date, nullable=False)

    total_pieces_in: Mapped[int] = mapped_column(Integer, nullable=False)

    unit_cost_rmb: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    # Landed cost per piece, 4dp
    unit_cost_egp: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)

    total_cost_egp: Mapped[Decimal] = mapped_column(nullable=False)

    item: Mapped["ShipmentItem"] = relationship()

    def __repr__(self) -> str:
        return f"<InventoryMovement item={self.shipment_item_id} pieces={self.total_pieces_in}>"
