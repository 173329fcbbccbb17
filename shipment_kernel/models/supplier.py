"""
Module: shipment_kernel.models.supplier
Responsibility: ORM persistence for suppliers that shipment items are bought from.
Architecture position: Kernel > Models.  May import from db/base.py only.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from shipment_kernel.db.base import TrackedBase


class Supplier(TrackedBase):
    """A vendor; supplier balances and statements are keyed on this row."""

    __tablename__ = "suppliers"

    __table_args__ = (
        UniqueConstraint("name", name="uq_supplier_name"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    country: Mapped[str | None] = mapped_column(String(100), nullable=True)

    contact_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<Supplier {self.name}>"
