"""Supplier create / lookup.  Flush-only; the caller commits."""

from uuid import UUID

from sqlalchemy import select

from shipment_kernel.exceptions import SupplierNotFoundError, ValidationError
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.supplier import Supplier
from shipment_kernel.services.base import BaseService

logger = get_logger("services.supplier")


class SupplierService(BaseService[Supplier]):

    def create_supplier(
        self,
        name: str,
        actor_id: UUID,
        country: str | None = None,
        contact_name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
        notes: str | None = None,
    ) -> Supplier:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Supplier name is required", field="name")
        existing = self.session.scalars(select(Supplier).where(Supplier.name == name)).first()
        if existing is not None:
            raise ValidationError(f"Supplier {name!r} already exists", field="name")

        supplier = Supplier(
            name=name,
            country=country,
            contact_name=contact_name,
            phone=phone,
            email=email,
            notes=notes,
            created_by_id=actor_id,
        )
        self.session.add(supplier)
        self.session.flush()
        logger.info("supplier_created", extra={"supplier_id": str(supplier.id), "supplier_name": name})
        return supplier

    def get(self, supplier_id: UUID) -> Supplier:
        supplier = self.session.get(Supplier, supplier_id)
        if supplier is None:
            raise SupplierNotFoundError(str(supplier_id))
        return supplier

    def list_suppliers(self, active_only: bool = True) -> list[Supplier]:
        stmt = select(Supplier)
        if active_only:
            stmt = stmt.where(Supplier.is_active.is_(True))
        return list(self.session.scalars(stmt.order_by(Supplier.name)))
