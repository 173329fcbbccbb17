"""
Module: shipment_kernel.models.audit_log
Responsibility: ORM persistence for the append-only audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only; no UPDATE or DELETE (ORM listeners in db/immutability.py).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    Written by AuditService as a fire-and-forget sink.  A failed audit
    write never rolls back the business operation that produced it.
"""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from shipment_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    """Types of auditable actions."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"


class AuditLog(Base):
    """One audited change to a business entity."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_created", "created_at"),
    )

    # Who performed the action (None for system actions)
    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # "Shipment", "ShipmentPayment", "ExchangeRate", ...
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)

    action_type: Mapped[AuditAction] = mapped_column(String(20), nullable=False)

    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action_type} {self.entity_type}:{self.entity_id}>"
