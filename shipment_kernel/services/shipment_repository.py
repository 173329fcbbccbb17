"""
Module: shipment_kernel.services.shipment_repository
Responsibility: Load and store Shipment rows, including the exclusive-lock
    read that serializes payments against one shipment.
Architecture position: Kernel > Services.  Flush-only; the caller owns the
    transaction.

Invariants enforced:
    - get_for_update() returns the row under an exclusive lock held until
      the caller's transaction ends.  PostgreSQL: SELECT ... FOR UPDATE with
      lock_timeout.  SQLite: the transaction already holds the database
      write lock (BEGIN IMMEDIATE, see db/engine.py).
    - The locked read always refreshes the identity map
      (populate_existing) so a stale in-session copy is never used.

Failure modes:
    - ShipmentNotFoundError if the id does not exist.
    - ConcurrencyTimeoutError if the lock is not granted in time.
"""

from uuid import UUID

from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError

from shipment_kernel.db.engine import is_lock_timeout_error
from shipment_kernel.exceptions import ConcurrencyTimeoutError, ShipmentNotFoundError
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.shipment import Shipment, ShipmentItem
from shipment_kernel.services.base import BaseService

logger = get_logger("services.shipment_repository")


class ShipmentRepository(BaseService[Shipment]):
    """Shipment persistence with row-level locking."""

    def get(self, shipment_id: UUID) -> Shipment:
        """
        Load a shipment without locking.

        Raises:
            ShipmentNotFoundError: No shipment with this id.
        """
        shipment = self.session.get(Shipment, shipment_id)
        if shipment is None:
            raise ShipmentNotFoundError(str(shipment_id))
        return shipment

    def get_for_update(self, shipment_id: UUID, lock_timeout_ms: int | None = None) -> Shipment:
        """
        Load a shipment and hold an exclusive lock on its row.

        Raises:
            ShipmentNotFoundError: No shipment with this id.
            ConcurrencyTimeoutError: Lock not acquired within lock_timeout_ms.
        """
        try:
            if lock_timeout_ms is not None and self.session.bind.dialect.name == "postgresql":
                # SET does not accept bind parameters
                self.session.execute(
                    text(f"SET LOCAL lock_timeout = '{int(lock_timeout_ms)}ms'")
                )
            stmt = (
                select(Shipment)
                .where(Shipment.id == shipment_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            shipment = self.session.scalars(stmt).first()
        except OperationalError as exc:
            if is_lock_timeout_error(exc):
                logger.warning(
                    "shipment_lock_timeout",
                    extra={
                        "shipment_id": str(shipment_id),
                        "lock_timeout_ms": lock_timeout_ms,
                    },
                )
                raise ConcurrencyTimeoutError(
                    entity_type="Shipment",
                    entity_id=str(shipment_id),
                    timeout_ms=lock_timeout_ms,
                ) from exc
            raise

        if shipment is None:
            raise ShipmentNotFoundError(str(shipment_id))
        return shipment

    def save(self, shipment: Shipment) -> Shipment:
        """Add (if new) and flush."""
        self.session.add(shipment)
        self.session.flush()
        return shipment

    def list_items(self, shipment_id: UUID) -> list[ShipmentItem]:
        stmt = (
            select(ShipmentItem)
            .where(ShipmentItem.shipment_id == shipment_id)
            .order_by(ShipmentItem.line_no)
        )
        return list(self.session.scalars(stmt))

    def code_exists(self, shipment_code: str) -> bool:
        stmt = select(Shipment.id).where(Shipment.shipment_code == shipment_code).limit(1)
        return self.session.execute(stmt).first() is not None
