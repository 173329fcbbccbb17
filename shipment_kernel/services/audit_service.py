"""
Module: shipment_kernel.services.audit_service
Responsibility: Fire-and-forget audit sink.  Appends AuditLog rows for
    CREATE / UPDATE / DELETE / STATUS_CHANGE actions on business entities.
Architecture position: Kernel > Services.  Called by the costing,
    settlement and exchange-rate services inside their own transaction.

Invariants enforced:
    - An audit write can never abort the operation that produced it.  Each
      write runs in a SAVEPOINT; on any failure the savepoint is rolled
      back, the failure is logged as ``audit_write_failed``, and record()
      returns None.  The enclosing transaction is untouched.

Failure modes:
    - None propagate.  Failures are visible only in operational logs.
"""

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from shipment_kernel.domain.clock import Clock, SystemClock
from shipment_kernel.logging_config import get_logger
from shipment_kernel.models.audit_log import AuditAction, AuditLog

logger = get_logger("services.audit")


class AuditService:
    """
    Append-only audit sink.

    Contract:
        record() either appends one AuditLog row or logs why it could not.
        It never raises.

    Non-goals:
        - No hash chaining or tamper evidence; rows are protected only by the
          ORM immutability listeners.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    def record(
        self,
        user_id: UUID | None,
        entity_type: str,
        entity_id,
        action_type: AuditAction | str,
        details: dict[str, Any] | None = None,
    ) -> AuditLog | None:
        """Append an audit row; returns it, or None if the write failed."""
        try:
            with self.session.begin_nested():
                entry = AuditLog(
                    user_id=user_id,
                    entity_type=entity_type,
                    entity_id=str(entity_id),
                    action_type=AuditAction(action_type).value,
                    details=_jsonable(details) if details is not None else None,
                    created_at=self._clock.now(),
                )
                self.session.add(entry)
                self.session.flush()
            return entry
        except Exception:
            logger.warning(
                "audit_write_failed",
                exc_info=True,
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "action_type": str(getattr(action_type, "value", action_type)),
                },
            )
            return None


def _jsonable(value):
    """Render Decimals, dates and UUIDs as strings for the JSON column."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if value is None or isinstance(value, (bool, int, str)):
        return value
    return str(getattr(value, "value", value))
