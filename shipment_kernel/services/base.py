"""
BaseService -- abstract base for kernel services and repositories.
Responsibility:
    Provides the common constructor and session-handling contract.  Concrete
    services receive a SQLAlchemy ``Session`` and use ``session.flush()``
    -- never ``session.commit()`` -- unless they are explicitly a
    transaction owner (SettlementService and ShipmentCostingService with
    ``auto_commit=True``).
Architecture position:
    Kernel > Services -- imperative shell around the pure domain layer.
Invariants enforced:
    - Repositories flush within the caller's transaction and never commit
      or roll back; the caller owns the boundary.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from shipment_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active transaction.
    """

    def __init__(self, session: Session):
        self.session = session
