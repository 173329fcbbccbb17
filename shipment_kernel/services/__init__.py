"""
Kernel services.

Transaction owners (commit unless auto_commit=False):
    - SettlementService: record_payment
    - ShipmentCostingService: wizard steps, status changes, recompute, delete

Flush-only (the caller commits):
    - ExchangeRateService, SupplierService, InventoryService
    - ShipmentRepository, PaymentRepository
    - AuditService (savepoint per write, never raises)
"""

from shipment_kernel.services.audit_service import AuditService
from shipment_kernel.services.costing_service import (
    ALLOWED_TRANSITIONS,
    ShipmentCostingService,
    can_transition,
)
from shipment_kernel.services.exchange_rate_service import (
    DEFAULT_TRACKED_PAIRS,
    ExchangeRateService,
    TrackedPair,
)
from shipment_kernel.services.inventory_service import InventoryService
from shipment_kernel.services.payment_repository import PaymentRepository
from shipment_kernel.services.settlement_service import SettlementService
from shipment_kernel.services.shipment_repository import ShipmentRepository
from shipment_kernel.services.supplier_service import SupplierService

__all__ = [
    "ALLOWED_TRANSITIONS",
    "AuditService",
    "DEFAULT_TRACKED_PAIRS",
    "ExchangeRateService",
    "InventoryService",
    "PaymentRepository",
    "SettlementService",
    "ShipmentCostingService",
    "ShipmentRepository",
    "SupplierService",
    "TrackedPair",
    "can_transition",
]
