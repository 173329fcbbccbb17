"""Domain models for the shipment kernel."""

from shipment_kernel.models.audit_log import AuditAction, AuditLog
from shipment_kernel.models.exchange_rate import ExchangeRate
from shipment_kernel.models.inventory_movement import InventoryMovement
from shipment_kernel.models.payment import CostComponent, PaymentMethod, ShipmentPayment
from shipment_kernel.models.shipment import (
    Shipment,
    ShipmentItem,
    ShipmentStatus,
    ShippingDetails,
)
from shipment_kernel.models.supplier import Supplier

__all__ = [
    "AuditAction",
    "AuditLog",
    "CostComponent",
    "ExchangeRate",
    "InventoryMovement",
    "PaymentMethod",
    "Shipment",
    "ShipmentItem",
    "ShipmentPayment",
    "ShipmentStatus",
    "ShippingDetails",
    "Supplier",
]
