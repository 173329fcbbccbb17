"""Read-only selectors returning DTOs."""

from shipment_kernel.selectors.base import BaseSelector
from shipment_kernel.selectors.exchange_rate_selector import ExchangeRateSelector
from shipment_kernel.selectors.shipment_selector import ShipmentSelector

__all__ = [
    "BaseSelector",
    "ExchangeRateSelector",
    "ShipmentSelector",
]
