"""
Shipment Reports (``shipment_reports``).

Responsibility
--------------
Read-only reporting: dashboard, payment and inventory statistics, the
accounting dashboard, supplier balances and statements, the movement
ledger and payment-method totals.

Architecture position
---------------------
**Reports layer** above ``shipment_kernel``.  Reads through kernel
selectors; never writes.
"""

from shipment_reports.models import (
    AccountingDashboard,
    BalanceType,
    DashboardStats,
    InventoryStats,
    MovementFilters,
    MovementLine,
    MovementReport,
    MovementType,
    PaymentMethodsReport,
    PaymentMethodSummary,
    PaymentStats,
    ReportFilters,
    ShipmentSummary,
    SupplierBalance,
    SupplierBalanceFilters,
    SupplierStatement,
    SupplierStatementLine,
)
from shipment_reports.service import ReportService

__all__ = [
    # Service
    "ReportService",
    # Filters
    "MovementFilters",
    "ReportFilters",
    "SupplierBalanceFilters",
    # Models
    "AccountingDashboard",
    "BalanceType",
    "DashboardStats",
    "InventoryStats",
    "MovementLine",
    "MovementReport",
    "MovementType",
    "PaymentMethodSummary",
    "PaymentMethodsReport",
    "PaymentStats",
    "ShipmentSummary",
    "SupplierBalance",
    "SupplierStatement",
    "SupplierStatementLine",
]
