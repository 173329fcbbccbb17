"""
Shipment Kernel

Costing and settlement core for imported shipments:
- Cost aggregation across RMB, USD and EGP with shipping-time rate snapshots
- Payment settlement with hard-rejected overpayment
- Row-locked, recomputed (never accumulated) running balances
- Append-only payments, exchange rates and audit logs
"""

__version__ = "0.1.0"
