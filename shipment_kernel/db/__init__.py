"""Database layer - engine, base classes, types, and immutability listeners."""

from shipment_kernel.db.base import UUID, Base, TrackedBase, UUIDString
from shipment_kernel.db.engine import create_tables, get_engine, get_session, session_scope
from shipment_kernel.db.types import Money, Rate, UnitPrice, round_money, round_rate

__all__ = [
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "UUIDString",
    "UUID",
    "Money",
    "Rate",
    "UnitPrice",
    "round_money",
    "round_rate",
]
