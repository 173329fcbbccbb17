"""
Settings schema.

Frozen dataclasses that the loader fills from YAML.  Nothing here reads
files or the environment; ``shipment_config.get_active_settings()`` does.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """Engine construction parameters (see shipment_kernel.db.engine)."""

    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30


# ---------------------------------------------------------------------------
# Settlement
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementSettings:
    """Overpayment tolerance and row-lock wait for payments and costing."""

    overpayment_epsilon: Decimal = Decimal("0.0001")
    lock_timeout_ms: int = 5000


# ---------------------------------------------------------------------------
# Exchange rates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExchangeRateSettings:
    """Fallbacks used by the rate refresh when a pair has no history."""

    default_rmb_to_egp: Decimal = Decimal("7.0000")
    default_usd_to_rmb: Decimal = Decimal("7.2000")
    refresh_source: str = "auto_refresh"


@dataclass(frozen=True)
class Settings:
    """The complete runtime configuration."""

    database: DatabaseSettings
    settlement: SettlementSettings
    exchange_rates: ExchangeRateSettings
    source_path: str | None = None
