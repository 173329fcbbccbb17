"""
Config -> Kernel Bridges.

Functions that turn Settings into kernel engine and service instances.
These live in shipment_config (the producer) because the kernel must NEVER
import shipment_config.

Usage:
    from shipment_config import get_active_settings
    from shipment_config.bridges import build_settlement_service, init_database

    settings = get_active_settings()
    init_database(settings)
    with session_scope() as session:
        build_settlement_service(session, settings).record_payment(...)
"""

from __future__ import annotations

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from shipment_config.schema import Settings
from shipment_kernel.db.engine import create_tables, init_engine_from_url
from shipment_kernel.db.immutability import register_immutability_listeners
from shipment_kernel.domain.clock import Clock
from shipment_kernel.domain.currency import Currency
from shipment_kernel.services.costing_service import ShipmentCostingService
from shipment_kernel.services.exchange_rate_service import (
    ExchangeRateService,
    TrackedPair,
)
from shipment_kernel.services.settlement_service import SettlementService


def init_database(settings: Settings, create_schema: bool = True) -> Engine:
    """Initialize the engine, install the immutability listeners and
    (optionally) create the schema."""
    db = settings.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
        pool_timeout=db.pool_timeout,
        lock_timeout_ms=settings.settlement.lock_timeout_ms,
    )
    register_immutability_listeners()
    if create_schema:
        create_tables()
    return engine


def build_settlement_service(
    session: Session,
    settings: Settings,
    clock: Clock | None = None,
    auto_commit: bool = True,
) -> SettlementService:
    return SettlementService(
        session,
        clock=clock,
        overpayment_epsilon=settings.settlement.overpayment_epsilon,
        lock_timeout_ms=settings.settlement.lock_timeout_ms,
        auto_commit=auto_commit,
    )


def build_costing_service(
    session: Session,
    settings: Settings,
    clock: Clock | None = None,
    auto_commit: bool = True,
) -> ShipmentCostingService:
    return ShipmentCostingService(
        session,
        clock=clock,
        overpayment_epsilon=settings.settlement.overpayment_epsilon,
        lock_timeout_ms=settings.settlement.lock_timeout_ms,
        auto_commit=auto_commit,
    )


def build_tracked_pairs(settings: Settings) -> tuple[TrackedPair, ...]:
    """The pairs refreshed by refresh_rates, with the configured fallbacks."""
    rates = settings.exchange_rates
    return (
        TrackedPair(Currency.RMB, Currency.EGP, rates.default_rmb_to_egp),
        TrackedPair(Currency.USD, Currency.RMB, rates.default_usd_to_rmb),
    )


def build_exchange_rate_service(
    session: Session,
    settings: Settings,
    clock: Clock | None = None,
) -> ExchangeRateService:
    return ExchangeRateService(
        session,
        clock=clock,
        tracked_pairs=build_tracked_pairs(settings),
        refresh_source=settings.exchange_rates.refresh_source,
    )
