"""
Settings Loader (``shipment_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into the frozen dataclasses of
``shipment_config.schema``.  Runtime callers go through
``shipment_config.get_active_settings()`` instead.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required section or key  -> ``ValueError``.
* Non-numeric decimal / integer values  -> ``ValueError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from shipment_config.schema import (
    DatabaseSettings,
    ExchangeRateSettings,
    SettlementSettings,
    Settings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if not isinstance(section, dict):
        raise ValueError(f"Settings section {name!r} is missing or not a mapping")
    return section


def _required(section: dict[str, Any], key: str, where: str) -> Any:
    if key not in section or section[key] is None:
        raise ValueError(f"Missing required setting {where}.{key}")
    return section[key]


def parse_decimal(value: Any, where: str) -> Decimal:
    """Decimals are written as strings in YAML so no float ever enters."""
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Setting {where} is not a decimal: {value!r}") from None


def parse_int(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Setting {where} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Setting {where} must be an integer, got {value!r}") from None


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=str(_required(data, "url", "database")),
        echo=bool(data.get("echo", False)),
        pool_size=parse_int(data.get("pool_size", 20), "database.pool_size"),
        max_overflow=parse_int(data.get("max_overflow", 10), "database.max_overflow"),
        pool_timeout=parse_int(data.get("pool_timeout", 30), "database.pool_timeout"),
    )


def parse_settlement(data: dict[str, Any]) -> SettlementSettings:
    epsilon = parse_decimal(
        _required(data, "overpayment_epsilon", "settlement"),
        "settlement.overpayment_epsilon",
    )
    if epsilon < 0:
        raise ValueError(f"settlement.overpayment_epsilon must not be negative, got {epsilon}")
    lock_timeout_ms = parse_int(
        _required(data, "lock_timeout_ms", "settlement"),
        "settlement.lock_timeout_ms",
    )
    if lock_timeout_ms <= 0:
        raise ValueError(f"settlement.lock_timeout_ms must be positive, got {lock_timeout_ms}")
    return SettlementSettings(overpayment_epsilon=epsilon, lock_timeout_ms=lock_timeout_ms)


def parse_exchange_rates(data: dict[str, Any]) -> ExchangeRateSettings:
    rmb_to_egp = parse_decimal(
        _required(data, "default_rmb_to_egp", "exchange_rates"),
        "exchange_rates.default_rmb_to_egp",
    )
    usd_to_rmb = parse_decimal(
        _required(data, "default_usd_to_rmb", "exchange_rates"),
        "exchange_rates.default_usd_to_rmb",
    )
    for where, value in (
        ("exchange_rates.default_rmb_to_egp", rmb_to_egp),
        ("exchange_rates.default_usd_to_rmb", usd_to_rmb),
    ):
        if value <= 0:
            raise ValueError(f"{where} must be positive, got {value}")
    return ExchangeRateSettings(
        default_rmb_to_egp=rmb_to_egp,
        default_usd_to_rmb=usd_to_rmb,
        refresh_source=str(data.get("refresh_source", "auto_refresh")),
    )


def parse_settings(data: dict[str, Any], source_path: str | None = None) -> Settings:
    """Parse a whole settings document."""
    return Settings(
        database=parse_database(_section(data, "database")),
        settlement=parse_settlement(_section(data, "settlement")),
        exchange_rates=parse_exchange_rates(_section(data, "exchange_rates")),
        source_path=source_path,
    )
