"""
shipment_config -- single public entrypoint for runtime settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_settings()``.  No other component reads settings files or
    environment variables directly.

Architecture position:
    Configuration.  This package sits above ``shipment_kernel``; the kernel
    MUST NEVER import from ``shipment_config``.  ``shipment_config.bridges``
    translates settings into kernel constructor arguments.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` -- a required section or key is missing or malformed.

Audit relevance:
    Every successful ``get_active_settings()`` call emits a
    ``SHIPMENT_CONFIG_TRACE`` log entry naming the source file and the
    effective settlement parameters.  The database URL is never logged.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from shipment_config.loader import load_yaml_file, parse_settings
from shipment_config.schema import (
    DatabaseSettings,
    ExchangeRateSettings,
    SettlementSettings,
    Settings,
)

_logger = logging.getLogger("shipment_kernel.config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "defaults.yaml"

# Checked in order; the first one set wins
DATABASE_URL_ENV_VARS = ("SHIPMENT_DATABASE_URL", "DATABASE_URL")


def get_active_settings(path: Path | str | None = None) -> Settings:
    """The ONLY public settings entrypoint.

    Args:
        path: Settings YAML.  Defaults to shipment_config/defaults.yaml.

    Returns:
        Settings, with the database URL replaced by the first of
        SHIPMENT_DATABASE_URL / DATABASE_URL that is set.

    Raises:
        FileNotFoundError: If the settings file does not exist.
        ValueError: If a required setting is missing or malformed.
    """
    source = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = parse_settings(load_yaml_file(source), source_path=str(source))

    url_source = "file"
    for var in DATABASE_URL_ENV_VARS:
        url = os.environ.get(var)
        if url:
            settings = replace(settings, database=replace(settings.database, url=url))
            url_source = var
            break

    _logger.info(
        "SHIPMENT_CONFIG_TRACE",
        extra={
            "trace_type": "SHIPMENT_CONFIG_TRACE",
            "source_path": settings.source_path,
            "database_url_source": url_source,
            "overpayment_epsilon": str(settings.settlement.overpayment_epsilon),
            "lock_timeout_ms": settings.settlement.lock_timeout_ms,
            "default_rmb_to_egp": str(settings.exchange_rates.default_rmb_to_egp),
            "default_usd_to_rmb": str(settings.exchange_rates.default_usd_to_rmb),
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_PATH",
    "DatabaseSettings",
    "ExchangeRateSettings",
    "SettlementSettings",
    "Settings",
    "get_active_settings",
]
