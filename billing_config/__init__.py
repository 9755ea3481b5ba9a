"""
billing_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_active_config()`` is the one way to obtain a ``LedgerConfig`` at
    runtime.  Resolution order: an explicit path, else the file named by the
    ``BILLING_CONFIG`` environment variable, else built-in defaults.

Audit relevance:
    Every call emits a ``billing_config_loaded`` log entry naming the source
    and the effective policy flags.
"""

from __future__ import annotations

import os
from pathlib import Path

from billing_config.loader import load_config, parse_ledger_config
from billing_config.schema import LedgerConfig
from billing_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "BILLING_CONFIG"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """Resolve the active ledger configuration."""
    source = path or os.environ.get(CONFIG_ENV_VAR)
    config = load_config(source) if source else LedgerConfig()
    _logger.info(
        "billing_config_loaded",
        extra={
            "source": str(source) if source else "defaults",
            "invoice_prefix": config.invoice_prefix,
            "sequence_width": config.sequence_width,
            "enforce_status_transitions": config.enforce_status_transitions,
            "require_buyer_tax_id_for_full": config.require_buyer_tax_id_for_full,
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "LedgerConfig",
    "get_active_config",
    "load_config",
    "parse_ledger_config",
]
