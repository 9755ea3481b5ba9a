"""
Configuration Loader (``billing_config.loader``).

Loads a YAML file with a top-level ``ledger:`` mapping and parses it into a
``LedgerConfig``.  Runtime callers go through
``billing_config.get_active_config()`` instead of calling this directly.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys or wrongly-typed values  -> ``ValueError``.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from billing_config.schema import LedgerConfig

_BOOL_KEYS = {"enforce_status_transitions", "require_buyer_tax_id_for_full"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_ledger_config(data: dict[str, Any]) -> LedgerConfig:
    """Parse the ``ledger:`` section into a LedgerConfig."""
    if not isinstance(data, dict):
        raise ValueError("ledger configuration must be a mapping")
    known = {f.name for f in fields(LedgerConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown ledger configuration keys: {', '.join(unknown)}")
    for key in _BOOL_KEYS & set(data):
        if not isinstance(data[key], bool):
            raise ValueError(f"{key} must be true or false")
    if "sequence_width" in data and (
        isinstance(data["sequence_width"], bool) or not isinstance(data["sequence_width"], int)
    ):
        raise ValueError("sequence_width must be an integer")
    return LedgerConfig(**data)


def load_config(path: Path | str) -> LedgerConfig:
    """Load a LedgerConfig from a YAML file."""
    document = load_yaml_file(Path(path))
    return parse_ledger_config(document.get("ledger") or {})
