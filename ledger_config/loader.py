"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into a
``LedgerConfig``.  Callers normally go through
``ledger_config.get_config()``; this module is the parsing step.

Invariants enforced
-------------------
* Unknown keys raise ``ValueError``; a typo never falls back to a default.
* Values are type-checked (booleans are not integers here).
* ``compute_checksum`` is deterministic for identical documents.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key, wrong type or out-of-range value  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import LOG_LEVELS, VOID_POLICIES, LedgerConfig

# Sections group keys in the YAML; they flatten onto LedgerConfig fields.
_SECTIONS: dict[str, dict[str, str]] = {
    "database": {
        "url": "database_url",
        "echo": "database_echo",
        "pool_size": "database_pool_size",
        "max_overflow": "database_max_overflow",
    },
    "journal": {
        "closed_period_void_policy": "closed_period_void_policy",
        "min_void_reason_length": "min_void_reason_length",
    },
    "period_close": {
        "require_sequential_close": "require_sequential_close",
        "block_close_with_drafts": "block_close_with_drafts",
        "min_reopen_reason_length": "min_reopen_reason_length",
    },
    "reconciliation": {
        "auto_match_date_tolerance_days": "auto_match_date_tolerance_days",
    },
    "logging": {
        "level": "log_level",
    },
}

_NON_NEGATIVE = (
    "database_pool_size",
    "database_max_overflow",
    "min_void_reason_length",
    "min_reopen_reason_length",
    "auto_match_date_tolerance_days",
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: configuration root must be a mapping")
    return data


def _flatten(data: dict[str, Any]) -> dict[str, Any]:
    flat: dict[str, Any] = {}
    for section, values in data.items():
        if section not in _SECTIONS:
            raise ValueError(f"Unknown configuration section: {section!r}")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ValueError(f"Configuration section {section!r} must be a mapping")
        mapping = _SECTIONS[section]
        for key, value in values.items():
            if key not in mapping:
                raise ValueError(f"Unknown configuration key: {section}.{key}")
            flat[mapping[key]] = value
    return flat


def _check_type(name: str, value: Any, expected: type) -> None:
    if expected is int and isinstance(value, bool):
        raise ValueError(f"{name} must be an integer, got {value!r}")
    if not isinstance(value, expected):
        raise ValueError(f"{name} must be {expected.__name__}, got {value!r}")


def parse_config(data: dict[str, Any], checksum: str = "") -> LedgerConfig:
    """Parse a sectioned configuration dict into a ``LedgerConfig``."""
    flat = _flatten(data)
    defaults = LedgerConfig()
    for f in fields(LedgerConfig):
        if f.name in flat:
            _check_type(f.name, flat[f.name], type(getattr(defaults, f.name)))

    for name in _NON_NEGATIVE:
        if name in flat and flat[name] < 0:
            raise ValueError(f"{name} must be >= 0, got {flat[name]}")

    if "closed_period_void_policy" in flat:
        flat["closed_period_void_policy"] = flat["closed_period_void_policy"].lower()
        if flat["closed_period_void_policy"] not in VOID_POLICIES:
            raise ValueError(
                f"closed_period_void_policy must be one of {VOID_POLICIES}, "
                f"got {flat['closed_period_void_policy']!r}"
            )
    if "log_level" in flat:
        flat["log_level"] = flat["log_level"].upper()
        if flat["log_level"] not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}, got {flat['log_level']!r}")

    return LedgerConfig(**flat, checksum=checksum)


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config(path: Path | str) -> LedgerConfig:
    """Load and parse one YAML configuration file."""
    data = load_yaml_file(Path(path))
    return parse_config(data, checksum=compute_checksum(data))
