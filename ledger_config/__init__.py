"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    ``get_config()`` is the way to obtain a ``LedgerConfig`` at runtime.
    The file is taken from the explicit ``path`` argument, else from the
    ``LEDGER_CONFIG`` environment variable, else the bundled
    ``defaults.yaml``.

Architecture position:
    Configuration sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from this package;
    ``ledger_config.bridges`` translates a config into kernel inputs.

Audit relevance:
    Every ``get_config()`` call emits a ``LEDGER_CONFIG_TRACE`` log entry
    with the source path and checksum, tying runtime behaviour to the
    exact configuration document that governed it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.bridges import build_kernel_policy, init_engine_from_config
from ledger_config.loader import compute_checksum, load_config, parse_config
from ledger_config.schema import LedgerConfig

_logger = logging.getLogger("ledger_kernel.config")

CONFIG_ENV_VAR = "LEDGER_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_config(path: Path | str | None = None) -> LedgerConfig:
    """Resolve and load the active configuration.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If the document fails validation.
    """
    source = Path(path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH)
    config = load_config(source)

    _logger.info(
        "LEDGER_CONFIG_TRACE",
        extra={
            "trace_type": "LEDGER_CONFIG_TRACE",
            "config_path": str(source),
            "checksum": config.checksum,
            "closed_period_void_policy": config.closed_period_void_policy,
            "auto_match_date_tolerance_days": config.auto_match_date_tolerance_days,
        },
    )
    return config


__all__ = [
    "CONFIG_ENV_VAR",
    "DEFAULT_CONFIG_PATH",
    "LedgerConfig",
    "build_kernel_policy",
    "compute_checksum",
    "get_config",
    "init_engine_from_config",
    "load_config",
    "parse_config",
]
