"""
LedgerConfig schema.

The human-authored YAML document is parsed into this frozen dataclass by
``ledger_config.loader``.  Values are plain Python types; kernel enums are
produced only by ``ledger_config.bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass

VOID_POLICIES = ("allow", "reject")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class LedgerConfig:
    """Runtime settings for one ledger deployment."""

    database_url: str = "sqlite:///:memory:"
    database_echo: bool = False
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # Journal
    closed_period_void_policy: str = "reject"
    min_void_reason_length: int = 3

    # Period close
    require_sequential_close: bool = False
    block_close_with_drafts: bool = False
    min_reopen_reason_length: int = 10

    # Reconciliation
    auto_match_date_tolerance_days: int = 3

    log_level: str = "INFO"

    # SHA-256 of the canonical source document; empty for in-code configs
    checksum: str = ""
