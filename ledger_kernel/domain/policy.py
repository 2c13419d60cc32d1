"""
Kernel policy knobs.

The kernel never reads configuration files.  ``ledger_config.bridges``
turns a loaded ``LedgerConfig`` into a ``LedgerPolicy`` and callers inject
it into services; every service falls back to ``LedgerPolicy()`` defaults.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ClosedPeriodVoidPolicy(str, Enum):
    """Whether a posted entry may be voided after its period has closed."""

    ALLOW = "allow"
    REJECT = "reject"


@dataclass(frozen=True)
class LedgerPolicy:
    closed_period_void_policy: ClosedPeriodVoidPolicy = ClosedPeriodVoidPolicy.REJECT
    min_void_reason_length: int = 3
    min_reopen_reason_length: int = 10
    require_sequential_close: bool = False
    block_close_with_drafts: bool = False
    auto_match_date_tolerance_days: int = 3

    def __post_init__(self) -> None:
        if self.auto_match_date_tolerance_days < 0:
            raise ValueError("auto_match_date_tolerance_days must be >= 0")
        if self.min_void_reason_length < 0 or self.min_reopen_reason_length < 0:
            raise ValueError("reason length minimums must be >= 0")
