"""
Bridges -- LedgerConfig to kernel inputs.

The kernel never imports ``ledger_config``.  These functions translate a
loaded configuration into the objects kernel services accept.
"""

from __future__ import annotations

from sqlalchemy.engine import Engine

from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import init_engine_from_url
from ledger_kernel.domain.policy import ClosedPeriodVoidPolicy, LedgerPolicy
from ledger_kernel.logging_config import configure_logging


def build_kernel_policy(config: LedgerConfig) -> LedgerPolicy:
    """Project the policy-relevant settings onto a ``LedgerPolicy``."""
    return LedgerPolicy(
        closed_period_void_policy=ClosedPeriodVoidPolicy(config.closed_period_void_policy),
        min_void_reason_length=config.min_void_reason_length,
        min_reopen_reason_length=config.min_reopen_reason_length,
        require_sequential_close=config.require_sequential_close,
        block_close_with_drafts=config.block_close_with_drafts,
        auto_match_date_tolerance_days=config.auto_match_date_tolerance_days,
    )


def init_engine_from_config(config: LedgerConfig) -> Engine:
    """Configure logging at the configured level, then open the engine."""
    configure_logging(level=config.log_level)
    return init_engine_from_url(
        config.database_url,
        echo=config.database_echo,
        pool_size=config.database_pool_size,
        max_overflow=config.database_max_overflow,
    )
