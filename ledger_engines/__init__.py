"""
ledger_engines -- pure calculation engines.

Every engine takes frozen dataclasses and returns frozen dataclasses.  No
database access, no clock, no I/O beyond the trace log record emitted by
``@traced_engine``.
"""

from ledger_engines.balance import (
    AccountActivity,
    BalanceCalculation,
    BalanceCalculator,
    ComputedBalance,
    closing_balance,
)
from ledger_engines.reconciliation import (
    AdjustedBalanceCalculator,
    AdjustedBalances,
    AutoMatcher,
    AutoMatchResult,
    BankLine,
    CandidateLine,
    MatchProposal,
    ReconcilingAmount,
)
from ledger_engines.tracer import traced_engine

__all__ = [
    "AccountActivity",
    "AdjustedBalanceCalculator",
    "AdjustedBalances",
    "AutoMatcher",
    "AutoMatchResult",
    "BalanceCalculation",
    "BalanceCalculator",
    "BankLine",
    "CandidateLine",
    "ComputedBalance",
    "MatchProposal",
    "ReconcilingAmount",
    "closing_balance",
    "traced_engine",
]
