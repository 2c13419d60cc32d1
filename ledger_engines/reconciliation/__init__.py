"""Bank reconciliation engines: auto-matching and adjusted balances."""

from ledger_engines.reconciliation.adjusted_balance import AdjustedBalanceCalculator
from ledger_engines.reconciliation.matcher import AutoMatcher, expected_direction
from ledger_engines.reconciliation.types import (
    AdjustedBalances,
    AutoMatchResult,
    BankLine,
    CandidateLine,
    MatchProposal,
    ReconcilingAmount,
)

__all__ = [
    "AdjustedBalanceCalculator",
    "AdjustedBalances",
    "AutoMatcher",
    "AutoMatchResult",
    "BankLine",
    "CandidateLine",
    "MatchProposal",
    "ReconcilingAmount",
    "expected_direction",
]
