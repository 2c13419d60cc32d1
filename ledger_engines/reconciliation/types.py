"""
Reconciliation engine types.

Frozen inputs and outputs for the auto-matcher and the adjusted-balance
calculator.  Amounts are integer minor units.  Bank amounts are signed
(positive = money in); journal candidate amounts are positive with a
direction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from ledger_kernel.models.bank import ReconcilingItemType
from ledger_kernel.models.journal import LineDirection


@dataclass(frozen=True)
class BankLine:
    """An unmatched statement line.  ``sequence`` is its import order."""

    id: UUID
    transaction_date: date
    amount: int
    sequence: int = 0


@dataclass(frozen=True)
class CandidateLine:
    """A posted, unmatched journal line on the bank's GL account."""

    id: UUID
    entry_date: date
    direction: LineDirection
    amount: int


@dataclass(frozen=True)
class MatchProposal:
    bank_transaction_id: UUID
    journal_line_id: UUID
    date_difference_days: int


@dataclass(frozen=True)
class AutoMatchResult:
    matches: tuple[MatchProposal, ...]
    unmatched_bank_ids: tuple[UUID, ...]

    @property
    def matched_count(self) -> int:
        return len(self.matches)

    @property
    def unmatched_count(self) -> int:
        return len(self.unmatched_bank_ids)


@dataclass(frozen=True)
class ReconcilingAmount:
    item_type: ReconcilingItemType
    amount: int


@dataclass(frozen=True)
class AdjustedBalances:
    statement_ending_balance: int
    book_ending_balance: int
    outstanding_checks: int
    deposits_in_transit: int
    bank_fees: int
    bank_interest: int
    nsf_checks: int
    adjustments: int

    @property
    def adjusted_bank_balance(self) -> int:
        return (
            self.statement_ending_balance
            - self.outstanding_checks
            + self.deposits_in_transit
        )

    @property
    def adjusted_book_balance(self) -> int:
        return (
            self.book_ending_balance
            - self.bank_fees
            - self.nsf_checks
            + self.bank_interest
            + self.adjustments
        )

    @property
    def difference(self) -> int:
        return self.adjusted_bank_balance - self.adjusted_book_balance

    @property
    def is_reconciled(self) -> bool:
        return self.difference == 0
