"""
AutoMatcher -- greedy, deterministic statement-to-ledger matching.

Architecture: ledger_engines -- pure calculation, zero I/O, zero DB access.

Algorithm:
    Bank lines are visited in (transaction_date, import order).  For each,
    a journal line qualifies when it is still available, its amount equals
    the absolute bank amount, its direction agrees with the bank sign
    (DEBIT to the cash account for money in, CREDIT for money out) and its
    date lies within ``date_tolerance_days`` of the bank date.  The winner
    has the smallest date difference, then the earliest entry date, then
    the earliest position in the candidate input.  Each candidate is used
    at most once.

Invariants enforced:
    - Identical inputs produce identical matches.
    - matched_count + unmatched_count == number of bank lines supplied.
"""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

from ledger_engines.reconciliation.types import (
    AutoMatchResult,
    BankLine,
    CandidateLine,
    MatchProposal,
)
from ledger_engines.tracer import traced_engine
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.journal import LineDirection

logger = get_logger("engines.reconciliation.matcher")


def expected_direction(bank_amount: int) -> LineDirection:
    """Ledger side on the cash account that mirrors a bank movement."""
    return LineDirection.DEBIT if bank_amount > 0 else LineDirection.CREDIT


class AutoMatcher:
    """Pure greedy matcher.

    Usage:
        result = AutoMatcher().match(
            bank_lines=lines, candidates=candidates, date_tolerance_days=3,
        )
    """

    @traced_engine(
        "auto_match", "1.0",
        fingerprint_fields=("bank_lines", "candidates", "date_tolerance_days"),
    )
    def match(
        self,
        *,
        bank_lines: Sequence[BankLine],
        candidates: Sequence[CandidateLine],
        date_tolerance_days: int,
    ) -> AutoMatchResult:
        if date_tolerance_days < 0:
            raise ValueError("date_tolerance_days must be >= 0")

        available: dict[int, CandidateLine] = dict(enumerate(candidates))
        matches: list[MatchProposal] = []
        unmatched: list[UUID] = []

        for bank in sorted(bank_lines, key=lambda b: (b.transaction_date, b.sequence)):
            direction = expected_direction(bank.amount)
            wanted = abs(bank.amount)

            best_key = None
            best_index = None
            for index, cand in available.items():
                if cand.direction != direction or cand.amount != wanted:
                    continue
                diff = abs((cand.entry_date - bank.transaction_date).days)
                if diff > date_tolerance_days:
                    continue
                key = (diff, cand.entry_date, index)
                if best_key is None or key < best_key:
                    best_key = key
                    best_index = index

            if best_index is None:
                unmatched.append(bank.id)
                continue

            chosen = available.pop(best_index)
            matches.append(
                MatchProposal(
                    bank_transaction_id=bank.id,
                    journal_line_id=chosen.id,
                    date_difference_days=best_key[0],
                )
            )

        logger.debug(
            "auto_match_completed",
            extra={
                "bank_lines": len(bank_lines),
                "candidates": len(candidates),
                "matched_count": len(matches),
                "unmatched_count": len(unmatched),
            },
        )

        return AutoMatchResult(matches=tuple(matches), unmatched_bank_ids=tuple(unmatched))
