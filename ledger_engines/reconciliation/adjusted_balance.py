"""
AdjustedBalanceCalculator -- bank vs book adjusted balances.

Architecture: ledger_engines -- pure calculation, zero I/O.

    adjusted bank = statement - outstanding checks + deposits in transit
    adjusted book = book - bank fees - NSF checks + bank interest + adjustments

Adjustments are signed; every other item amount is positive.  The
reconciliation ties only on exact equality.
"""

from __future__ import annotations

from collections.abc import Sequence

from ledger_engines.reconciliation.types import AdjustedBalances, ReconcilingAmount
from ledger_engines.tracer import traced_engine
from ledger_kernel.models.bank import ReconcilingItemType


class AdjustedBalanceCalculator:

    @traced_engine(
        "adjusted_balance", "1.0",
        fingerprint_fields=("statement_ending_balance", "book_ending_balance", "items"),
    )
    def calculate(
        self,
        *,
        statement_ending_balance: int,
        book_ending_balance: int,
        items: Sequence[ReconcilingAmount],
    ) -> AdjustedBalances:
        totals = {item_type: 0 for item_type in ReconcilingItemType}
        for item in items:
            totals[ReconcilingItemType(item.item_type)] += item.amount

        return AdjustedBalances(
            statement_ending_balance=statement_ending_balance,
            book_ending_balance=book_ending_balance,
            outstanding_checks=totals[ReconcilingItemType.OUTSTANDING_CHECK],
            deposits_in_transit=totals[ReconcilingItemType.DEPOSIT_IN_TRANSIT],
            bank_fees=totals[ReconcilingItemType.BANK_FEE],
            bank_interest=totals[ReconcilingItemType.BANK_INTEREST],
            nsf_checks=totals[ReconcilingItemType.NSF_CHECK],
            adjustments=totals[ReconcilingItemType.ADJUSTMENT],
        )
