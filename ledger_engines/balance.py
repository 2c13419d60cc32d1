"""
Balance engine -- per-account closing balances and the trial balance check.

Architecture: ledger_engines -- pure calculation, zero I/O.  BalanceService
gathers opening balances and posted sums from the store and hands them
over as ``AccountActivity`` rows.

Invariants enforced:
    - Debit-normal:  closing = opening + debits - credits
    - Credit-normal: closing = opening + credits - debits
    - The period is balanced iff total debits == total credits, exactly.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from uuid import UUID

from ledger_engines.tracer import traced_engine
from ledger_kernel.models.account import NormalBalance


def closing_balance(
    normal_balance: NormalBalance,
    opening_balance: int,
    debit_total: int,
    credit_total: int,
) -> int:
    match NormalBalance(normal_balance):
        case NormalBalance.DEBIT:
            return opening_balance + debit_total - credit_total
        case NormalBalance.CREDIT:
            return opening_balance + credit_total - debit_total


@dataclass(frozen=True)
class AccountActivity:
    """Opening balance and posted movements of one account for a period."""

    account_id: UUID
    normal_balance: NormalBalance
    opening_balance: int
    debit_total: int
    credit_total: int


@dataclass(frozen=True)
class ComputedBalance:
    account_id: UUID
    opening_balance: int
    debit_total: int
    credit_total: int
    closing_balance: int


@dataclass(frozen=True)
class BalanceCalculation:
    balances: tuple[ComputedBalance, ...]
    total_debits: int
    total_credits: int

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits

    @property
    def difference(self) -> int:
        return self.total_debits - self.total_credits


class BalanceCalculator:
    """Pure engine for period balance calculation.

    Usage:
        calc = BalanceCalculator().calculate(activities=activities)
        if not calc.is_balanced:
            ...
    """

    @traced_engine("balance", "1.0", fingerprint_fields=("activities",))
    def calculate(self, *, activities: Sequence[AccountActivity]) -> BalanceCalculation:
        balances: list[ComputedBalance] = []
        total_debits = 0
        total_credits = 0
        for activity in activities:
            balances.append(
                ComputedBalance(
                    account_id=activity.account_id,
                    opening_balance=activity.opening_balance,
                    debit_total=activity.debit_total,
                    credit_total=activity.credit_total,
                    closing_balance=closing_balance(
                        activity.normal_balance,
                        activity.opening_balance,
                        activity.debit_total,
                        activity.credit_total,
                    ),
                )
            )
            total_debits += activity.debit_total
            total_credits += activity.credit_total

        return BalanceCalculation(
            balances=tuple(balances),
            total_debits=total_debits,
            total_credits=total_credits,
        )
