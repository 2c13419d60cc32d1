"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Read-only ledger projections: per-account posted movements
    for a fiscal period, the trial balance and stored account balances.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Only lines of POSTED entries are aggregated; DRAFT and VOIDED entries
      never reach a balance or a trial balance.
    - The trial balance is computed from journal lines at query time.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import case, func, select

from ledger_kernel.domain.dtos import AccountBalanceInfo, TrialBalance, TrialBalanceRow
from ledger_kernel.models.account import Account, AccountType, NormalBalance
from ledger_kernel.models.account_balance import AccountBalance
from ledger_kernel.models.journal import (
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    LineDirection,
)
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PeriodMovement:
    account_id: UUID
    debit_total: int
    credit_total: int


class LedgerSelector(BaseSelector[JournalLine]):
    """Aggregations over posted journal lines."""

    def _sums(self):
        debit_sum = func.coalesce(
            func.sum(
                case(
                    (JournalLine.direction == LineDirection.DEBIT, JournalLine.amount),
                    else_=0,
                )
            ),
            0,
        ).label("debit_total")
        credit_sum = func.coalesce(
            func.sum(
                case(
                    (JournalLine.direction == LineDirection.CREDIT, JournalLine.amount),
                    else_=0,
                )
            ),
            0,
        ).label("credit_total")
        return debit_sum, credit_sum

    def period_movements(self, fiscal_year: int, fiscal_month: int) -> dict[UUID, PeriodMovement]:
        """Posted debit/credit totals per account for one period."""
        debit_sum, credit_sum = self._sums()
        query = (
            select(JournalLine.account_id, debit_sum, credit_sum)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalEntry.status == JournalEntryStatus.POSTED,
                JournalEntry.fiscal_year == fiscal_year,
                JournalEntry.fiscal_month == fiscal_month,
            )
            .group_by(JournalLine.account_id)
        )
        return {
            row.account_id: PeriodMovement(
                account_id=row.account_id,
                debit_total=int(row.debit_total),
                credit_total=int(row.credit_total),
            )
            for row in self.session.execute(query).all()
        }

    def trial_balance(self, fiscal_year: int, fiscal_month: int) -> TrialBalance:
        """
        Trial balance for one period, one row per account with posted
        activity, ordered by account code.
        """
        debit_sum, credit_sum = self._sums()
        query = (
            select(
                Account.id.label("account_id"),
                Account.code.label("account_code"),
                Account.name.label("account_name"),
                Account.account_type,
                Account.normal_balance,
                debit_sum,
                credit_sum,
            )
            .select_from(JournalLine)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .join(Account, JournalLine.account_id == Account.id)
            .where(
                JournalEntry.status == JournalEntryStatus.POSTED,
                JournalEntry.fiscal_year == fiscal_year,
                JournalEntry.fiscal_month == fiscal_month,
            )
            .group_by(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                Account.normal_balance,
            )
            .order_by(Account.code)
        )

        rows = tuple(
            TrialBalanceRow(
                account_id=row.account_id,
                account_code=row.account_code,
                account_name=row.account_name,
                account_type=AccountType(row.account_type),
                normal_balance=NormalBalance(row.normal_balance),
                debit_total=int(row.debit_total),
                credit_total=int(row.credit_total),
            )
            for row in self.session.execute(query).all()
        )

        return TrialBalance(
            fiscal_year=fiscal_year,
            fiscal_month=fiscal_month,
            rows=rows,
            total_debits=sum(r.debit_total for r in rows),
            total_credits=sum(r.credit_total for r in rows),
        )

    def account_balance(
        self, account_id: UUID, fiscal_year: int, fiscal_month: int
    ) -> AccountBalanceInfo | None:
        """Stored balance row, or None if never calculated."""
        model = self.session.execute(
            select(AccountBalance).where(
                AccountBalance.account_id == account_id,
                AccountBalance.fiscal_year == fiscal_year,
                AccountBalance.fiscal_month == fiscal_month,
            )
        ).scalar_one_or_none()
        return AccountBalanceInfo.from_model(model) if model else None

    def period_balances(self, fiscal_year: int, fiscal_month: int) -> list[AccountBalanceInfo]:
        query = (
            select(AccountBalance)
            .join(Account, AccountBalance.account_id == Account.id)
            .where(
                AccountBalance.fiscal_year == fiscal_year,
                AccountBalance.fiscal_month == fiscal_month,
            )
            .order_by(Account.code)
        )
        return [
            AccountBalanceInfo.from_model(m)
            for m in self.session.execute(query).scalars().all()
        ]

    def has_calculated_balances(self, fiscal_year: int, fiscal_month: int) -> bool:
        count = self.session.execute(
            select(func.count(AccountBalance.id)).where(
                AccountBalance.fiscal_year == fiscal_year,
                AccountBalance.fiscal_month == fiscal_month,
            )
        ).scalar_one()
        return count > 0
