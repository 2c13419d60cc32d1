"""
ledger_services.balance_service -- period balance recalculation and reports.

Responsibility:
    Gathers opening balances and posted movements from the store, runs the
    pure ``BalanceCalculator`` and persists one ``AccountBalance`` row per
    account.  Also serves the trial balance and stored balance reads.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - Only POSTED lines contribute (``LedgerSelector.period_movements``).
    - Opening balance is the previous period's stored closing balance, or
      zero when none was stored.
    - Recalculation replaces the period's rows completely; running it twice
      gives the same rows.

Failure modes:
    - ValidationError: year/month out of range.
    - PeriodNotFoundError: recalculating a period that does not exist.
    - AccountBalanceNotFoundError: balance never calculated.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_engines.balance import AccountActivity, BalanceCalculator
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import AccountBalanceInfo, RecalculationResult, TrialBalance
from ledger_kernel.exceptions import AccountBalanceNotFoundError, PeriodNotFoundError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.account_balance import AccountBalance
from ledger_kernel.models.fiscal_period import (
    FiscalPeriod,
    format_period_code,
    previous_period,
)
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.period_service import validate_year_month

logger = get_logger("services.balance")


class BalanceService:
    """Balance Aggregator.  Flush-only; the caller owns the transaction."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        calculator: BalanceCalculator | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._calculator = calculator or BalanceCalculator()
        self._selector = LedgerSelector(session)

    def recalculate(self, fiscal_year: int, fiscal_month: int) -> RecalculationResult:
        validate_year_month(fiscal_year, fiscal_month)
        if self._find_period(fiscal_year, fiscal_month) is None:
            raise PeriodNotFoundError(fiscal_year, fiscal_month)

        with LogContext.bind(period=format_period_code(fiscal_year, fiscal_month)):
            accounts = list(
                self._session.execute(select(Account).order_by(Account.code)).scalars()
            )
            movements = self._selector.period_movements(fiscal_year, fiscal_month)
            openings = self._opening_balances(fiscal_year, fiscal_month)

            activities = []
            for account in accounts:
                movement = movements.get(account.id)
                activities.append(
                    AccountActivity(
                        account_id=account.id,
                        normal_balance=account.normal_balance,
                        opening_balance=openings.get(account.id, 0),
                        debit_total=movement.debit_total if movement else 0,
                        credit_total=movement.credit_total if movement else 0,
                    )
                )

            calculation = self._calculator.calculate(activities=activities)
            self._store(fiscal_year, fiscal_month, calculation.balances)

            logger.info(
                "balances_recalculated",
                extra={
                    "accounts_processed": len(calculation.balances),
                    "total_debits": calculation.total_debits,
                    "total_credits": calculation.total_credits,
                    "is_balanced": calculation.is_balanced,
                },
            )
            if not calculation.is_balanced:
                logger.warning(
                    "trial_balance_out_of_balance",
                    extra={"difference": calculation.difference},
                )

        return RecalculationResult(
            fiscal_year=fiscal_year,
            fiscal_month=fiscal_month,
            accounts_processed=len(calculation.balances),
            total_debits=calculation.total_debits,
            total_credits=calculation.total_credits,
            is_balanced=calculation.is_balanced,
        )

    def trial_balance(self, fiscal_year: int, fiscal_month: int) -> TrialBalance:
        validate_year_month(fiscal_year, fiscal_month)
        return self._selector.trial_balance(fiscal_year, fiscal_month)

    def get_account_balance(
        self, account_id: UUID, fiscal_year: int, fiscal_month: int
    ) -> AccountBalanceInfo:
        balance = self._selector.account_balance(account_id, fiscal_year, fiscal_month)
        if balance is None:
            raise AccountBalanceNotFoundError(str(account_id), fiscal_year, fiscal_month)
        return balance

    def period_balances(self, fiscal_year: int, fiscal_month: int) -> list[AccountBalanceInfo]:
        return self._selector.period_balances(fiscal_year, fiscal_month)

    # ------------------------------------------------------------------

    def _opening_balances(self, fiscal_year: int, fiscal_month: int) -> dict[UUID, int]:
        prev_year, prev_month = previous_period(fiscal_year, fiscal_month)
        rows = self._session.execute(
            select(AccountBalance.account_id, AccountBalance.closing_balance).where(
                AccountBalance.fiscal_year == prev_year,
                AccountBalance.fiscal_month == prev_month,
            )
        ).all()
        if not rows and self._find_period(prev_year, prev_month) is not None:
            # Opening balances fall back to zero
            logger.warning(
                "previous_period_not_calculated",
                extra={"previous_period": format_period_code(prev_year, prev_month)},
            )
        return {row.account_id: int(row.closing_balance) for row in rows}

    def _store(self, fiscal_year: int, fiscal_month: int, balances) -> None:
        existing = {
            row.account_id: row
            for row in self._session.execute(
                select(AccountBalance).where(
                    AccountBalance.fiscal_year == fiscal_year,
                    AccountBalance.fiscal_month == fiscal_month,
                )
            ).scalars()
        }
        now = self._clock.now()
        for computed in balances:
            row = existing.pop(computed.account_id, None)
            if row is None:
                row = AccountBalance(
                    account_id=computed.account_id,
                    fiscal_year=fiscal_year,
                    fiscal_month=fiscal_month,
                )
                self._session.add(row)
            row.opening_balance = computed.opening_balance
            row.debit_total = computed.debit_total
            row.credit_total = computed.credit_total
            row.closing_balance = computed.closing_balance
            row.calculated_at = now
        for stale in existing.values():
            self._session.delete(stale)
        self._session.flush()

    def _find_period(self, fiscal_year: int, fiscal_month: int) -> FiscalPeriod | None:
        return self._session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.fiscal_year == fiscal_year,
                FiscalPeriod.fiscal_month == fiscal_month,
            )
        ).scalar_one_or_none()
