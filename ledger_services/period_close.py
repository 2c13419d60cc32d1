"""
ledger_services.period_close -- the month-end close.

Responsibility:
    Sequences the close of one fiscal period: lock the period row, run the
    configured readiness checks, recalculate balances, verify the trial
    balance and record the OPEN -> CLOSED transition.  Also produces the
    non-mutating close checklist.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - The period row is held with SELECT ... FOR UPDATE for the whole close,
      so no entry can be posted into it between the balance check and the
      status change.
    - A period whose posted debits differ from its posted credits is never
      closed (UnbalancedPeriodError).
    - Flush-only; the caller commits.  A failed close leaves the period
      OPEN once the caller rolls back.

Failure modes:
    - PeriodNotFoundError: no such period.
    - InvalidStateError: period not OPEN, previous period still OPEN
      (``require_sequential_close``) or drafts remain
      (``block_close_with_drafts``).
    - UnbalancedPeriodError: trial balance does not tie.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from ledger_kernel.domain.audit import AuditSink
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import CloseChecklist, FiscalPeriodInfo
from ledger_kernel.domain.events import (
    DomainEvent,
    EventPublisher,
    LedgerEventType,
    LoggingEventPublisher,
)
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.exceptions import InvalidStateError, UnbalancedPeriodError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.fiscal_period import (
    PeriodStatus,
    format_period_code,
    previous_period,
)
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.services.period_service import PeriodService, validate_year_month
from ledger_services.balance_service import BalanceService

logger = get_logger("services.period_close")


class PeriodCloseService:
    """
    Orchestrates period close.

    Contract:
        Receives the session plus optional clock, audit sink, event
        publisher and policy; builds its kernel collaborators from them.
    Guarantees:
        - ``close_period`` either returns a CLOSED period or raises, having
          flushed nothing the caller cannot roll back.
        - ``close_checklist`` never mutates state.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        publisher: EventPublisher | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._publisher = publisher or LoggingEventPublisher()
        self._policy = policy or LedgerPolicy()
        self._periods = PeriodService(session, self._clock, audit_sink, self._policy)
        self._balances = BalanceService(session, self._clock)
        self._journal = JournalSelector(session)

    def close_period(
        self, fiscal_year: int, fiscal_month: int, actor_id: UUID
    ) -> FiscalPeriodInfo:
        validate_year_month(fiscal_year, fiscal_month)
        code = format_period_code(fiscal_year, fiscal_month)

        with LogContext.bind(period=code, actor_id=str(actor_id)):
            period = self._periods.get_period_for_update(fiscal_year, fiscal_month)
            if not period.is_open:
                raise InvalidStateError(
                    "fiscal period", PeriodStatus(period.status).value, "close"
                )

            if self._policy.require_sequential_close and self._previous_open(
                fiscal_year, fiscal_month
            ):
                prev = format_period_code(*previous_period(fiscal_year, fiscal_month))
                logger.warning("period_close_blocked_previous_open", extra={"previous_period": prev})
                raise InvalidStateError(
                    "fiscal period", PeriodStatus.OPEN.value, "close",
                    detail=f"previous period {prev} is still open",
                )

            if self._policy.block_close_with_drafts:
                drafts = self._journal.count_drafts(fiscal_year, fiscal_month)
                if drafts:
                    logger.warning("period_close_blocked_drafts", extra={"draft_entries": drafts})
                    raise InvalidStateError(
                        "fiscal period", PeriodStatus.OPEN.value, "close",
                        detail=f"{drafts} draft entries remain",
                    )

            result = self._balances.recalculate(fiscal_year, fiscal_month)
            if not result.is_balanced:
                logger.error(
                    "period_close_unbalanced",
                    extra={
                        "total_debits": result.total_debits,
                        "total_credits": result.total_credits,
                    },
                )
                raise UnbalancedPeriodError(
                    fiscal_year, fiscal_month, result.total_debits, result.total_credits
                )

            closed = self._periods.mark_closed(period, actor_id)

            self._publisher.publish(
                DomainEvent(
                    event_type=LedgerEventType.PERIOD_CLOSED,
                    aggregate_id=closed.id,
                    occurred_at=closed.closed_at or self._clock.now(),
                    actor_id=actor_id,
                    payload={
                        "fiscal_year": fiscal_year,
                        "fiscal_month": fiscal_month,
                        "accounts_processed": result.accounts_processed,
                        "total_debits": result.total_debits,
                    },
                )
            )
            return closed

    def close_checklist(self, fiscal_year: int, fiscal_month: int) -> CloseChecklist:
        """Report what would block ``close_period`` right now."""
        validate_year_month(fiscal_year, fiscal_month)
        period = self._periods.get_period(fiscal_year, fiscal_month)
        previous_open = self._previous_open(fiscal_year, fiscal_month)
        drafts = self._journal.count_drafts(fiscal_year, fiscal_month)
        trial = self._balances.trial_balance(fiscal_year, fiscal_month)

        blockers: list[str] = []
        if period.status != PeriodStatus.OPEN:
            blockers.append(f"period is {period.status.value}")
        if previous_open and self._policy.require_sequential_close:
            blockers.append("previous period is still open")
        if drafts and self._policy.block_close_with_drafts:
            blockers.append(f"{drafts} draft entries remain")
        if not trial.is_balanced:
            blockers.append(f"trial balance out by {trial.difference}")

        return CloseChecklist(
            fiscal_year=fiscal_year,
            fiscal_month=fiscal_month,
            period_status=period.status,
            previous_period_closed=not previous_open,
            draft_entries=drafts,
            trial_balance_balanced=trial.is_balanced,
            total_debits=trial.total_debits,
            total_credits=trial.total_credits,
            blockers=tuple(blockers),
        )

    def _previous_open(self, fiscal_year: int, fiscal_month: int) -> bool:
        prev = self._periods.find_period(*previous_period(fiscal_year, fiscal_month))
        return prev is not None and prev.status == PeriodStatus.OPEN
