"""
PeriodService -- fiscal period lifecycle and posting-period validation.

Responsibility:
    Manages the OPEN -> CLOSED -> LOCKED lifecycle (with CLOSED -> OPEN via
    reopen) and answers "may this period receive postings?" for the journal.
    The full close (recalculate, check the trial balance, then close) is
    orchestrated by ``ledger_services.period_close.PeriodCloseService``,
    which calls ``mark_closed`` while holding the period row lock.

Invariants enforced:
    - One period per (fiscal_year, fiscal_month).
    - Lifecycle transitions run on a row locked with SELECT ... FOR UPDATE.
    - LOCKED is terminal; reopen needs a reason of configured minimum length.
    - Flush-only: never commits or rolls back the session.

Failure modes:
    - ValidationError: year outside 2000..2100, month outside 1..12, short
      reopen reason.
    - DuplicatePeriodError: period already exists.
    - PeriodNotFoundError: no such period.
    - InvalidStateError: transition not allowed from the current status.
    - PeriodClosedError: posting into a non-OPEN period.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.audit import AuditSink
from ledger_kernel.domain.dtos import FiscalPeriodInfo
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.exceptions import (
    DuplicatePeriodError,
    InvalidStateError,
    PeriodClosedError,
    PeriodNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.fiscal_period import FiscalPeriod, PeriodStatus
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")

MIN_FISCAL_YEAR = 2000
MAX_FISCAL_YEAR = 2100


def _status_value(period: FiscalPeriod) -> str:
    return PeriodStatus(period.status).value


def validate_year_month(fiscal_year: int, fiscal_month: int) -> None:
    if isinstance(fiscal_year, bool) or not isinstance(fiscal_year, int):
        raise ValidationError("fiscal_year must be an integer", field="fiscal_year")
    if isinstance(fiscal_month, bool) or not isinstance(fiscal_month, int):
        raise ValidationError("fiscal_month must be an integer", field="fiscal_month")
    if not MIN_FISCAL_YEAR <= fiscal_year <= MAX_FISCAL_YEAR:
        raise ValidationError(
            f"fiscal_year must be between {MIN_FISCAL_YEAR} and {MAX_FISCAL_YEAR}",
            field="fiscal_year",
        )
    if not 1 <= fiscal_month <= 12:
        raise ValidationError("fiscal_month must be between 1 and 12", field="fiscal_month")


class PeriodService(BaseService[FiscalPeriod]):
    """Fiscal period lifecycle.  Returns ``FiscalPeriodInfo`` DTOs."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        policy: LedgerPolicy | None = None,
    ):
        super().__init__(session, clock, audit_sink)
        self._policy = policy or LedgerPolicy()

    def create_period(self, fiscal_year: int, fiscal_month: int, actor_id: UUID) -> FiscalPeriodInfo:
        validate_year_month(fiscal_year, fiscal_month)

        if self._find(fiscal_year, fiscal_month) is not None:
            raise DuplicatePeriodError(fiscal_year, fiscal_month)

        period = FiscalPeriod(
            fiscal_year=fiscal_year,
            fiscal_month=fiscal_month,
            status=PeriodStatus.OPEN,
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(period)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise DuplicatePeriodError(fiscal_year, fiscal_month) from exc

        logger.info(
            "period_created",
            extra={"period": period.period_code, "period_id": str(period.id)},
        )
        self._audit(
            "create", "fiscal_period", period.id, actor_id,
            new_values={"status": PeriodStatus.OPEN.value},
        )
        return FiscalPeriodInfo.from_model(period)

    def get_period(self, fiscal_year: int, fiscal_month: int) -> FiscalPeriodInfo:
        return FiscalPeriodInfo.from_model(self._get(fiscal_year, fiscal_month))

    def find_period(self, fiscal_year: int, fiscal_month: int) -> FiscalPeriodInfo | None:
        period = self._find(fiscal_year, fiscal_month)
        return FiscalPeriodInfo.from_model(period) if period else None

    def list_periods(self, status: PeriodStatus | None = None) -> list[FiscalPeriodInfo]:
        query = select(FiscalPeriod).order_by(FiscalPeriod.fiscal_year, FiscalPeriod.fiscal_month)
        if status is not None:
            query = query.where(FiscalPeriod.status == PeriodStatus(status))
        return [FiscalPeriodInfo.from_model(p) for p in self.session.execute(query).scalars()]

    def get_period_for_update(self, fiscal_year: int, fiscal_month: int) -> FiscalPeriod:
        """Lock and return the period row (SELECT ... FOR UPDATE)."""
        period = self.session.execute(
            select(FiscalPeriod)
            .where(
                FiscalPeriod.fiscal_year == fiscal_year,
                FiscalPeriod.fiscal_month == fiscal_month,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise PeriodNotFoundError(fiscal_year, fiscal_month)
        return period

    def require_open(
        self, fiscal_year: int, fiscal_month: int, for_update: bool = False
    ) -> FiscalPeriod:
        """
        Return the period if it accepts postings.

        With ``for_update`` the row stays locked until the caller's
        transaction ends, so a concurrent close cannot slip in between the
        check and the write.
        """
        if for_update:
            period = self.get_period_for_update(fiscal_year, fiscal_month)
        else:
            period = self._get(fiscal_year, fiscal_month)
        if not period.is_open:
            logger.warning(
                "posting_period_not_open",
                extra={"period": period.period_code, "status": _status_value(period)},
            )
            raise PeriodClosedError(fiscal_year, fiscal_month, _status_value(period))
        return period

    def mark_closed(self, period: FiscalPeriod, actor_id: UUID) -> FiscalPeriodInfo:
        """
        OPEN -> CLOSED on an already locked row.  Callers run their close
        checks first; this only records the transition.
        """
        if not period.is_open:
            raise InvalidStateError("fiscal period", _status_value(period), "close")

        period.status = PeriodStatus.CLOSED
        period.closed_at = self._clock.now()
        period.closed_by_id = actor_id
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_closed",
            extra={"period": period.period_code, "closed_by": str(actor_id)},
        )
        self._audit(
            "close", "fiscal_period", period.id, actor_id,
            old_values={"status": PeriodStatus.OPEN.value},
            new_values={"status": PeriodStatus.CLOSED.value},
        )
        return FiscalPeriodInfo.from_model(period)

    def reopen_period(
        self, fiscal_year: int, fiscal_month: int, reason: str, actor_id: UUID
    ) -> FiscalPeriodInfo:
        period = self.get_period_for_update(fiscal_year, fiscal_month)

        if period.is_locked:
            raise InvalidStateError(
                "fiscal period", PeriodStatus.LOCKED.value, "reopen",
                detail="locked periods are permanent",
            )
        if not period.is_closed:
            raise InvalidStateError("fiscal period", _status_value(period), "reopen")

        reason = (reason or "").strip()
        minimum = self._policy.min_reopen_reason_length
        if len(reason) < minimum:
            raise ValidationError(
                f"Reopen reason must be at least {minimum} characters",
                field="reason",
            )

        period.status = PeriodStatus.OPEN
        period.reopened_at = self._clock.now()
        period.reopened_by_id = actor_id
        period.reopen_reason = reason
        period.closed_at = None
        period.closed_by_id = None
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_reopened",
            extra={"period": period.period_code, "reason": reason},
        )
        self._audit(
            "reopen", "fiscal_period", period.id, actor_id,
            old_values={"status": PeriodStatus.CLOSED.value},
            new_values={"status": PeriodStatus.OPEN.value, "reason": reason},
        )
        return FiscalPeriodInfo.from_model(period)

    def lock_period(self, fiscal_year: int, fiscal_month: int, actor_id: UUID) -> FiscalPeriodInfo:
        period = self.get_period_for_update(fiscal_year, fiscal_month)

        if not period.is_closed:
            raise InvalidStateError(
                "fiscal period", _status_value(period), "lock",
                detail="only closed periods can be locked",
            )

        period.status = PeriodStatus.LOCKED
        period.locked_at = self._clock.now()
        period.locked_by_id = actor_id
        period.updated_by_id = actor_id
        self.session.flush()

        logger.info("period_locked", extra={"period": period.period_code})
        self._audit(
            "lock", "fiscal_period", period.id, actor_id,
            old_values={"status": PeriodStatus.CLOSED.value},
            new_values={"status": PeriodStatus.LOCKED.value},
        )
        return FiscalPeriodInfo.from_model(period)

    def _find(self, fiscal_year: int, fiscal_month: int) -> FiscalPeriod | None:
        return self.session.execute(
            select(FiscalPeriod).where(
                FiscalPeriod.fiscal_year == fiscal_year,
                FiscalPeriod.fiscal_month == fiscal_month,
            )
        ).scalar_one_or_none()

    def _get(self, fiscal_year: int, fiscal_month: int) -> FiscalPeriod:
        period = self._find(fiscal_year, fiscal_month)
        if period is None:
            raise PeriodNotFoundError(fiscal_year, fiscal_month)
        return period
