"""
ledger_services.api -- request-level facade over the ledger.

Responsibility:
    One method per external operation.  Each call takes a JSON-compatible
    payload with camelCase keys, runs inside its own ``session_scope()``
    (commit on success, rollback on failure) and returns an ``ApiResult``.
    Kernel errors become ``ApiResult(success=False, error=ApiError(...))``;
    anything else propagates.

Invariants enforced:
    - Amounts in payloads must be integers in minor units.  Floats, bools
      and numeric strings are rejected with VALIDATION_ERROR.
    - A failed call leaves no partial writes.
    - Response data is JSON-compatible: UUIDs and dates as strings, enums
      as their values, keys in camelCase.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from ledger_config.bridges import build_kernel_policy
from ledger_config.schema import LedgerConfig
from ledger_kernel.db.engine import session_scope
from ledger_kernel.domain.audit import AuditSink
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import (
    AdjustingEntryMapping,
    CloseChecklist,
    JournalEntryInfo,
    LineSpec,
    ReconciliationInfo,
    StatementLine,
    TrialBalance,
    TrialBalanceRow,
)
from ledger_kernel.domain.events import EventPublisher
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.exceptions import LedgerKernelError, ValidationError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.bank_account_service import BankAccountService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService
from ledger_services.balance_service import BalanceService
from ledger_services.period_close import PeriodCloseService
from ledger_services.reconciliation_service import ReconciliationService

logger = get_logger("services.api")


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApiError:
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiResult:
    success: bool
    data: Any = None
    error: ApiError | None = None

    @property
    def is_success(self) -> bool:
        return self.success


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

# Derived properties included next to the dataclass fields
_DERIVED: dict[type, tuple[str, ...]] = {
    JournalEntryInfo: ("total_debits", "total_credits"),
    TrialBalance: ("difference", "is_balanced"),
    TrialBalanceRow: ("net_balance",),
    ReconciliationInfo: ("difference", "is_reconciled"),
    CloseChecklist: ("can_close",),
}

# Structured exception attributes worth returning to the caller
_ERROR_DETAIL_ATTRS = (
    "field",
    "debits",
    "credits",
    "fiscal_year",
    "fiscal_month",
    "status",
    "current_state",
    "action",
    "total_debits",
    "total_credits",
    "difference",
    "unresolved_transactions",
)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_json(value: Any) -> Any:
    """Convert DTOs and scalars into JSON-compatible values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        data = {_camel(f.name): to_json(getattr(value, f.name)) for f in fields(value)}
        for prop in _DERIVED.get(type(value), ()):
            data[_camel(prop)] = to_json(getattr(value, prop))
        return data
    if isinstance(value, Mapping):
        return {str(k): to_json(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def _require(payload: Mapping[str, Any], key: str) -> Any:
    if not isinstance(payload, Mapping):
        raise ValidationError("Request body must be an object")
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required", field=key)
    return payload[key]


def _uuid(value: Any, key: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise ValidationError(f"{key} must be a UUID", field=key) from exc


def _optional_uuid(payload: Mapping[str, Any], key: str) -> UUID | None:
    value = payload.get(key)
    return None if value is None else _uuid(value, key)


def _date(value: Any, key: str) -> date:
    """Accept an ISO date or an ISO datetime; datetimes keep their calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value).date()
        except ValueError as exc:
            raise ValidationError(f"{key} must be an ISO date or datetime", field=key) from exc
    raise ValidationError(f"{key} must be an ISO date or datetime", field=key)


def _amount(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer in minor units", field=key)
    return value


def _integer(value: Any, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", field=key)
    return value


def _enum_value(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Facade
# ---------------------------------------------------------------------------


class LedgerApi:
    """
    Request-level entry point.

    Contract:
        Receives an optional session factory (defaults to the global engine
        set up by ``init_engine_from_url``) and the collaborators every
        service needs.  Each method opens and closes its own transaction.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        publisher: EventPublisher | None = None,
        policy: LedgerPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._audit_sink = audit_sink
        self._publisher = publisher
        self._policy = policy or LedgerPolicy()

    @classmethod
    def from_config(
        cls,
        config: LedgerConfig,
        session_factory: sessionmaker[Session] | None = None,
        **collaborators: Any,
    ) -> LedgerApi:
        return cls(session_factory, policy=build_kernel_policy(config), **collaborators)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, payload: Mapping[str, Any], actor_id: UUID) -> ApiResult:
        def run(session: Session):
            return AccountService(session, self._clock, self._audit_sink).create_account(
                code=_require(payload, "code"),
                name=_require(payload, "name"),
                account_type=_enum_value(_require(payload, "accountType")),
                normal_balance=_enum_value(_require(payload, "normalBalance")),
                actor_id=actor_id,
                parent_id=_optional_uuid(payload, "parentId"),
                description=payload.get("description"),
            )

        return self._execute("create_account", actor_id, run)

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    def create_journal_entry(self, payload: Mapping[str, Any], actor_id: UUID) -> ApiResult:
        def run(session: Session):
            raw_lines = _require(payload, "lines")
            if not isinstance(raw_lines, list):
                raise ValidationError("lines must be a list", field="lines")
            lines = [
                LineSpec(
                    account_id=_uuid(_require(line, "accountId"), "accountId"),
                    direction=_enum_value(_require(line, "direction")),
                    amount=_amount(_require(line, "amount"), "amount"),
                    memo=line.get("memo"),
                )
                for line in raw_lines
            ]
            extra = {}
            if payload.get("entryType") is not None:
                extra["entry_type"] = _enum_value(payload["entryType"])
            return self._journal(session).create_entry(
                entry_date=_date(_require(payload, "entryDate"), "entryDate"),
                description=_require(payload, "description"),
                lines=lines,
                actor_id=actor_id,
                reference=payload.get("reference"),
                notes=payload.get("notes"),
                **extra,
            )

        return self._execute("create_journal_entry", actor_id, run)

    def post_journal_entry(self, entry_id: UUID, actor_id: UUID) -> ApiResult:
        return self._execute(
            "post_journal_entry", actor_id,
            lambda session: self._journal(session).post(_uuid(entry_id, "entryId"), actor_id),
        )

    def void_journal_entry(
        self, entry_id: UUID, payload: Mapping[str, Any], actor_id: UUID
    ) -> ApiResult:
        return self._execute(
            "void_journal_entry", actor_id,
            lambda session: self._journal(session).void(
                _uuid(entry_id, "entryId"), _require(payload, "reason"), actor_id
            ),
        )

    def get_journal_entry(self, entry_id: UUID) -> ApiResult:
        return self._execute(
            "get_journal_entry", None,
            lambda session: self._journal(session).get_entry(_uuid(entry_id, "entryId")),
        )

    # ------------------------------------------------------------------
    # Fiscal periods
    # ------------------------------------------------------------------

    def create_fiscal_period(self, payload: Mapping[str, Any], actor_id: UUID) -> ApiResult:
        return self._execute(
            "create_fiscal_period", actor_id,
            lambda session: self._periods(session).create_period(
                _integer(_require(payload, "fiscalYear"), "fiscalYear"),
                _integer(_require(payload, "fiscalMonth"), "fiscalMonth"),
                actor_id,
            ),
        )

    def close_fiscal_period(self, fiscal_year: int, fiscal_month: int, actor_id: UUID) -> ApiResult:
        return self._execute(
            "close_fiscal_period", actor_id,
            lambda session: self._close(session).close_period(fiscal_year, fiscal_month, actor_id),
        )

    def reopen_fiscal_period(
        self, fiscal_year: int, fiscal_month: int, payload: Mapping[str, Any], actor_id: UUID
    ) -> ApiResult:
        return self._execute(
            "reopen_fiscal_period", actor_id,
            lambda session: self._periods(session).reopen_period(
                fiscal_year, fiscal_month, _require(payload, "reason"), actor_id
            ),
        )

    def lock_fiscal_period(self, fiscal_year: int, fiscal_month: int, actor_id: UUID) -> ApiResult:
        return self._execute(
            "lock_fiscal_period", actor_id,
            lambda session: self._periods(session).lock_period(fiscal_year, fiscal_month, actor_id),
        )

    def close_checklist(self, fiscal_year: int, fiscal_month: int) -> ApiResult:
        return self._execute(
            "close_checklist", None,
            lambda session: self._close(session).close_checklist(fiscal_year, fiscal_month),
        )

    # ------------------------------------------------------------------
    # Balances and reports
    # ------------------------------------------------------------------

    def calculate_account_balances(self, payload: Mapping[str, Any], actor_id: UUID) -> ApiResult:
        return self._execute(
            "calculate_account_balances", actor_id,
            lambda session: BalanceService(session, self._clock).recalculate(
                _integer(_require(payload, "fiscalYear"), "fiscalYear"),
                _integer(_require(payload, "fiscalMonth"), "fiscalMonth"),
            ),
        )

    def get_account_balance(self, account_id: UUID, fiscal_year: int, fiscal_month: int) -> ApiResult:
        return self._execute(
            "get_account_balance", None,
            lambda session: BalanceService(session, self._clock).get_account_balance(
                _uuid(account_id, "accountId"), fiscal_year, fiscal_month
            ),
        )

    def trial_balance_report(self, fiscal_year: int, fiscal_month: int) -> ApiResult:
        return self._execute(
            "trial_balance_report", None,
            lambda session: BalanceService(session, self._clock).trial_balance(
                fiscal_year, fiscal_month
            ),
        )

    # ------------------------------------------------------------------
    # Banking
    # ------------------------------------------------------------------

    def create_bank_account(self, payload: Mapping[str, Any], actor_id: UUID) -> ApiResult:
        return self._execute(
            "create_bank_account", actor_id,
            lambda session: BankAccountService(
                session, self._clock, self._audit_sink
            ).create_bank_account(
                linked_account_id=_uuid(_require(payload, "linkedAccountId"), "linkedAccountId"),
                bank_name=_require(payload, "bankName"),
                account_number=_require(payload, "accountNumber"),
                actor_id=actor_id,
            ),
        )

    def create_reconciliation(self, payload: Mapping[str, Any], actor_id: UUID) -> ApiResult:
        def run(session: Session):
            book = payload.get("bookEndingBalance")
            return self._reconciliation(session).create_reconciliation(
                bank_account_id=_uuid(_require(payload, "bankAccountId"), "bankAccountId"),
                fiscal_year=_integer(_require(payload, "fiscalYear"), "fiscalYear"),
                fiscal_month=_integer(_require(payload, "fiscalMonth"), "fiscalMonth"),
                statement_ending_balance=_amount(
                    _require(payload, "statementEndingBalance"), "statementEndingBalance"
                ),
                actor_id=actor_id,
                book_ending_balance=None if book is None else _amount(book, "bookEndingBalance"),
                notes=payload.get("notes"),
            )

        return self._execute("create_reconciliation", actor_id, run)

    def import_statement(
        self, reconciliation_id: UUID, payload: Mapping[str, Any], actor_id: UUID
    ) -> ApiResult:
        def run(session: Session):
            raw = _require(payload, "transactions")
            if not isinstance(raw, list):
                raise ValidationError("transactions must be a list", field="transactions")
            lines = [
                StatementLine(
                    transaction_date=_date(_require(t, "transactionDate"), "transactionDate"),
                    amount=_amount(_require(t, "amount"), "amount"),
                    description=t.get("description") or "",
                    reference=t.get("reference"),
                )
                for t in raw
            ]
            return self._reconciliation(session).import_statement(
                _uuid(reconciliation_id, "reconciliationId"), lines, actor_id
            )

        return self._execute("import_statement", actor_id, run, reconciliation_id)

    def match(self, reconciliation_id: UUID, payload: Mapping[str, Any], actor_id: UUID) -> ApiResult:
        return self._execute(
            "match", actor_id,
            lambda session: self._reconciliation(session).match_transaction(
                _uuid(reconciliation_id, "reconciliationId"),
                _uuid(_require(payload, "bankTransactionId"), "bankTransactionId"),
                _uuid(_require(payload, "journalLineId"), "journalLineId"),
                actor_id,
            ),
            reconciliation_id,
        )

    def auto_match(
        self, reconciliation_id: UUID, payload: Mapping[str, Any] | None, actor_id: UUID
    ) -> ApiResult:
        def run(session: Session):
            body = payload or {}
            raw_ids = body.get("candidateLineIds")
            tolerance = body.get("dateToleranceDays")
            return self._reconciliation(session).auto_match(
                _uuid(reconciliation_id, "reconciliationId"),
                actor_id,
                candidate_line_ids=(
                    None if raw_ids is None
                    else [_uuid(v, "candidateLineIds") for v in raw_ids]
                ),
                date_tolerance_days=(
                    None if tolerance is None else _integer(tolerance, "dateToleranceDays")
                ),
            )

        return self._execute("auto_match", actor_id, run, reconciliation_id)

    def add_item(self, reconciliation_id: UUID, payload: Mapping[str, Any], actor_id: UUID) -> ApiResult:
        return self._execute(
            "add_item", actor_id,
            lambda session: self._reconciliation(session).add_reconciling_item(
                _uuid(reconciliation_id, "reconciliationId"),
                item_type=_enum_value(_require(payload, "itemType")),
                amount=_amount(_require(payload, "amount"), "amount"),
                item_date=_date(_require(payload, "itemDate"), "itemDate"),
                description=_require(payload, "description"),
                actor_id=actor_id,
                reference=payload.get("reference"),
                requires_journal_entry=bool(payload.get("requiresJournalEntry", False)),
                bank_transaction_id=_optional_uuid(payload, "bankTransactionId"),
            ),
            reconciliation_id,
        )

    def calculate(self, reconciliation_id: UUID, actor_id: UUID) -> ApiResult:
        return self._execute(
            "calculate", actor_id,
            lambda session: self._reconciliation(session).calculate_adjusted_balances(
                _uuid(reconciliation_id, "reconciliationId"), actor_id
            ),
            reconciliation_id,
        )

    def complete(self, reconciliation_id: UUID, actor_id: UUID) -> ApiResult:
        return self._execute(
            "complete", actor_id,
            lambda session: self._reconciliation(session).complete(
                _uuid(reconciliation_id, "reconciliationId"), actor_id
            ),
            reconciliation_id,
        )

    def approve(self, reconciliation_id: UUID, actor_id: UUID) -> ApiResult:
        return self._execute(
            "approve", actor_id,
            lambda session: self._reconciliation(session).approve(
                _uuid(reconciliation_id, "reconciliationId"), actor_id
            ),
            reconciliation_id,
        )

    def generate_adjusting_entries(
        self, reconciliation_id: UUID, payload: Mapping[str, Any], actor_id: UUID
    ) -> ApiResult:
        def run(session: Session):
            mapping = AdjustingEntryMapping(
                fee_expense_account_id=_uuid(
                    _require(payload, "feeExpenseAccountId"), "feeExpenseAccountId"
                ),
                interest_income_account_id=_uuid(
                    _require(payload, "interestIncomeAccountId"), "interestIncomeAccountId"
                ),
                nsf_expense_account_id=_optional_uuid(payload, "nsfExpenseAccountId"),
            )
            return self._reconciliation(session).generate_adjusting_entries(
                _uuid(reconciliation_id, "reconciliationId"), mapping, actor_id
            )

        return self._execute("generate_adjusting_entries", actor_id, run, reconciliation_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _journal(self, session: Session) -> JournalService:
        return JournalService(session, self._clock, self._audit_sink, self._publisher, self._policy)

    def _periods(self, session: Session) -> PeriodService:
        return PeriodService(session, self._clock, self._audit_sink, self._policy)

    def _close(self, session: Session) -> PeriodCloseService:
        return PeriodCloseService(
            session, self._clock, self._audit_sink, self._publisher, self._policy
        )

    def _reconciliation(self, session: Session) -> ReconciliationService:
        return ReconciliationService(
            session, self._clock, self._audit_sink, self._publisher, self._policy
        )

    def _execute(
        self,
        operation: str,
        actor_id: UUID | None,
        run: Callable[[Session], Any],
        reconciliation_id: UUID | None = None,
    ) -> ApiResult:
        with LogContext.bind(actor_id=actor_id, reconciliation_id=reconciliation_id):
            try:
                with session_scope(self._session_factory) as session:
                    data = to_json(run(session))
            except LedgerKernelError as exc:
                logger.warning(
                    "api_request_rejected",
                    extra={"operation": operation, "error_code": exc.code, "error": str(exc)},
                )
                details = {
                    _camel(attr): to_json(getattr(exc, attr))
                    for attr in _ERROR_DETAIL_ATTRS
                    if getattr(exc, attr, None) is not None
                }
                return ApiResult(
                    success=False,
                    error=ApiError(code=exc.code, message=str(exc), details=details),
                )
        return ApiResult(success=True, data=data)
