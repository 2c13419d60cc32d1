"""
ledger_services.reconciliation_service -- monthly bank reconciliation.

Responsibility:
    Drives one reconciliation from DRAFT to APPROVED: statement import with
    duplicate detection, manual and automatic matching of statement lines
    to posted ledger lines, reconciling items, adjusted balances, and the
    adjusting journal entries that bring the book side in line.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    Composes AutoMatcher and AdjustedBalanceCalculator (pure engines) with
    the kernel's JournalService, BankAccountService and selectors.

Invariants enforced:
    - One reconciliation per (bank account, fiscal year, fiscal month).
    - A journal line is matched to at most one statement line: the match
      is a status-guarded UPDATE backed by a unique constraint.
    - Only DRAFT / IN_PROGRESS reconciliations accept changes; the first
      change moves DRAFT to IN_PROGRESS.  COMPLETED and APPROVED are
      read-only.
    - complete() requires adjusted bank == adjusted book exactly and every
      statement line matched or covered by a reconciling item.

Failure modes:
    - ValidationError: bad amounts, blank descriptions, unknown item types.
    - DuplicateReconciliationError: period already has a reconciliation.
    - NotFoundError subclasses: unknown reconciliation, statement line,
      journal line or bank account.
    - InvalidStateError: inactive bank account, wrong reconciliation
      status, double match, matching an unposted line.
    - NotReconciledError: completing with a difference or unresolved lines.

Audit relevance:
    Every mutation goes through the injected AuditSink with the actor id.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_engines.reconciliation import (
    AdjustedBalanceCalculator,
    AdjustedBalances,
    AutoMatcher,
    BankLine,
    CandidateLine,
    ReconcilingAmount,
)
from ledger_kernel.domain.audit import AuditRecord, AuditSink, LoggingAuditSink
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import (
    AdjustingEntryMapping,
    AutoMatchSummary,
    BankTransactionInfo,
    ImportResult,
    JournalEntryInfo,
    LineSpec,
    MatchPair,
    ReconciliationInfo,
    ReconcilingItemInfo,
    StatementLine,
)
from ledger_kernel.domain.events import EventPublisher
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.exceptions import (
    AccountBalanceNotFoundError,
    BankTransactionNotFoundError,
    DuplicateReconciliationError,
    InvalidStateError,
    JournalLineNotFoundError,
    NotReconciledError,
    ReconciliationNotFoundError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.bank import (
    BankAccountStatus,
    BankTransaction,
    MatchStatus,
    Reconciliation,
    ReconciliationStatus,
    ReconcilingItem,
    ReconcilingItemType,
)
from ledger_kernel.models.fiscal_period import period_bounds
from ledger_kernel.models.journal import (
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    LineDirection,
)
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.services.bank_account_service import BankAccountService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import validate_year_month

logger = get_logger("services.reconciliation")

# Reconciling item types that become adjusting journal entries
_ENTRY_ITEM_TYPES = (
    ReconcilingItemType.BANK_FEE,
    ReconcilingItemType.BANK_INTEREST,
    ReconcilingItemType.NSF_CHECK,
)


def _minor_units(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer in minor units", field=field)
    return value


def _status_value(reconciliation: Reconciliation) -> str:
    return ReconciliationStatus(reconciliation.status).value


class ReconciliationService:
    """
    Bank reconciliation workflow.

    Contract:
        Flush-only.  The caller owns the transaction (``session_scope()`` or
        the API facade).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        publisher: EventPublisher | None = None,
        policy: LedgerPolicy | None = None,
        matcher: AutoMatcher | None = None,
        adjusted_calculator: AdjustedBalanceCalculator | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit_sink = audit_sink or LoggingAuditSink()
        self._policy = policy or LedgerPolicy()
        self._matcher = matcher or AutoMatcher()
        self._adjusted = adjusted_calculator or AdjustedBalanceCalculator()
        self._bank_accounts = BankAccountService(session, self._clock, self._audit_sink)
        self._journal = JournalService(
            session, self._clock, self._audit_sink, publisher, self._policy
        )
        self._journal_selector = JournalSelector(session)
        self._ledger_selector = LedgerSelector(session)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_reconciliation(
        self,
        bank_account_id: UUID,
        fiscal_year: int,
        fiscal_month: int,
        statement_ending_balance: int,
        actor_id: UUID,
        book_ending_balance: int | None = None,
        notes: str | None = None,
    ) -> ReconciliationInfo:
        """
        Open a reconciliation in DRAFT.

        When ``book_ending_balance`` is omitted, the linked GL account's
        calculated closing balance for the period is used; the period's
        balances must have been recalculated first.
        """
        validate_year_month(fiscal_year, fiscal_month)
        statement_ending_balance = _minor_units(
            statement_ending_balance, "statement_ending_balance"
        )

        bank_account = self._bank_accounts.get_model(bank_account_id)
        if not bank_account.is_active:
            raise InvalidStateError(
                "bank account", BankAccountStatus(bank_account.status).value, "reconcile"
            )

        if book_ending_balance is None:
            stored = self._ledger_selector.account_balance(
                bank_account.linked_account_id, fiscal_year, fiscal_month
            )
            if stored is None:
                raise AccountBalanceNotFoundError(
                    str(bank_account.linked_account_id), fiscal_year, fiscal_month
                )
            book_ending_balance = stored.closing_balance
        book_ending_balance = _minor_units(book_ending_balance, "book_ending_balance")

        if self._find(bank_account_id, fiscal_year, fiscal_month) is not None:
            raise DuplicateReconciliationError(str(bank_account_id), fiscal_year, fiscal_month)

        reconciliation = Reconciliation(
            bank_account_id=bank_account_id,
            fiscal_year=fiscal_year,
            fiscal_month=fiscal_month,
            statement_ending_balance=statement_ending_balance,
            book_ending_balance=book_ending_balance,
            total_transactions=0,
            matched_transactions=0,
            unmatched_transactions=0,
            status=ReconciliationStatus.DRAFT,
            notes=notes,
            created_by_id=actor_id,
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(reconciliation)
            self._session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise DuplicateReconciliationError(
                str(bank_account_id), fiscal_year, fiscal_month
            ) from exc

        logger.info(
            "reconciliation_created",
            extra={
                "reconciliation_id": str(reconciliation.id),
                "bank_account_id": str(bank_account_id),
                "statement_ending_balance": statement_ending_balance,
                "book_ending_balance": book_ending_balance,
            },
        )
        self._audit(
            "create", reconciliation.id, actor_id,
            new_values={
                "fiscal_year": fiscal_year,
                "fiscal_month": fiscal_month,
                "statement_ending_balance": statement_ending_balance,
                "book_ending_balance": book_ending_balance,
            },
        )
        return ReconciliationInfo.from_model(reconciliation)

    def start(self, reconciliation_id: UUID, actor_id: UUID) -> ReconciliationInfo:
        reconciliation = self._get(reconciliation_id)
        if reconciliation.status != ReconciliationStatus.DRAFT:
            raise InvalidStateError("reconciliation", _status_value(reconciliation), "start")
        self._begin_work(reconciliation, actor_id)
        self._session.flush()
        return ReconciliationInfo.from_model(reconciliation)

    def complete(self, reconciliation_id: UUID, actor_id: UUID) -> ReconciliationInfo:
        reconciliation = self._get_editable(reconciliation_id, actor_id, "complete")

        with LogContext.bind(reconciliation_id=str(reconciliation_id)):
            adjusted = self._compute_adjusted(reconciliation)
            self._store_adjusted(reconciliation, adjusted)

            covered = {
                item.bank_transaction_id
                for item in reconciliation.items
                if item.bank_transaction_id is not None
            }
            unresolved = sum(
                1 for txn in reconciliation.transactions
                if not txn.is_matched and txn.id not in covered
            )
            if not adjusted.is_reconciled or unresolved:
                logger.warning(
                    "reconciliation_not_reconciled",
                    extra={
                        "difference": adjusted.difference,
                        "unresolved_transactions": unresolved,
                    },
                )
                raise NotReconciledError(
                    str(reconciliation_id), adjusted.difference, unresolved
                )

            now = self._clock.now()
            reconciliation.status = ReconciliationStatus.COMPLETED
            reconciliation.completed_at = now
            reconciliation.completed_by_id = actor_id
            reconciliation.updated_by_id = actor_id

            bank_account = self._bank_accounts.get_model(reconciliation.bank_account_id)
            _, period_end = period_bounds(reconciliation.fiscal_year, reconciliation.fiscal_month)
            bank_account.last_reconciled_date = period_end
            bank_account.last_reconciled_balance = reconciliation.statement_ending_balance
            bank_account.updated_by_id = actor_id
            self._session.flush()

            logger.info(
                "reconciliation_completed",
                extra={
                    "adjusted_balance": adjusted.adjusted_bank_balance,
                    "matched_transactions": reconciliation.matched_transactions,
                },
            )
        self._audit(
            "complete", reconciliation.id, actor_id,
            new_values={"status": ReconciliationStatus.COMPLETED.value},
        )
        return ReconciliationInfo.from_model(reconciliation)

    def approve(self, reconciliation_id: UUID, actor_id: UUID) -> ReconciliationInfo:
        reconciliation = self._get(reconciliation_id)
        if reconciliation.status != ReconciliationStatus.COMPLETED:
            raise InvalidStateError("reconciliation", _status_value(reconciliation), "approve")

        reconciliation.status = ReconciliationStatus.APPROVED
        reconciliation.approved_at = self._clock.now()
        reconciliation.approved_by_id = actor_id
        reconciliation.updated_by_id = actor_id
        self._session.flush()

        logger.info("reconciliation_approved", extra={"reconciliation_id": str(reconciliation_id)})
        self._audit(
            "approve", reconciliation.id, actor_id,
            old_values={"status": ReconciliationStatus.COMPLETED.value},
            new_values={"status": ReconciliationStatus.APPROVED.value},
        )
        return ReconciliationInfo.from_model(reconciliation)

    # ------------------------------------------------------------------
    # Statement import
    # ------------------------------------------------------------------

    def import_statement(
        self,
        reconciliation_id: UUID,
        lines: Sequence[StatementLine],
        actor_id: UUID,
    ) -> ImportResult:
        """
        Insert statement lines, skipping any whose (date, amount, reference)
        was already imported into this reconciliation or appears earlier in
        the same batch.
        """
        for index, line in enumerate(lines):
            if not isinstance(line.transaction_date, date):
                raise ValidationError(
                    f"Statement line {index + 1}: transaction_date must be a date",
                    field="transaction_date",
                )
            amount = _minor_units(line.amount, "amount")
            if amount == 0:
                raise ValidationError(
                    f"Statement line {index + 1}: amount must be non-zero", field="amount"
                )

        reconciliation = self._get_editable(reconciliation_id, actor_id, "import into")

        seen = {
            (txn.transaction_date, txn.amount, txn.reference)
            for txn in reconciliation.transactions
        }
        next_seq = max((txn.import_seq for txn in reconciliation.transactions), default=-1) + 1

        created: list[BankTransaction] = []
        skipped = 0
        for line in lines:
            key = (line.transaction_date, line.amount, line.reference)
            if key in seen:
                skipped += 1
                continue
            seen.add(key)
            txn = BankTransaction(
                transaction_date=line.transaction_date,
                description=line.description or "",
                amount=line.amount,
                reference=line.reference,
                import_seq=next_seq,
                match_status=MatchStatus.UNMATCHED,
            )
            next_seq += 1
            reconciliation.transactions.append(txn)
            created.append(txn)

        self._session.flush()
        self._refresh_counters(reconciliation)

        logger.info(
            "statement_imported",
            extra={
                "reconciliation_id": str(reconciliation_id),
                "imported": len(created),
                "duplicates_skipped": skipped,
            },
        )
        self._audit(
            "import_statement", reconciliation.id, actor_id,
            new_values={"imported": len(created), "duplicates_skipped": skipped},
        )
        return ImportResult(
            imported=len(created),
            duplicates_skipped=skipped,
            transaction_ids=tuple(txn.id for txn in created),
        )

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    def match_transaction(
        self,
        reconciliation_id: UUID,
        bank_transaction_id: UUID,
        journal_line_id: UUID,
        actor_id: UUID,
    ) -> BankTransactionInfo:
        reconciliation = self._get_editable(reconciliation_id, actor_id, "match in")
        txn = self._get_transaction(reconciliation, bank_transaction_id)
        if txn.is_matched:
            raise InvalidStateError(
                "bank transaction", MatchStatus.MATCHED.value, "match",
                detail="statement line is already matched",
            )

        line = self._session.get(JournalLine, journal_line_id)
        if line is None:
            raise JournalLineNotFoundError(str(journal_line_id))
        entry_status = JournalEntryStatus(line.entry.status)
        if entry_status != JournalEntryStatus.POSTED:
            raise InvalidStateError(
                "journal entry", entry_status.value, "match",
                detail="only posted lines can be matched",
            )
        if self._line_is_matched(journal_line_id):
            raise InvalidStateError(
                "journal line", MatchStatus.MATCHED.value, "match",
                detail="journal line is already matched",
            )

        self._apply_match(txn, journal_line_id, actor_id)
        self._refresh_counters(reconciliation)

        logger.info(
            "transaction_matched",
            extra={
                "reconciliation_id": str(reconciliation_id),
                "bank_transaction_id": str(bank_transaction_id),
                "journal_line_id": str(journal_line_id),
            },
        )
        self._audit(
            "match", reconciliation.id, actor_id,
            new_values={
                "bank_transaction_id": str(bank_transaction_id),
                "journal_line_id": str(journal_line_id),
            },
        )
        return BankTransactionInfo.from_model(txn)

    def unmatch_transaction(
        self,
        reconciliation_id: UUID,
        bank_transaction_id: UUID,
        actor_id: UUID,
    ) -> BankTransactionInfo:
        reconciliation = self._get_editable(reconciliation_id, actor_id, "unmatch in")
        txn = self._get_transaction(reconciliation, bank_transaction_id)
        if not txn.is_matched:
            raise InvalidStateError("bank transaction", MatchStatus.UNMATCHED.value, "unmatch")

        old_line_id = txn.matched_journal_line_id
        txn.match_status = MatchStatus.UNMATCHED
        txn.matched_journal_line_id = None
        txn.matched_at = None
        txn.matched_by_id = None
        self._session.flush()
        self._refresh_counters(reconciliation)

        logger.info(
            "transaction_unmatched",
            extra={
                "reconciliation_id": str(reconciliation_id),
                "bank_transaction_id": str(bank_transaction_id),
            },
        )
        self._audit(
            "unmatch", reconciliation.id, actor_id,
            old_values={"journal_line_id": str(old_line_id)},
        )
        return BankTransactionInfo.from_model(txn)

    def auto_match(
        self,
        reconciliation_id: UUID,
        actor_id: UUID,
        candidate_line_ids: Sequence[UUID] | None = None,
        date_tolerance_days: int | None = None,
    ) -> AutoMatchSummary:
        """
        Greedy matching of every unmatched statement line.

        ``candidate_line_ids`` limits the search to those journal lines, in
        the given order; already matched or unposted lines among them are
        ignored.  Without it, the posted unmatched lines of the bank's GL
        account dated inside the period widened by the tolerance are used.
        """
        tolerance = (
            self._policy.auto_match_date_tolerance_days
            if date_tolerance_days is None
            else date_tolerance_days
        )
        if isinstance(tolerance, bool) or not isinstance(tolerance, int) or tolerance < 0:
            raise ValidationError(
                "date_tolerance_days must be a non-negative integer",
                field="date_tolerance_days",
            )

        reconciliation = self._get_editable(reconciliation_id, actor_id, "auto-match in")

        with LogContext.bind(reconciliation_id=str(reconciliation_id)):
            bank_lines = [
                BankLine(
                    id=txn.id,
                    transaction_date=txn.transaction_date,
                    amount=txn.amount,
                    sequence=txn.import_seq,
                )
                for txn in reconciliation.transactions
                if not txn.is_matched
            ]
            candidates = self._candidates(reconciliation, candidate_line_ids, tolerance)

            result = self._matcher.match(
                bank_lines=bank_lines,
                candidates=candidates,
                date_tolerance_days=tolerance,
            )

            by_id = {txn.id: txn for txn in reconciliation.transactions}
            for proposal in result.matches:
                self._apply_match(by_id[proposal.bank_transaction_id], proposal.journal_line_id, actor_id)
            self._refresh_counters(reconciliation)

            logger.info(
                "auto_match_completed",
                extra={
                    "matched_count": result.matched_count,
                    "unmatched_count": result.unmatched_count,
                    "candidate_count": len(candidates),
                    "date_tolerance_days": tolerance,
                },
            )

        pairs = tuple(
            MatchPair(
                bank_transaction_id=p.bank_transaction_id,
                journal_line_id=p.journal_line_id,
            )
            for p in result.matches
        )
        if pairs:
            self._audit(
                "auto_match", reconciliation.id, actor_id,
                new_values={"matched_count": len(pairs)},
            )
        return AutoMatchSummary(
            matched_count=result.matched_count,
            unmatched_count=result.unmatched_count,
            matches=pairs,
        )

    # ------------------------------------------------------------------
    # Reconciling items and balances
    # ------------------------------------------------------------------

    def add_reconciling_item(
        self,
        reconciliation_id: UUID,
        item_type: ReconcilingItemType,
        amount: int,
        item_date: date,
        description: str,
        actor_id: UUID,
        reference: str | None = None,
        requires_journal_entry: bool = False,
        bank_transaction_id: UUID | None = None,
    ) -> ReconcilingItemInfo:
        try:
            item_type = ReconcilingItemType(item_type)
        except ValueError as exc:
            raise ValidationError(str(exc), field="item_type") from exc
        amount = _minor_units(amount, "amount")
        if item_type == ReconcilingItemType.ADJUSTMENT:
            if amount == 0:
                raise ValidationError("Adjustment amount must be non-zero", field="amount")
        elif amount <= 0:
            raise ValidationError(
                f"{item_type.value} amount must be greater than zero", field="amount"
            )
        if not isinstance(item_date, date):
            raise ValidationError("item_date must be a date", field="item_date")
        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required", field="description")

        reconciliation = self._get_editable(reconciliation_id, actor_id, "add items to")
        if bank_transaction_id is not None:
            self._get_transaction(reconciliation, bank_transaction_id)

        item = ReconcilingItem(
            item_type=item_type,
            amount=amount,
            item_date=item_date,
            description=description,
            reference=reference,
            requires_journal_entry=bool(requires_journal_entry),
            bank_transaction_id=bank_transaction_id,
            created_by_id=actor_id,
        )
        reconciliation.items.append(item)
        self._session.flush()

        logger.info(
            "reconciling_item_added",
            extra={
                "reconciliation_id": str(reconciliation_id),
                "item_type": item_type.value,
                "amount": amount,
            },
        )
        self._audit(
            "add_item", reconciliation.id, actor_id,
            new_values={"item_type": item_type.value, "amount": amount},
        )
        return ReconcilingItemInfo.from_model(item)

    def calculate_adjusted_balances(
        self, reconciliation_id: UUID, actor_id: UUID
    ) -> ReconciliationInfo:
        """
        Recompute and store the adjusted balances.  Finished
        reconciliations are returned as stored.
        """
        reconciliation = self._get(reconciliation_id)
        if not reconciliation.is_editable:
            return ReconciliationInfo.from_model(reconciliation)

        self._begin_work(reconciliation, actor_id)
        adjusted = self._compute_adjusted(reconciliation)
        self._store_adjusted(reconciliation, adjusted)
        self._session.flush()

        logger.info(
            "adjusted_balances_calculated",
            extra={
                "reconciliation_id": str(reconciliation_id),
                "adjusted_bank_balance": adjusted.adjusted_bank_balance,
                "adjusted_book_balance": adjusted.adjusted_book_balance,
                "difference": adjusted.difference,
            },
        )
        return ReconciliationInfo.from_model(reconciliation)

    def generate_adjusting_entries(
        self,
        reconciliation_id: UUID,
        mapping: AdjustingEntryMapping,
        actor_id: UUID,
    ) -> list[JournalEntryInfo]:
        """
        Create DRAFT adjusting entries for bank fees, interest and NSF checks
        flagged ``requires_journal_entry`` and not yet booked.  Each entry
        is linked back to its item.
        """
        reconciliation = self._get_editable(reconciliation_id, actor_id, "generate entries for")
        cash_account_id = self._bank_accounts.get_model(
            reconciliation.bank_account_id
        ).linked_account_id

        created: list[JournalEntryInfo] = []
        for item in reconciliation.items:
            if not item.requires_journal_entry or item.journal_entry_id is not None:
                continue
            item_type = ReconcilingItemType(item.item_type)
            if item_type not in _ENTRY_ITEM_TYPES:
                logger.warning(
                    "adjusting_entry_unsupported_item",
                    extra={"item_id": str(item.id), "item_type": item_type.value},
                )
                continue

            debit_account, credit_account = self._adjusting_accounts(
                item_type, mapping, cash_account_id
            )
            entry = self._journal.create_entry(
                entry_date=item.item_date,
                description=f"Bank reconciliation: {item.description}",
                lines=[
                    LineSpec(account_id=debit_account, direction=LineDirection.DEBIT, amount=item.amount),
                    LineSpec(account_id=credit_account, direction=LineDirection.CREDIT, amount=item.amount),
                ],
                actor_id=actor_id,
                entry_type=EntryType.ADJUSTING,
                reference=item.reference,
                source_service="reconciliation",
                source_reference_id=str(item.id),
            )
            item.journal_entry_id = entry.id
            item.updated_by_id = actor_id
            created.append(entry)

        self._session.flush()
        logger.info(
            "adjusting_entries_generated",
            extra={"reconciliation_id": str(reconciliation_id), "entry_count": len(created)},
        )
        if created:
            self._audit(
                "generate_adjusting_entries", reconciliation.id, actor_id,
                new_values={"entry_ids": [str(e.id) for e in created]},
            )
        return created

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_reconciliation(self, reconciliation_id: UUID) -> ReconciliationInfo:
        return ReconciliationInfo.from_model(self._get(reconciliation_id))

    def list_transactions(
        self, reconciliation_id: UUID, match_status: MatchStatus | None = None
    ) -> list[BankTransactionInfo]:
        reconciliation = self._get(reconciliation_id)
        return [
            BankTransactionInfo.from_model(txn)
            for txn in reconciliation.transactions
            if match_status is None or txn.match_status == MatchStatus(match_status)
        ]

    def list_items(self, reconciliation_id: UUID) -> list[ReconcilingItemInfo]:
        reconciliation = self._get(reconciliation_id)
        return [ReconcilingItemInfo.from_model(item) for item in reconciliation.items]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _candidates(
        self,
        reconciliation: Reconciliation,
        candidate_line_ids: Sequence[UUID] | None,
        tolerance: int,
    ) -> list[CandidateLine]:
        if candidate_line_ids is None:
            cash_account_id = self._bank_accounts.get_model(
                reconciliation.bank_account_id
            ).linked_account_id
            start, end = period_bounds(reconciliation.fiscal_year, reconciliation.fiscal_month)
            window = timedelta(days=tolerance)
            return [
                CandidateLine(
                    id=line.line_id,
                    entry_date=line.entry_date,
                    direction=line.direction,
                    amount=line.amount,
                )
                for line in self._journal_selector.unmatched_posted_lines(
                    cash_account_id,
                    start - window,
                    end + window,
                )
            ]

        candidates: list[CandidateLine] = []
        for line_id in candidate_line_ids:
            line = self._session.get(JournalLine, line_id)
            if line is None:
                raise JournalLineNotFoundError(str(line_id))
            entry: JournalEntry = line.entry
            if entry.status != JournalEntryStatus.POSTED or self._line_is_matched(line_id):
                logger.debug("auto_match_candidate_skipped", extra={"journal_line_id": str(line_id)})
                continue
            candidates.append(
                CandidateLine(
                    id=line.id,
                    entry_date=entry.entry_date,
                    direction=LineDirection(line.direction),
                    amount=line.amount,
                )
            )
        return candidates

    def _apply_match(self, txn: BankTransaction, journal_line_id: UUID, actor_id: UUID) -> None:
        savepoint = self._session.begin_nested()
        try:
            result = self._session.execute(
                update(BankTransaction)
                .where(
                    BankTransaction.id == txn.id,
                    BankTransaction.match_status == MatchStatus.UNMATCHED,
                )
                .values(
                    match_status=MatchStatus.MATCHED,
                    matched_journal_line_id=journal_line_id,
                    matched_at=self._clock.now(),
                    matched_by_id=actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise InvalidStateError(
                "journal line", MatchStatus.MATCHED.value, "match",
                detail="journal line was matched concurrently",
            ) from exc
        if result.rowcount == 0:
            raise InvalidStateError(
                "bank transaction", MatchStatus.MATCHED.value, "match",
                detail="statement line was matched concurrently",
            )
        self._session.refresh(txn)

    def _line_is_matched(self, journal_line_id: UUID) -> bool:
        return self._session.execute(
            select(BankTransaction.id).where(
                BankTransaction.matched_journal_line_id == journal_line_id
            )
        ).first() is not None

    def _compute_adjusted(self, reconciliation: Reconciliation) -> AdjustedBalances:
        return self._adjusted.calculate(
            statement_ending_balance=reconciliation.statement_ending_balance,
            book_ending_balance=reconciliation.book_ending_balance,
            items=[
                ReconcilingAmount(item_type=ReconcilingItemType(item.item_type), amount=item.amount)
                for item in reconciliation.items
            ],
        )

    @staticmethod
    def _store_adjusted(reconciliation: Reconciliation, adjusted: AdjustedBalances) -> None:
        reconciliation.adjusted_bank_balance = adjusted.adjusted_bank_balance
        reconciliation.adjusted_book_balance = adjusted.adjusted_book_balance

    @staticmethod
    def _adjusting_accounts(
        item_type: ReconcilingItemType,
        mapping: AdjustingEntryMapping,
        cash_account_id: UUID,
    ) -> tuple[UUID, UUID]:
        """(debit account, credit account) for an adjusting entry."""
        match item_type:
            case ReconcilingItemType.BANK_FEE:
                return mapping.fee_expense_account_id, cash_account_id
            case ReconcilingItemType.BANK_INTEREST:
                return cash_account_id, mapping.interest_income_account_id
            case ReconcilingItemType.NSF_CHECK:
                return (
                    mapping.nsf_expense_account_id or mapping.fee_expense_account_id,
                    cash_account_id,
                )
        raise ValidationError(f"No adjusting entry for {item_type.value}", field="item_type")

    def _refresh_counters(self, reconciliation: Reconciliation) -> None:
        total = len(reconciliation.transactions)
        matched = sum(1 for txn in reconciliation.transactions if txn.is_matched)
        reconciliation.total_transactions = total
        reconciliation.matched_transactions = matched
        reconciliation.unmatched_transactions = total - matched
        self._session.flush()

    def _begin_work(self, reconciliation: Reconciliation, actor_id: UUID) -> None:
        if reconciliation.status == ReconciliationStatus.DRAFT:
            reconciliation.status = ReconciliationStatus.IN_PROGRESS
            reconciliation.updated_by_id = actor_id
            logger.info(
                "reconciliation_started",
                extra={"reconciliation_id": str(reconciliation.id)},
            )
            self._audit(
                "start", reconciliation.id, actor_id,
                old_values={"status": ReconciliationStatus.DRAFT.value},
                new_values={"status": ReconciliationStatus.IN_PROGRESS.value},
            )

    def _get_editable(self, reconciliation_id: UUID, actor_id: UUID, action: str) -> Reconciliation:
        reconciliation = self._get(reconciliation_id)
        if not reconciliation.is_editable:
            raise InvalidStateError("reconciliation", _status_value(reconciliation), action)
        self._begin_work(reconciliation, actor_id)
        return reconciliation

    def _get(self, reconciliation_id: UUID) -> Reconciliation:
        reconciliation = self._session.get(Reconciliation, reconciliation_id)
        if reconciliation is None:
            raise ReconciliationNotFoundError(str(reconciliation_id))
        return reconciliation

    @staticmethod
    def _get_transaction(reconciliation: Reconciliation, bank_transaction_id: UUID) -> BankTransaction:
        for txn in reconciliation.transactions:
            if txn.id == bank_transaction_id:
                return txn
        raise BankTransactionNotFoundError(str(bank_transaction_id))

    def _find(self, bank_account_id: UUID, fiscal_year: int, fiscal_month: int) -> Reconciliation | None:
        return self._session.execute(
            select(Reconciliation).where(
                Reconciliation.bank_account_id == bank_account_id,
                Reconciliation.fiscal_year == fiscal_year,
                Reconciliation.fiscal_month == fiscal_month,
            )
        ).scalar_one_or_none()

    def _audit(self, action: str, entity_id: UUID, actor_id: UUID, old_values=None, new_values=None) -> None:
        self._audit_sink.record(
            AuditRecord(
                action=action,
                entity_type="reconciliation",
                entity_id=entity_id,
                actor_id=actor_id,
                old_values=old_values,
                new_values=new_values,
            )
        )
