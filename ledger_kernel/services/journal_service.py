"""
JournalService -- validation, persistence and lifecycle of journal entries.

Responsibility:
    Accepts proposed entries, enforces the double-entry balance invariant,
    stores them as DRAFT and drives DRAFT -> POSTED -> VOIDED.

Invariants enforced:
    - At least two lines, at least one debit and one credit, every amount a
      positive integer, every account existing and active.
    - Sum of debits == sum of credits, and that sum is > 0.  No tolerance.
    - The target fiscal period (derived from entry_date) exists and is OPEN
      at create time and again at post time.
    - Posting flips status with ``UPDATE ... WHERE status = 'draft'`` while
      the period row is locked; zero affected rows means another
      transaction won the race.
    - Nothing is persisted when validation fails.

Failure modes:
    - ValidationError / UnbalancedEntryError / AccountInactiveError.
    - AccountNotFoundError, PeriodNotFoundError, EntryNotFoundError.
    - PeriodClosedError: period not OPEN (and, for voids, the configured
      ClosedPeriodVoidPolicy is REJECT).
    - InvalidStateError: transition not allowed from the current status, or
      a void of an entry whose lines are matched to bank transactions.
"""

from collections.abc import Sequence
from datetime import date
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from ledger_kernel.domain.audit import AuditSink
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import JournalEntryInfo, LineSpec, PostedLineInfo
from ledger_kernel.domain.events import (
    DomainEvent,
    EventPublisher,
    LedgerEventType,
    LoggingEventPublisher,
)
from ledger_kernel.domain.policy import ClosedPeriodVoidPolicy, LedgerPolicy
from ledger_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    EntryNotFoundError,
    InvalidStateError,
    PeriodClosedError,
    UnbalancedEntryError,
    ValidationError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.fiscal_period import PeriodStatus
from ledger_kernel.models.journal import (
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    LineDirection,
)
from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal")

_EDITABLE_FIELDS = ("description", "reference", "notes", "entry_date", "lines")


def _status_value(entry: JournalEntry) -> str:
    return JournalEntryStatus(entry.status).value


class JournalService(BaseService[JournalEntry]):
    """Write side of the journal.  Returns ``JournalEntryInfo`` DTOs."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        publisher: EventPublisher | None = None,
        policy: LedgerPolicy | None = None,
    ):
        super().__init__(session, clock, audit_sink)
        self._publisher = publisher or LoggingEventPublisher()
        self._policy = policy or LedgerPolicy()
        self._periods = PeriodService(session, self._clock, self._audit_sink, self._policy)
        self._sequences = SequenceService(session)
        self._selector = JournalSelector(session)

    # ------------------------------------------------------------------
    # Create / edit / delete drafts
    # ------------------------------------------------------------------

    def create_entry(
        self,
        entry_date: date,
        description: str,
        lines: Sequence[LineSpec],
        actor_id: UUID,
        entry_type: EntryType = EntryType.MANUAL,
        reference: str | None = None,
        notes: str | None = None,
        source_service: str | None = None,
        source_reference_id: str | None = None,
    ) -> JournalEntryInfo:
        """Validate and store a new entry in DRAFT."""
        description = self._validate_description(description)
        try:
            entry_type = EntryType(entry_type)
        except ValueError as exc:
            raise ValidationError(str(exc), field="entry_type") from exc
        if not isinstance(entry_date, date):
            raise ValidationError("entry_date must be a date", field="entry_date")

        validated = self._validate_lines(lines)
        self._periods.require_open(entry_date.year, entry_date.month)

        entry = JournalEntry(
            entry_number=self._sequences.next_entry_number(entry_date.year),
            entry_date=entry_date,
            fiscal_year=entry_date.year,
            fiscal_month=entry_date.month,
            description=description,
            reference=reference,
            notes=notes,
            entry_type=entry_type,
            status=JournalEntryStatus.DRAFT,
            source_service=source_service,
            source_reference_id=source_reference_id,
            created_by_id=actor_id,
        )
        entry.lines = [
            JournalLine(
                account_id=spec.account_id,
                direction=spec.direction,
                amount=spec.amount,
                memo=spec.memo,
                line_seq=seq,
            )
            for seq, spec in enumerate(validated)
        ]
        self.session.add(entry)
        self.session.flush()

        with LogContext.bind(entry_id=str(entry.id)):
            logger.info(
                "journal_entry_created",
                extra={
                    "entry_number": entry.entry_number,
                    "entry_type": entry_type.value,
                    "line_count": len(validated),
                    "total_debits": entry.total_debits,
                },
            )
        self._audit(
            "create", "journal_entry", entry.id, actor_id,
            new_values={
                "entry_number": entry.entry_number,
                "status": JournalEntryStatus.DRAFT.value,
                "total": entry.total_debits,
            },
        )
        return JournalEntryInfo.from_model(entry)

    def update_draft(self, entry_id: UUID, actor_id: UUID, **changes) -> JournalEntryInfo:
        """
        Edit a DRAFT entry.  Accepts description, reference, notes,
        entry_date and lines (a full replacement).
        """
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown journal entry fields: {sorted(unknown)}")

        entry = self._get(entry_id)
        if not entry.is_draft:
            raise InvalidStateError("journal entry", _status_value(entry), "edit")

        if "description" in changes:
            changes["description"] = self._validate_description(changes["description"])

        new_date = changes.get("entry_date", entry.entry_date)
        if not isinstance(new_date, date):
            raise ValidationError("entry_date must be a date", field="entry_date")
        self._periods.require_open(new_date.year, new_date.month)

        validated = None
        if "lines" in changes:
            validated = self._validate_lines(changes["lines"])

        old_values = {k: getattr(entry, k) for k in changes if k != "lines"}
        for key in ("description", "reference", "notes"):
            if key in changes:
                setattr(entry, key, changes[key])
        if "entry_date" in changes:
            entry.entry_date = new_date
            entry.fiscal_year = new_date.year
            entry.fiscal_month = new_date.month
        if validated is not None:
            entry.lines = [
                JournalLine(
                    account_id=spec.account_id,
                    direction=spec.direction,
                    amount=spec.amount,
                    memo=spec.memo,
                    line_seq=seq,
                )
                for seq, spec in enumerate(validated)
            ]
        entry.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "journal_entry_updated",
            extra={"entry_id": str(entry.id), "fields": sorted(changes)},
        )
        self._audit(
            "update", "journal_entry", entry.id, actor_id,
            old_values=old_values,
            new_values={k: v for k, v in changes.items() if k != "lines"},
        )
        return JournalEntryInfo.from_model(entry)

    def delete_draft(self, entry_id: UUID, actor_id: UUID) -> None:
        entry = self._get(entry_id)
        if not entry.is_draft:
            raise InvalidStateError("journal entry", _status_value(entry), "delete")

        entry_number = entry.entry_number
        self.session.delete(entry)
        self.session.flush()

        logger.info(
            "journal_entry_deleted",
            extra={"entry_id": str(entry_id), "entry_number": entry_number},
        )
        self._audit(
            "delete", "journal_entry", entry_id, actor_id,
            old_values={"entry_number": entry_number, "status": JournalEntryStatus.DRAFT.value},
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def post(self, entry_id: UUID, actor_id: UUID) -> JournalEntryInfo:
        """
        DRAFT -> POSTED.

        The period row is locked for the rest of the transaction, the
        balance is re-validated and the status flips only if the row is
        still DRAFT in the database.
        """
        entry = self._get(entry_id)
        if not entry.is_draft:
            raise InvalidStateError("journal entry", _status_value(entry), "post")

        self._periods.require_open(entry.fiscal_year, entry.fiscal_month, for_update=True)
        self._check_balance(entry.lines)

        now = self._clock.now()
        result = self.session.execute(
            update(JournalEntry)
            .where(
                JournalEntry.id == entry_id,
                JournalEntry.status == JournalEntryStatus.DRAFT,
            )
            .values(
                status=JournalEntryStatus.POSTED,
                posted_at=now,
                posted_by_id=actor_id,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning("journal_post_lost_race", extra={"entry_id": str(entry_id)})
            raise InvalidStateError(
                "journal entry", JournalEntryStatus.DRAFT.value, "post",
                detail="entry was modified concurrently",
            )
        self.session.refresh(entry)

        with LogContext.bind(entry_id=str(entry.id)):
            logger.info(
                "journal_entry_posted",
                extra={
                    "entry_number": entry.entry_number,
                    "period": f"{entry.fiscal_year}-{entry.fiscal_month:02d}",
                    "total_debits": entry.total_debits,
                },
            )
        self._audit(
            "post", "journal_entry", entry.id, actor_id,
            old_values={"status": JournalEntryStatus.DRAFT.value},
            new_values={"status": JournalEntryStatus.POSTED.value},
        )
        self._publisher.publish(
            DomainEvent(
                event_type=LedgerEventType.ENTRY_POSTED,
                aggregate_id=entry.id,
                occurred_at=now,
                actor_id=actor_id,
                payload={
                    "entry_number": entry.entry_number,
                    "fiscal_year": entry.fiscal_year,
                    "fiscal_month": entry.fiscal_month,
                    "amount": entry.total_debits,
                },
            )
        )
        return JournalEntryInfo.from_model(entry)

    def void(self, entry_id: UUID, reason: str, actor_id: UUID) -> JournalEntryInfo:
        """
        POSTED -> VOIDED.  No reversing entry is generated; balance
        aggregation ignores voided entries.
        """
        entry = self._get(entry_id)
        if not entry.is_posted:
            raise InvalidStateError("journal entry", _status_value(entry), "void")

        reason = (reason or "").strip()
        minimum = self._policy.min_void_reason_length
        if len(reason) < minimum:
            raise ValidationError(
                f"Void reason must be at least {minimum} characters", field="reason"
            )

        # Matched lines must be unmatched before their entry can be voided.
        matched = self._selector.matched_line_count(entry_id)
        if matched:
            logger.warning(
                "journal_void_matched_lines_rejected",
                extra={"entry_id": str(entry_id), "matched_lines": matched},
            )
            raise InvalidStateError(
                "journal entry", JournalEntryStatus.POSTED.value, "void",
                detail=f"{matched} line(s) matched to bank transactions; unmatch them first",
            )

        period = self._periods.get_period_for_update(entry.fiscal_year, entry.fiscal_month)
        if (
            not period.is_open
            and self._policy.closed_period_void_policy == ClosedPeriodVoidPolicy.REJECT
        ):
            logger.warning(
                "journal_void_in_closed_period_rejected",
                extra={"entry_id": str(entry_id), "period": period.period_code},
            )
            raise PeriodClosedError(
                entry.fiscal_year, entry.fiscal_month, PeriodStatus(period.status).value
            )

        now = self._clock.now()
        result = self.session.execute(
            update(JournalEntry)
            .where(
                JournalEntry.id == entry_id,
                JournalEntry.status == JournalEntryStatus.POSTED,
            )
            .values(
                status=JournalEntryStatus.VOIDED,
                voided_at=now,
                voided_by_id=actor_id,
                void_reason=reason,
                updated_by_id=actor_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise InvalidStateError(
                "journal entry", JournalEntryStatus.POSTED.value, "void",
                detail="entry was modified concurrently",
            )
        self.session.refresh(entry)

        logger.info(
            "journal_entry_voided",
            extra={
                "entry_id": str(entry.id),
                "entry_number": entry.entry_number,
                "period_open": period.is_open,
            },
        )
        self._audit(
            "void", "journal_entry", entry.id, actor_id,
            old_values={"status": JournalEntryStatus.POSTED.value},
            new_values={"status": JournalEntryStatus.VOIDED.value, "reason": reason},
        )
        self._publisher.publish(
            DomainEvent(
                event_type=LedgerEventType.ENTRY_VOIDED,
                aggregate_id=entry.id,
                occurred_at=now,
                actor_id=actor_id,
                payload={"entry_number": entry.entry_number, "reason": reason},
            )
        )
        return JournalEntryInfo.from_model(entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: UUID) -> JournalEntryInfo:
        return JournalEntryInfo.from_model(self._get(entry_id))

    def list_entries(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        status: JournalEntryStatus | None = None,
        entry_type: EntryType | None = None,
    ) -> list[JournalEntryInfo]:
        return self._selector.list_entries(date_from, date_to, status, entry_type)

    def list_unmatched_posted_lines(
        self, account_id: UUID, date_from: date, date_to: date
    ) -> list[PostedLineInfo]:
        return self._selector.unmatched_posted_lines(account_id, date_from, date_to)

    def count_drafts(self, fiscal_year: int, fiscal_month: int) -> int:
        return self._selector.count_drafts(fiscal_year, fiscal_month)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_description(description: str | None) -> str:
        description = (description or "").strip()
        if not description:
            raise ValidationError("Description is required", field="description")
        return description

    def _validate_lines(self, lines: Sequence[LineSpec]) -> list[LineSpec]:
        lines = list(lines or ())
        if len(lines) < 2:
            raise ValidationError("Journal entry must have at least 2 lines", field="lines")

        validated: list[LineSpec] = []
        for index, spec in enumerate(lines):
            amount = spec.amount
            if isinstance(amount, bool) or not isinstance(amount, int):
                raise ValidationError(
                    f"Line {index + 1}: amount must be an integer in minor units",
                    field="amount",
                )
            if amount <= 0:
                raise ValidationError(
                    f"Line {index + 1}: amount must be greater than zero", field="amount"
                )
            try:
                direction = LineDirection(spec.direction)
            except ValueError as exc:
                raise ValidationError(
                    f"Line {index + 1}: {exc}", field="direction"
                ) from exc

            account = self.session.get(Account, spec.account_id)
            if account is None:
                raise AccountNotFoundError(str(spec.account_id))
            if not account.is_active:
                raise AccountInactiveError(str(spec.account_id))

            validated.append(
                LineSpec(
                    account_id=spec.account_id,
                    direction=direction,
                    amount=amount,
                    memo=spec.memo,
                )
            )

        directions = {spec.direction for spec in validated}
        if directions != {LineDirection.DEBIT, LineDirection.CREDIT}:
            raise ValidationError(
                "Journal entry must have at least one debit and one credit line",
                field="lines",
            )

        self._check_balance(validated)
        return validated

    @staticmethod
    def _check_balance(lines) -> None:
        debits = sum(l.amount for l in lines if l.direction == LineDirection.DEBIT)
        credits = sum(l.amount for l in lines if l.direction == LineDirection.CREDIT)
        if debits != credits or debits <= 0:
            logger.warning(
                "journal_entry_unbalanced",
                extra={"total_debits": debits, "total_credits": credits},
            )
            raise UnbalancedEntryError(debits, credits)

    def _get(self, entry_id: UUID) -> JournalEntry:
        entry = self.session.get(JournalEntry, entry_id)
        if entry is None:
            raise EntryNotFoundError(str(entry_id))
        return entry
