"""
DTOs -- Immutable data transfer objects.

Responsibility:
    Frozen dataclasses that cross the service boundary: line specifications
    coming in, and read-only snapshots of accounts, entries, periods,
    balances and reconciliations going out.  Services never hand ORM
    instances to callers.

Architecture position:
    Kernel > Domain.  ``from_model()`` class methods are boundary converters
    invoked only from services and selectors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import TYPE_CHECKING
from uuid import UUID

from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.models.bank import (
    BankAccountStatus,
    MatchStatus,
    ReconciliationStatus,
    ReconcilingItemType,
)
from ledger_kernel.models.fiscal_period import PeriodStatus, format_period_code
from ledger_kernel.models.journal import EntryType, JournalEntryStatus, LineDirection

if TYPE_CHECKING:
    from ledger_kernel.models.account import Account
    from ledger_kernel.models.account_balance import AccountBalance
    from ledger_kernel.models.bank import (
        BankAccount,
        BankTransaction,
        Reconciliation,
        ReconcilingItem,
    )
    from ledger_kernel.models.fiscal_period import FiscalPeriod
    from ledger_kernel.models.journal import JournalEntry, JournalLine


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AccountInfo:
    id: UUID
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    parent_id: UUID | None
    description: str | None
    is_active: bool

    @classmethod
    def from_model(cls, model: Account) -> AccountInfo:
        return cls(
            id=model.id,
            code=model.code,
            name=model.name,
            account_type=AccountType(model.account_type),
            normal_balance=NormalBalance(model.normal_balance),
            parent_id=model.parent_id,
            description=model.description,
            is_active=model.is_active,
        )


# ---------------------------------------------------------------------------
# Journal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LineSpec:
    """
    One requested journal line.

    Validation (positive integer amount, known active account) happens in
    JournalService so that failures surface as ValidationError.
    """

    account_id: UUID
    direction: LineDirection
    amount: int
    memo: str | None = None


@dataclass(frozen=True)
class JournalLineInfo:
    id: UUID
    journal_entry_id: UUID
    account_id: UUID
    direction: LineDirection
    amount: int
    memo: str | None
    line_seq: int

    @classmethod
    def from_model(cls, model: JournalLine) -> JournalLineInfo:
        return cls(
            id=model.id,
            journal_entry_id=model.journal_entry_id,
            account_id=model.account_id,
            direction=LineDirection(model.direction),
            amount=model.amount,
            memo=model.memo,
            line_seq=model.line_seq,
        )


@dataclass(frozen=True)
class JournalEntryInfo:
    id: UUID
    entry_number: str
    entry_date: date
    fiscal_year: int
    fiscal_month: int
    description: str
    reference: str | None
    notes: str | None
    entry_type: EntryType
    status: JournalEntryStatus
    created_by_id: UUID
    posted_by_id: UUID | None
    posted_at: datetime | None
    voided_by_id: UUID | None
    voided_at: datetime | None
    void_reason: str | None
    lines: tuple[JournalLineInfo, ...]

    @property
    def total_debits(self) -> int:
        return sum(l.amount for l in self.lines if l.direction == LineDirection.DEBIT)

    @property
    def total_credits(self) -> int:
        return sum(l.amount for l in self.lines if l.direction == LineDirection.CREDIT)

    @classmethod
    def from_model(cls, model: JournalEntry) -> JournalEntryInfo:
        return cls(
            id=model.id,
            entry_number=model.entry_number,
            entry_date=model.entry_date,
            fiscal_year=model.fiscal_year,
            fiscal_month=model.fiscal_month,
            description=model.description,
            reference=model.reference,
            notes=model.notes,
            entry_type=EntryType(model.entry_type),
            status=JournalEntryStatus(model.status),
            created_by_id=model.created_by_id,
            posted_by_id=model.posted_by_id,
            posted_at=model.posted_at,
            voided_by_id=model.voided_by_id,
            voided_at=model.voided_at,
            void_reason=model.void_reason,
            lines=tuple(
                JournalLineInfo.from_model(line)
                for line in sorted(model.lines, key=lambda x: x.line_seq)
            ),
        )


@dataclass(frozen=True)
class PostedLineInfo:
    """A posted journal line with the header fields matching needs."""

    line_id: UUID
    entry_id: UUID
    entry_number: str
    entry_date: date
    account_id: UUID
    direction: LineDirection
    amount: int
    reference: str | None
    description: str


# ---------------------------------------------------------------------------
# Periods and balances
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FiscalPeriodInfo:
    id: UUID
    fiscal_year: int
    fiscal_month: int
    status: PeriodStatus
    closed_at: datetime | None = None
    closed_by_id: UUID | None = None
    reopened_at: datetime | None = None
    reopened_by_id: UUID | None = None
    reopen_reason: str | None = None
    locked_at: datetime | None = None
    locked_by_id: UUID | None = None

    @property
    def period_code(self) -> str:
        return format_period_code(self.fiscal_year, self.fiscal_month)

    @classmethod
    def from_model(cls, model: FiscalPeriod) -> FiscalPeriodInfo:
        return cls(
            id=model.id,
            fiscal_year=model.fiscal_year,
            fiscal_month=model.fiscal_month,
            status=PeriodStatus(model.status),
            closed_at=model.closed_at,
            closed_by_id=model.closed_by_id,
            reopened_at=model.reopened_at,
            reopened_by_id=model.reopened_by_id,
            reopen_reason=model.reopen_reason,
            locked_at=model.locked_at,
            locked_by_id=model.locked_by_id,
        )


@dataclass(frozen=True)
class AccountBalanceInfo:
    account_id: UUID
    fiscal_year: int
    fiscal_month: int
    opening_balance: int
    debit_total: int
    credit_total: int
    closing_balance: int
    calculated_at: datetime

    @classmethod
    def from_model(cls, model: AccountBalance) -> AccountBalanceInfo:
        return cls(
            account_id=model.account_id,
            fiscal_year=model.fiscal_year,
            fiscal_month=model.fiscal_month,
            opening_balance=model.opening_balance,
            debit_total=model.debit_total,
            credit_total=model.credit_total,
            closing_balance=model.closing_balance,
            calculated_at=model.calculated_at,
        )


@dataclass(frozen=True)
class RecalculationResult:
    fiscal_year: int
    fiscal_month: int
    accounts_processed: int
    total_debits: int
    total_credits: int
    is_balanced: bool


@dataclass(frozen=True)
class TrialBalanceRow:
    account_id: UUID
    account_code: str
    account_name: str
    account_type: AccountType
    normal_balance: NormalBalance
    debit_total: int
    credit_total: int

    @property
    def net_balance(self) -> int:
        """Balance on the account's normal side for the period."""
        if self.normal_balance == NormalBalance.DEBIT:
            return self.debit_total - self.credit_total
        return self.credit_total - self.debit_total


@dataclass(frozen=True)
class TrialBalance:
    fiscal_year: int
    fiscal_month: int
    rows: tuple[TrialBalanceRow, ...]
    total_debits: int
    total_credits: int

    @property
    def difference(self) -> int:
        return self.total_debits - self.total_credits

    @property
    def is_balanced(self) -> bool:
        return self.total_debits == self.total_credits


@dataclass(frozen=True)
class CloseChecklist:
    """Readiness report for closing a period.  Never mutates state."""

    fiscal_year: int
    fiscal_month: int
    period_status: PeriodStatus
    previous_period_closed: bool
    draft_entries: int
    trial_balance_balanced: bool
    total_debits: int
    total_credits: int
    blockers: tuple[str, ...] = field(default_factory=tuple)

    @property
    def can_close(self) -> bool:
        return not self.blockers


# ---------------------------------------------------------------------------
# Banking and reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BankAccountInfo:
    id: UUID
    linked_account_id: UUID
    bank_name: str
    account_number: str
    status: BankAccountStatus
    last_reconciled_date: date | None
    last_reconciled_balance: int | None

    @classmethod
    def from_model(cls, model: BankAccount) -> BankAccountInfo:
        return cls(
            id=model.id,
            linked_account_id=model.linked_account_id,
            bank_name=model.bank_name,
            account_number=model.account_number,
            status=BankAccountStatus(model.status),
            last_reconciled_date=model.last_reconciled_date,
            last_reconciled_balance=model.last_reconciled_balance,
        )


@dataclass(frozen=True)
class StatementLine:
    """One row of a bank statement as supplied by the importer."""

    transaction_date: date
    amount: int
    description: str = ""
    reference: str | None = None


@dataclass(frozen=True)
class BankTransactionInfo:
    id: UUID
    reconciliation_id: UUID
    transaction_date: date
    description: str
    amount: int
    reference: str | None
    match_status: MatchStatus
    matched_journal_line_id: UUID | None

    @classmethod
    def from_model(cls, model: BankTransaction) -> BankTransactionInfo:
        return cls(
            id=model.id,
            reconciliation_id=model.reconciliation_id,
            transaction_date=model.transaction_date,
            description=model.description,
            amount=model.amount,
            reference=model.reference,
            match_status=MatchStatus(model.match_status),
            matched_journal_line_id=model.matched_journal_line_id,
        )


@dataclass(frozen=True)
class ReconcilingItemInfo:
    id: UUID
    reconciliation_id: UUID
    item_type: ReconcilingItemType
    amount: int
    item_date: date
    description: str
    reference: str | None
    requires_journal_entry: bool
    bank_transaction_id: UUID | None
    journal_entry_id: UUID | None

    @classmethod
    def from_model(cls, model: ReconcilingItem) -> ReconcilingItemInfo:
        return cls(
            id=model.id,
            reconciliation_id=model.reconciliation_id,
            item_type=ReconcilingItemType(model.item_type),
            amount=model.amount,
            item_date=model.item_date,
            description=model.description,
            reference=model.reference,
            requires_journal_entry=model.requires_journal_entry,
            bank_transaction_id=model.bank_transaction_id,
            journal_entry_id=model.journal_entry_id,
        )


@dataclass(frozen=True)
class ReconciliationInfo:
    id: UUID
    bank_account_id: UUID
    fiscal_year: int
    fiscal_month: int
    statement_ending_balance: int
    book_ending_balance: int
    adjusted_bank_balance: int | None
    adjusted_book_balance: int | None
    total_transactions: int
    matched_transactions: int
    unmatched_transactions: int
    status: ReconciliationStatus
    completed_at: datetime | None
    approved_at: datetime | None
    notes: str | None

    @property
    def difference(self) -> int | None:
        if self.adjusted_bank_balance is None or self.adjusted_book_balance is None:
            return None
        return self.adjusted_bank_balance - self.adjusted_book_balance

    @property
    def is_reconciled(self) -> bool:
        return self.difference == 0

    @classmethod
    def from_model(cls, model: Reconciliation) -> ReconciliationInfo:
        return cls(
            id=model.id,
            bank_account_id=model.bank_account_id,
            fiscal_year=model.fiscal_year,
            fiscal_month=model.fiscal_month,
            statement_ending_balance=model.statement_ending_balance,
            book_ending_balance=model.book_ending_balance,
            adjusted_bank_balance=model.adjusted_bank_balance,
            adjusted_book_balance=model.adjusted_book_balance,
            total_transactions=model.total_transactions,
            matched_transactions=model.matched_transactions,
            unmatched_transactions=model.unmatched_transactions,
            status=ReconciliationStatus(model.status),
            completed_at=model.completed_at,
            approved_at=model.approved_at,
            notes=model.notes,
        )


@dataclass(frozen=True)
class ImportResult:
    imported: int
    duplicates_skipped: int
    transaction_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class MatchPair:
    bank_transaction_id: UUID
    journal_line_id: UUID


@dataclass(frozen=True)
class AutoMatchSummary:
    matched_count: int
    unmatched_count: int
    matches: tuple[MatchPair, ...]


@dataclass(frozen=True)
class AdjustingEntryMapping:
    """GL accounts used when turning reconciling items into journal entries.

    nsf_expense_account_id falls back to fee_expense_account_id when unset.
    """

    fee_expense_account_id: UUID
    interest_income_account_id: UUID
    nsf_expense_account_id: UUID | None = None
