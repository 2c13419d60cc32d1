"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import (
    Account,
    AccountType,
    NormalBalance,
    natural_normal_balance,
)
from ledger_kernel.models.account_balance import AccountBalance
from ledger_kernel.models.bank import (
    BankAccount,
    BankAccountStatus,
    BankTransaction,
    MatchStatus,
    Reconciliation,
    ReconciliationStatus,
    ReconcilingItem,
    ReconcilingItemType,
)
from ledger_kernel.models.fiscal_period import (
    FiscalPeriod,
    PeriodStatus,
    format_period_code,
    previous_period,
)
from ledger_kernel.models.journal import (
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    LineDirection,
)
from ledger_kernel.models.sequence import SequenceCounter

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "natural_normal_balance",
    "AccountBalance",
    "BankAccount",
    "BankAccountStatus",
    "BankTransaction",
    "MatchStatus",
    "Reconciliation",
    "ReconciliationStatus",
    "ReconcilingItem",
    "ReconcilingItemType",
    "FiscalPeriod",
    "PeriodStatus",
    "format_period_code",
    "previous_period",
    "EntryType",
    "JournalEntry",
    "JournalEntryStatus",
    "JournalLine",
    "LineDirection",
    "SequenceCounter",
]
