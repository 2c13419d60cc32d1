"""Services for the ledger kernel (write side)."""

from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.bank_account_service import BankAccountService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

__all__ = [
    "AccountService",
    "BankAccountService",
    "JournalService",
    "PeriodService",
    "SequenceService",
]
