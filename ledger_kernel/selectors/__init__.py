"""Read-only selectors for the ledger kernel."""

from ledger_kernel.selectors.journal_selector import JournalSelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector, PeriodMovement

__all__ = ["JournalSelector", "LedgerSelector", "PeriodMovement"]
