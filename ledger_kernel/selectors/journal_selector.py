"""
Module: ledger_kernel.selectors.journal_selector
Responsibility: Read-only queries over journal entries and lines.
Architecture position: Kernel > Selectors.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.dtos import JournalEntryInfo, PostedLineInfo
from ledger_kernel.models.bank import BankTransaction
from ledger_kernel.models.journal import (
    EntryType,
    JournalEntry,
    JournalEntryStatus,
    JournalLine,
    LineDirection,
)
from ledger_kernel.selectors.base import BaseSelector


class JournalSelector(BaseSelector[JournalEntry]):

    def get_entry(self, entry_id: UUID) -> JournalEntryInfo | None:
        entry = self.session.get(JournalEntry, entry_id)
        return JournalEntryInfo.from_model(entry) if entry else None

    def list_entries(
        self,
        date_from: date | None = None,
        date_to: date | None = None,
        status: JournalEntryStatus | None = None,
        entry_type: EntryType | None = None,
    ) -> list[JournalEntryInfo]:
        """Entries filtered by date range, status and type, oldest first."""
        query = select(JournalEntry)
        if date_from is not None:
            query = query.where(JournalEntry.entry_date >= date_from)
        if date_to is not None:
            query = query.where(JournalEntry.entry_date <= date_to)
        if status is not None:
            query = query.where(JournalEntry.status == status)
        if entry_type is not None:
            query = query.where(JournalEntry.entry_type == entry_type)
        query = query.order_by(JournalEntry.entry_date, JournalEntry.entry_number)

        return [
            JournalEntryInfo.from_model(e)
            for e in self.session.execute(query).scalars().all()
        ]

    def count_drafts(self, fiscal_year: int, fiscal_month: int) -> int:
        return self.session.execute(
            select(func.count(JournalEntry.id)).where(
                JournalEntry.fiscal_year == fiscal_year,
                JournalEntry.fiscal_month == fiscal_month,
                JournalEntry.status == JournalEntryStatus.DRAFT,
            )
        ).scalar_one()

    def unmatched_posted_lines(
        self,
        account_id: UUID,
        date_from: date,
        date_to: date,
    ) -> list[PostedLineInfo]:
        """
        Posted lines on ``account_id`` dated within [date_from, date_to] that
        no bank transaction has claimed yet.  Ordered by entry date, entry
        number and line position so callers get a stable candidate order.
        """
        matched = select(BankTransaction.matched_journal_line_id).where(
            BankTransaction.matched_journal_line_id.is_not(None)
        )
        query = (
            select(JournalLine, JournalEntry)
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.status == JournalEntryStatus.POSTED,
                JournalEntry.entry_date >= date_from,
                JournalEntry.entry_date <= date_to,
                JournalLine.id.not_in(matched),
            )
            .order_by(JournalEntry.entry_date, JournalEntry.entry_number, JournalLine.line_seq)
        )
        return [
            PostedLineInfo(
                line_id=line.id,
                entry_id=entry.id,
                entry_number=entry.entry_number,
                entry_date=entry.entry_date,
                account_id=line.account_id,
                direction=LineDirection(line.direction),
                amount=line.amount,
                reference=entry.reference,
                description=entry.description,
            )
            for line, entry in self.session.execute(query).all()
        ]

    def has_posted_lines(self, account_id: UUID) -> bool:
        """True if any posted or voided entry has a line on the account."""
        count = self.session.execute(
            select(func.count(JournalLine.id))
            .join(JournalEntry, JournalLine.journal_entry_id == JournalEntry.id)
            .where(
                JournalLine.account_id == account_id,
                JournalEntry.status != JournalEntryStatus.DRAFT,
            )
        ).scalar_one()
        return count > 0

    def matched_line_count(self, entry_id: UUID) -> int:
        """Lines of the entry currently claimed by a bank transaction."""
        return self.session.execute(
            select(func.count(BankTransaction.id))
            .join(JournalLine, BankTransaction.matched_journal_line_id == JournalLine.id)
            .where(JournalLine.journal_entry_id == entry_id)
        ).scalar_one()
