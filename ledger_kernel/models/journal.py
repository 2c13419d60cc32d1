"""
Module: ledger_kernel.models.journal
Responsibility: ORM persistence for journal entries and their lines, the
    single source of financial truth.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Per entry: sum of debit amounts == sum of credit amounts, and the sum
      is > 0.  Checked by JournalService on create, edit and post; exposed
      here read-side via is_balanced.
    - Every line amount is a positive integer in minor units.
    - Status moves DRAFT -> POSTED -> VOIDED only.  A VOIDED entry is never
      posted again.
    - entry_number is unique (JE-YYYY-NNNNNN).

Audit relevance:
    posted_by/at and voided_by/at/void_reason record who moved the entry
    through its lifecycle.  Voiding keeps the rows; balance aggregation
    filters them out by status.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_kernel.db.base import Base, TrackedBase, UUIDString


class JournalEntryStatus(str, Enum):
    """Lifecycle status of a journal entry (DRAFT -> POSTED -> VOIDED)."""

    DRAFT = "draft"
    POSTED = "posted"
    VOIDED = "voided"


class EntryType(str, Enum):
    MANUAL = "manual"
    SYSTEM = "system"
    RECURRING = "recurring"
    ADJUSTING = "adjusting"
    CLOSING = "closing"


class LineDirection(str, Enum):
    """Which side of the entry a line is on.  Amounts are always positive."""

    DEBIT = "debit"
    CREDIT = "credit"


class JournalEntry(TrackedBase):
    """
    Journal entry header, the atomic unit of double-entry accounting.

    Contract:
        fiscal_year/fiscal_month are derived from entry_date and must name an
        existing fiscal period.  Once POSTED the header and its lines are no
        longer edited; the only further transition is VOIDED.
    """

    __tablename__ = "journal_entries"
    __table_args__ = (
        UniqueConstraint("entry_number", name="uq_journal_entry_number"),
        Index("idx_journal_period", "fiscal_year", "fiscal_month"),
        Index("idx_journal_entry_date", "entry_date"),
        Index("idx_journal_status", "status"),
    )

    entry_number: Mapped[str] = mapped_column(String(20), nullable=False)

    # Accounting date (drives period assignment)
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_month: Mapped[int] = mapped_column(Integer, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    entry_type: Mapped[EntryType] = mapped_column(
        String(20),
        default=EntryType.MANUAL,
        nullable=False,
    )

    status: Mapped[JournalEntryStatus] = mapped_column(
        String(10),
        default=JournalEntryStatus.DRAFT,
        nullable=False,
    )

    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    voided_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    void_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Originating service for system-generated entries
    source_service: Mapped[str | None] = mapped_column(String(100), nullable=True)
    source_reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    lines: Mapped[list["JournalLine"]] = relationship(
        back_populates="entry",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="JournalLine.line_seq",
    )

    def __repr__(self) -> str:
        return f"<JournalEntry {self.entry_number} status={self.status}>"

    @property
    def is_draft(self) -> bool:
        return self.status == JournalEntryStatus.DRAFT

    @property
    def is_posted(self) -> bool:
        return self.status == JournalEntryStatus.POSTED

    @property
    def is_voided(self) -> bool:
        return self.status == JournalEntryStatus.VOIDED

    @property
    def total_debits(self) -> int:
        return sum(line.amount for line in self.lines if line.is_debit)

    @property
    def total_credits(self) -> int:
        return sum(line.amount for line in self.lines if not line.is_debit)

    @property
    def is_balanced(self) -> bool:
        """Debits equal credits and the entry moves a positive amount."""
        debits = self.total_debits
        return debits == self.total_credits and debits > 0


class JournalLine(Base):
    """A single debit or credit against one account."""

    __tablename__ = "journal_lines"
    __table_args__ = (
        Index("idx_line_entry", "journal_entry_id"),
        Index("idx_line_account", "account_id"),
    )

    journal_entry_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )

    direction: Mapped[LineDirection] = mapped_column(String(10), nullable=False)

    # Positive amount in minor units
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    memo: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Order within the entry
    line_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    entry: Mapped[JournalEntry] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<JournalLine {self.direction} {self.amount}>"

    @property
    def is_debit(self) -> bool:
        return self.direction == LineDirection.DEBIT

    @property
    def signed_amount(self) -> int:
        """Positive for debits, negative for credits."""
        return self.amount if self.is_debit else -self.amount
