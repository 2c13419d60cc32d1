"""
Module: ledger_kernel.models.bank
Responsibility: ORM persistence for bank accounts, monthly bank
    reconciliations, imported statement lines and reconciling items.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one reconciliation per (bank_account_id, fiscal_year,
      fiscal_month) (uq_reconciliation_period).
    - A journal line is matched by at most one bank transaction across the
      whole store (uq_bank_txn_matched_line).
    - Bank transaction amounts are signed, non-zero integers: positive is
      money into the account, negative is money out.
    - Reconciliation status moves DRAFT -> IN_PROGRESS -> COMPLETED ->
      APPROVED.  COMPLETED and APPROVED reconciliations are read-only.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
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


class BankAccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CLOSED = "closed"


class ReconciliationStatus(str, Enum):
    DRAFT = "draft"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"


class MatchStatus(str, Enum):
    UNMATCHED = "unmatched"
    MATCHED = "matched"


class ReconcilingItemType(str, Enum):
    """Timing differences and book-side corrections found while reconciling."""

    OUTSTANDING_CHECK = "outstanding_check"
    DEPOSIT_IN_TRANSIT = "deposit_in_transit"
    BANK_FEE = "bank_fee"
    BANK_INTEREST = "bank_interest"
    NSF_CHECK = "nsf_check"
    ADJUSTMENT = "adjustment"


class BankAccount(TrackedBase):
    """A bank account linked to the GL cash account it reconciles against."""

    __tablename__ = "bank_accounts"
    __table_args__ = (
        UniqueConstraint("bank_name", "account_number", name="uq_bank_account_number"),
    )

    linked_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    bank_name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[BankAccountStatus] = mapped_column(
        String(10),
        default=BankAccountStatus.ACTIVE,
        nullable=False,
    )

    last_reconciled_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_reconciled_balance: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    def __repr__(self) -> str:
        return f"<BankAccount {self.bank_name} {self.account_number}>"

    @property
    def is_active(self) -> bool:
        return self.status == BankAccountStatus.ACTIVE


class Reconciliation(TrackedBase):
    """Monthly reconciliation of one bank account's statement to the book."""

    __tablename__ = "bank_reconciliations"
    __table_args__ = (
        UniqueConstraint(
            "bank_account_id", "fiscal_year", "fiscal_month",
            name="uq_reconciliation_period",
        ),
        Index("idx_reconciliation_status", "status"),
    )

    bank_account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_accounts.id"),
        nullable=False,
    )
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_month: Mapped[int] = mapped_column(Integer, nullable=False)

    statement_ending_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    book_ending_balance: Mapped[int] = mapped_column(BigInteger, nullable=False)
    adjusted_bank_balance: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    adjusted_book_balance: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    total_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    matched_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unmatched_transactions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    status: Mapped[ReconciliationStatus] = mapped_column(
        String(20),
        default=ReconciliationStatus.DRAFT,
        nullable=False,
    )

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(2000), nullable=True)

    transactions: Mapped[list["BankTransaction"]] = relationship(
        back_populates="reconciliation",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BankTransaction.import_seq",
    )

    items: Mapped[list["ReconcilingItem"]] = relationship(
        back_populates="reconciliation",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ReconcilingItem.item_date",
    )

    def __repr__(self) -> str:
        return (
            f"<Reconciliation {self.bank_account_id} "
            f"{self.fiscal_year}-{self.fiscal_month:02d} [{self.status}]>"
        )

    @property
    def is_editable(self) -> bool:
        return self.status in (ReconciliationStatus.DRAFT, ReconciliationStatus.IN_PROGRESS)


class BankTransaction(Base):
    """One line of an imported bank statement."""

    __tablename__ = "bank_transactions"
    __table_args__ = (
        UniqueConstraint("matched_journal_line_id", name="uq_bank_txn_matched_line"),
        Index("idx_bank_txn_reconciliation", "reconciliation_id"),
        Index("idx_bank_txn_match_status", "match_status"),
    )

    reconciliation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_reconciliations.id", ondelete="CASCADE"),
        nullable=False,
    )

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Signed minor units: positive deposit, negative withdrawal
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Position in the import stream, used as the stable tie-breaker
    import_seq: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    match_status: Mapped[MatchStatus] = mapped_column(
        String(10),
        default=MatchStatus.UNMATCHED,
        nullable=False,
    )
    matched_journal_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_lines.id"),
        nullable=True,
    )
    matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    matched_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reconciliation: Mapped[Reconciliation] = relationship(back_populates="transactions")

    def __repr__(self) -> str:
        return f"<BankTransaction {self.transaction_date} {self.amount} [{self.match_status}]>"

    @property
    def is_matched(self) -> bool:
        return self.match_status == MatchStatus.MATCHED


class ReconcilingItem(TrackedBase):
    """A timing difference or correction explaining bank vs book."""

    __tablename__ = "reconciling_items"
    __table_args__ = (
        Index("idx_reconciling_item_reconciliation", "reconciliation_id"),
    )

    reconciliation_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("bank_reconciliations.id", ondelete="CASCADE"),
        nullable=False,
    )

    item_type: Mapped[ReconcilingItemType] = mapped_column(String(30), nullable=False)

    # Positive for every type except ADJUSTMENT, which is signed
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    item_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    requires_journal_entry: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Statement line this item accounts for, if any
    bank_transaction_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("bank_transactions.id"),
        nullable=True,
    )
    journal_entry_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("journal_entries.id"),
        nullable=True,
    )

    reconciliation: Mapped[Reconciliation] = relationship(back_populates="items")

    def __repr__(self) -> str:
        return f"<ReconcilingItem {self.item_type} {self.amount}>"
