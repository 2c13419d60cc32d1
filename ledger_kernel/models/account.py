"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for the chart of accounts.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - code is unique across the directory (uq_account_code).
    - code, account_type, normal_balance and parent_id are structural and
      frozen once a posted journal line references the account.  The guard
      lives in AccountService; this model only declares the columns.
    - Accounts referenced by journal lines are never deleted, only
      deactivated.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Classification of a ledger account."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    COGS = "cogs"
    EXPENSE = "expense"


class NormalBalance(str, Enum):
    """Side on which an account's balance naturally increases."""

    DEBIT = "debit"
    CREDIT = "credit"


def natural_normal_balance(account_type: AccountType) -> NormalBalance:
    """Normal balance side implied by the account type.

    Contra accounts may deliberately deviate; AccountService only warns.
    """
    match AccountType(account_type):
        case AccountType.ASSET | AccountType.COGS | AccountType.EXPENSE:
            return NormalBalance.DEBIT
        case AccountType.LIABILITY | AccountType.EQUITY | AccountType.REVENUE:
            return NormalBalance.CREDIT


class Account(TrackedBase):
    """A ledger account in the chart of accounts."""

    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
        Index("idx_account_parent", "parent_id"),
    )

    # Hierarchical code, e.g. "1020"
    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    parent_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=True,
    )

    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    @property
    def is_credit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.CREDIT
