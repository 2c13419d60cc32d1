"""
Module: ledger_kernel.models.account_balance
Responsibility: Derived per-account, per-period balance snapshot.
Architecture position: Kernel > Models.

Invariants enforced:
    - One row per (account_id, fiscal_year, fiscal_month).
    - Rows are derived, never edited: BalanceService replaces every field on
      each recalculation, so recalculating twice without new postings
      produces identical rows.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import Base, UUIDString


class AccountBalance(Base):
    __tablename__ = "account_balances"
    __table_args__ = (
        UniqueConstraint(
            "account_id", "fiscal_year", "fiscal_month",
            name="uq_balance_account_period",
        ),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("accounts.id"),
        nullable=False,
    )
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    fiscal_month: Mapped[int] = mapped_column(Integer, nullable=False)

    opening_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    debit_total: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    credit_total: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    closing_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<AccountBalance {self.account_id} "
            f"{self.fiscal_year}-{self.fiscal_month:02d} closing={self.closing_balance}>"
        )
