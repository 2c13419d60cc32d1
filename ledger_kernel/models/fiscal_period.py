"""
Module: ledger_kernel.models.fiscal_period
Responsibility: ORM persistence for the monthly fiscal period lifecycle.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One row per (fiscal_year, fiscal_month) (uq_period_year_month).
    - Status moves OPEN -> CLOSED -> LOCKED; CLOSED -> OPEN only via reopen.
      LOCKED is terminal.  Transitions are performed by PeriodService under a
      row lock.

Audit relevance:
    closed/reopened/locked actor and timestamp columns record every
    transition; reopen_reason is mandatory when reopening.
"""

import calendar
from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class PeriodStatus(str, Enum):
    """Lifecycle status of a fiscal period."""

    OPEN = "open"
    CLOSED = "closed"
    LOCKED = "locked"


def format_period_code(fiscal_year: int, fiscal_month: int) -> str:
    return f"{fiscal_year}-{fiscal_month:02d}"


def previous_period(fiscal_year: int, fiscal_month: int) -> tuple[int, int]:
    """(year, month) of the calendar month before the given one."""
    if fiscal_month == 1:
        return fiscal_year - 1, 12
    return fiscal_year, fiscal_month - 1


def period_bounds(fiscal_year: int, fiscal_month: int) -> tuple[date, date]:
    """First and last calendar day of the period."""
    last_day = calendar.monthrange(fiscal_year, fiscal_month)[1]
    return date(fiscal_year, fiscal_month, 1), date(fiscal_year, fiscal_month, last_day)


class FiscalPeriod(TrackedBase):
    """A fiscal month and its posting status."""

    __tablename__ = "fiscal_periods"
    __table_args__ = (
        UniqueConstraint("fiscal_year", "fiscal_month", name="uq_period_year_month"),
        Index("idx_period_status", "status"),
    )

    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)

    fiscal_month: Mapped[int] = mapped_column(Integer, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(10),
        default=PeriodStatus.OPEN,
        nullable=False,
    )

    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reopened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reopened_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reopen_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<FiscalPeriod {self.period_code} [{self.status}]>"

    @property
    def period_code(self) -> str:
        return format_period_code(self.fiscal_year, self.fiscal_month)

    @property
    def start_date(self) -> date:
        return period_bounds(self.fiscal_year, self.fiscal_month)[0]

    @property
    def end_date(self) -> date:
        return period_bounds(self.fiscal_year, self.fiscal_month)[1]

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    @property
    def is_locked(self) -> bool:
        return self.status == PeriodStatus.LOCKED
