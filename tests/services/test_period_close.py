"""
Tests for PeriodCloseService.

Covers:
- Happy path: balances stored, period CLOSED, PERIOD_CLOSED published
- A store whose posted lines no longer tie refuses to close
- Sequential-close and draft-blocking policies
- Close checklist blockers
"""

from datetime import date

import pytest
from sqlalchemy import delete

from ledger_kernel.domain.events import LedgerEventType
from ledger_kernel.domain.policy import LedgerPolicy
from ledger_kernel.exceptions import (
    InvalidStateError,
    PeriodNotFoundError,
    UnbalancedPeriodError,
)
from ledger_kernel.models.fiscal_period import PeriodStatus
from ledger_kernel.models.journal import JournalLine, LineDirection

DR = LineDirection.DEBIT
CR = LineDirection.CREDIT


class TestClosePeriod:

    def test_close_balanced_period(
        self, period_close_service, balance_service, standard_accounts, post_entry,
        current_period, test_actor_id, publisher, deterministic_clock, audit_sink,
    ):
        cash = standard_accounts["cash"]
        post_entry(date(2026, 1, 4), [(cash.id, DR, 80_000), (standard_accounts["capital"].id, CR, 80_000)])

        closed = period_close_service.close_period(2026, 1, test_actor_id)

        assert closed.status == PeriodStatus.CLOSED
        assert closed.closed_at == deterministic_clock.now()
        assert closed.closed_by_id == test_actor_id
        assert balance_service.get_account_balance(cash.id, 2026, 1).closing_balance == 80_000
        assert "close" in audit_sink.actions("fiscal_period")

        events = publisher.of_type(LedgerEventType.PERIOD_CLOSED)
        assert len(events) == 1
        assert events[0].aggregate_id == closed.id
        assert events[0].payload["total_debits"] == 80_000

    def test_close_empty_period(self, period_close_service, current_period, test_actor_id):
        closed = period_close_service.close_period(2026, 1, test_actor_id)
        assert closed.status == PeriodStatus.CLOSED

    def test_close_missing_period(self, period_close_service, test_actor_id):
        with pytest.raises(PeriodNotFoundError):
            period_close_service.close_period(2026, 9, test_actor_id)

    def test_close_twice_rejected(self, period_close_service, current_period, test_actor_id):
        period_close_service.close_period(2026, 1, test_actor_id)
        with pytest.raises(InvalidStateError) as exc_info:
            period_close_service.close_period(2026, 1, test_actor_id)
        assert exc_info.value.current_state == "closed"

    def test_unbalanced_store_refuses_close(
        self, session, period_close_service, period_service, standard_accounts, post_entry,
        current_period, test_actor_id, publisher, captured_logs,
    ):
        cash = standard_accounts["cash"]
        ar = standard_accounts["ar"]
        ap = standard_accounts["ap"]
        collection = post_entry(
            date(2026, 1, 12), [(cash.id, DR, 60_000_000), (ar.id, CR, 60_000_000)],
            description="Customer collection",
        )
        post_entry(
            date(2026, 1, 20), [(ap.id, DR, 150_000_000), (cash.id, CR, 150_000_000)],
            description="Supplier payment",
        )

        # Drop the credit side of the collection behind the service's back
        credit_line = next(line for line in collection.lines if line.direction == CR)
        session.execute(delete(JournalLine).where(JournalLine.id == credit_line.id))

        with pytest.raises(UnbalancedPeriodError) as exc_info:
            period_close_service.close_period(2026, 1, test_actor_id)

        assert exc_info.value.total_debits == 210_000_000
        assert exc_info.value.total_credits == 150_000_000
        assert period_service.get_period(2026, 1).status == PeriodStatus.OPEN
        assert publisher.of_type(LedgerEventType.PERIOD_CLOSED) == []
        assert any(r["message"] == "period_close_unbalanced" for r in captured_logs())

    def test_drafts_do_not_block_by_default(
        self, period_close_service, standard_accounts, create_entry, current_period, test_actor_id
    ):
        create_entry(
            date(2026, 1, 30),
            [(standard_accounts["cash"].id, DR, 10), (standard_accounts["sales"].id, CR, 10)],
        )
        closed = period_close_service.close_period(2026, 1, test_actor_id)
        assert closed.status == PeriodStatus.CLOSED

    def test_out_of_order_close_allowed_by_default(
        self, period_close_service, create_period, test_actor_id
    ):
        create_period(2026, 1)
        create_period(2026, 2)
        closed = period_close_service.close_period(2026, 2, test_actor_id)
        assert closed.status == PeriodStatus.CLOSED


class TestStrictClosePolicy:

    @pytest.fixture
    def policy(self):
        return LedgerPolicy(require_sequential_close=True, block_close_with_drafts=True)

    def test_previous_period_must_be_closed(
        self, period_close_service, create_period, test_actor_id
    ):
        create_period(2026, 1)
        create_period(2026, 2)

        with pytest.raises(InvalidStateError):
            period_close_service.close_period(2026, 2, test_actor_id)

        period_close_service.close_period(2026, 1, test_actor_id)
        assert period_close_service.close_period(2026, 2, test_actor_id).status == PeriodStatus.CLOSED

    def test_first_period_has_no_predecessor(
        self, period_close_service, current_period, test_actor_id
    ):
        assert period_close_service.close_period(2026, 1, test_actor_id).status == PeriodStatus.CLOSED

    def test_drafts_block_close(
        self, period_close_service, journal_service, standard_accounts, create_entry,
        current_period, test_actor_id,
    ):
        draft = create_entry(
            date(2026, 1, 30),
            [(standard_accounts["cash"].id, DR, 10), (standard_accounts["sales"].id, CR, 10)],
        )

        with pytest.raises(InvalidStateError):
            period_close_service.close_period(2026, 1, test_actor_id)

        journal_service.post(draft.id, test_actor_id)
        assert period_close_service.close_period(2026, 1, test_actor_id).status == PeriodStatus.CLOSED


class TestCloseChecklist:

    def test_ready_period(self, period_close_service, standard_accounts, post_entry, current_period):
        post_entry(date(2026, 1, 3), [(standard_accounts["cash"].id, DR, 25), (standard_accounts["sales"].id, CR, 25)])

        checklist = period_close_service.close_checklist(2026, 1)

        assert checklist.can_close
        assert checklist.period_status == PeriodStatus.OPEN
        assert checklist.trial_balance_balanced
        assert checklist.total_debits == checklist.total_credits == 25
        assert checklist.previous_period_closed

    def test_drafts_reported_without_blocking(
        self, period_close_service, standard_accounts, create_entry, current_period
    ):
        create_entry(date(2026, 1, 3), [(standard_accounts["cash"].id, DR, 25), (standard_accounts["sales"].id, CR, 25)])

        checklist = period_close_service.close_checklist(2026, 1)

        assert checklist.draft_entries == 1
        assert checklist.can_close

    def test_closed_period_is_a_blocker(self, period_close_service, current_period, test_actor_id):
        period_close_service.close_period(2026, 1, test_actor_id)

        checklist = period_close_service.close_checklist(2026, 1)

        assert not checklist.can_close
        assert checklist.blockers == ("period is closed",)

    def test_checklist_does_not_mutate(
        self, period_close_service, balance_service, standard_accounts, current_period
    ):
        period_close_service.close_checklist(2026, 1)
        assert balance_service.period_balances(2026, 1) == []


class TestStrictChecklist:

    @pytest.fixture
    def policy(self):
        return LedgerPolicy(require_sequential_close=True, block_close_with_drafts=True)

    def test_policy_blockers_listed(
        self, period_close_service, standard_accounts, create_entry, create_period
    ):
        create_period(2026, 1)
        create_period(2026, 2)
        create_entry(date(2026, 2, 3), [(standard_accounts["cash"].id, DR, 25), (standard_accounts["sales"].id, CR, 25)])

        checklist = period_close_service.close_checklist(2026, 2)

        assert not checklist.can_close
        assert not checklist.previous_period_closed
        assert checklist.blockers == ("previous period is still open", "1 draft entries remain")
