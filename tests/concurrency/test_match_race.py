"""
Concurrent matching inside one reconciliation.

A statement line and a journal line can each be claimed once.  When two
sessions race for either, exactly one match commits:

- the same statement line: the status-guarded UPDATE finds no UNMATCHED
  row for the loser
- the same journal line: the unique constraint on
  bank_transactions.matched_journal_line_id rejects the loser even when
  its own pre-check saw the line free
"""

from datetime import date

import pytest

from ledger_kernel.domain.audit import InMemoryAuditSink
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.dtos import LineSpec, StatementLine
from ledger_kernel.exceptions import InvalidStateError
from ledger_kernel.models.account import AccountType, NormalBalance
from ledger_kernel.models.bank import MatchStatus
from ledger_kernel.models.journal import LineDirection
from ledger_kernel.services.account_service import AccountService
from ledger_kernel.services.bank_account_service import BankAccountService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.period_service import PeriodService
from ledger_services.reconciliation_service import ReconciliationService

AMOUNT = 1_000


def _seed(factory, actor_id) -> dict:
    """Two posted deposits and a reconciliation holding two statement lines."""
    clock = DeterministicClock()
    with factory() as session:
        accounts = AccountService(session, clock, InMemoryAuditSink())
        cash = accounts.create_account("1020", "Cash", AccountType.ASSET, NormalBalance.DEBIT, actor_id)
        sales = accounts.create_account("4000", "Sales", AccountType.REVENUE, NormalBalance.CREDIT, actor_id)
        PeriodService(session, clock, InMemoryAuditSink()).create_period(2026, 1, actor_id)

        journal = JournalService(session, clock, InMemoryAuditSink())
        line_ids = []
        for day in (5, 6):
            entry = journal.create_entry(
                entry_date=date(2026, 1, day),
                description=f"Deposit {day}",
                lines=[
                    LineSpec(account_id=cash.id, direction=LineDirection.DEBIT, amount=AMOUNT),
                    LineSpec(account_id=sales.id, direction=LineDirection.CREDIT, amount=AMOUNT),
                ],
                actor_id=actor_id,
            )
            posted = journal.post(entry.id, actor_id)
            line_ids.append(next(l.id for l in posted.lines if l.account_id == cash.id))

        bank = BankAccountService(session, clock, InMemoryAuditSink()).create_bank_account(
            linked_account_id=cash.id, bank_name="First National", account_number="77", actor_id=actor_id
        )
        reconciliations = ReconciliationService(session, clock, InMemoryAuditSink())
        rec = reconciliations.create_reconciliation(
            bank.id, 2026, 1,
            statement_ending_balance=2 * AMOUNT, actor_id=actor_id, book_ending_balance=2 * AMOUNT,
        )
        imported = reconciliations.import_statement(
            rec.id,
            [
                StatementLine(date(2026, 1, 5), AMOUNT, "DEPOSIT", "DEP-5"),
                StatementLine(date(2026, 1, 6), AMOUNT, "DEPOSIT", "DEP-6"),
            ],
            actor_id,
        )
        session.commit()
        return {
            "reconciliation_id": rec.id,
            "txn_ids": imported.transaction_ids,
            "line_ids": line_ids,
        }


def _service(session) -> ReconciliationService:
    return ReconciliationService(session, DeterministicClock(), InMemoryAuditSink())


def _claims(factory, reconciliation_id) -> dict:
    with factory() as session:
        return {
            txn.id: txn.matched_journal_line_id
            for txn in _service(session).list_transactions(reconciliation_id)
            if txn.match_status == MatchStatus.MATCHED
        }


class TestSameStatementLine:

    def test_second_match_loses(self, file_factory, test_actor_id):
        seeded = _seed(file_factory, test_actor_id)
        rec_id = seeded["reconciliation_id"]
        txn_id = seeded["txn_ids"][0]
        first_line, second_line = seeded["line_ids"]

        session_a = file_factory()
        session_b = file_factory()
        try:
            service_b = _service(session_b)
            # B sees the statement line as UNMATCHED and keeps that copy
            assert all(t.match_status == MatchStatus.UNMATCHED for t in service_b.list_transactions(rec_id))
            session_b.commit()

            _service(session_a).match_transaction(rec_id, txn_id, first_line, test_actor_id)
            session_a.commit()

            with pytest.raises(InvalidStateError) as exc_info:
                service_b.match_transaction(rec_id, txn_id, second_line, test_actor_id)
            session_b.rollback()
            assert "matched concurrently" in str(exc_info.value)
        finally:
            session_a.close()
            session_b.close()

        assert _claims(file_factory, rec_id) == {txn_id: first_line}


class TestSameJournalLine:

    def test_claimed_line_rejected_by_precheck(self, file_factory, test_actor_id):
        seeded = _seed(file_factory, test_actor_id)
        rec_id = seeded["reconciliation_id"]
        first_txn, second_txn = seeded["txn_ids"]
        line_id = seeded["line_ids"][0]

        with file_factory() as session:
            _service(session).match_transaction(rec_id, first_txn, line_id, test_actor_id)
            session.commit()

        with file_factory() as session:
            with pytest.raises(InvalidStateError) as exc_info:
                _service(session).match_transaction(rec_id, second_txn, line_id, test_actor_id)
            assert exc_info.value.entity == "journal line"

        assert _claims(file_factory, rec_id) == {first_txn: line_id}

    def test_unique_constraint_backs_up_precheck(self, file_factory, test_actor_id, monkeypatch):
        seeded = _seed(file_factory, test_actor_id)
        rec_id = seeded["reconciliation_id"]
        first_txn, second_txn = seeded["txn_ids"]
        line_id = seeded["line_ids"][0]

        session_a = file_factory()
        session_b = file_factory()
        try:
            _service(session_a).match_transaction(rec_id, first_txn, line_id, test_actor_id)
            session_a.commit()

            # B checked the line before A committed, so its pre-check passes
            monkeypatch.setattr(ReconciliationService, "_line_is_matched", lambda self, line: False)
            with pytest.raises(InvalidStateError) as exc_info:
                _service(session_b).match_transaction(rec_id, second_txn, line_id, test_actor_id)
            session_b.rollback()
            assert exc_info.value.entity == "journal line"
            assert "matched concurrently" in str(exc_info.value)
        finally:
            session_a.close()
            session_b.close()

        assert _claims(file_factory, rec_id) == {first_txn: line_id}
