"""
Property-based tests with Hypothesis.

Properties checked:
- Closing balances follow the normal-side formula for any movement
- Any set of balanced entries yields a balanced period
- Unbalanced line sets are always rejected and never persisted
- The auto-matcher accounts for every bank line, uses each ledger line at
  most once and never pairs lines outside amount, direction or tolerance
"""

from datetime import date, timedelta
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, assume, given, settings
from hypothesis import strategies as st

from ledger_engines.balance import AccountActivity, BalanceCalculator, closing_balance
from ledger_engines.reconciliation import AutoMatcher, BankLine, CandidateLine
from ledger_engines.reconciliation.matcher import expected_direction
from ledger_kernel.domain.dtos import LineSpec
from ledger_kernel.exceptions import ValidationError
from ledger_kernel.models.account import NormalBalance
from ledger_kernel.models.journal import LineDirection

DR = LineDirection.DEBIT
CR = LineDirection.CREDIT

amounts = st.integers(min_value=1, max_value=10**15)
balances = st.integers(min_value=-(10**15), max_value=10**15)
jan_days = st.integers(min_value=1, max_value=31)

DB_SETTINGS = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
)


class TestBalanceProperties:

    @given(opening=balances, debits=amounts, credits=amounts)
    @settings(max_examples=200)
    def test_normal_sides_mirror(self, opening, debits, credits):
        debit_side = closing_balance(NormalBalance.DEBIT, opening, debits, credits)
        credit_side = closing_balance(NormalBalance.CREDIT, opening, debits, credits)
        assert debit_side - opening == -(credit_side - opening)
        assert debit_side == opening + debits - credits

    @given(entries=st.lists(st.tuples(amounts, st.integers(0, 3), st.integers(0, 3)), max_size=30))
    @settings(max_examples=200)
    def test_balanced_entries_balance_the_period(self, entries):
        accounts = [uuid4() for _ in range(4)]
        debit_totals = {a: 0 for a in accounts}
        credit_totals = {a: 0 for a in accounts}
        for amount, debit_idx, credit_idx in entries:
            debit_totals[accounts[debit_idx]] += amount
            credit_totals[accounts[credit_idx]] += amount

        calc = BalanceCalculator().calculate(
            activities=[
                AccountActivity(a, NormalBalance.DEBIT, 0, debit_totals[a], credit_totals[a])
                for a in accounts
            ]
        )

        assert calc.is_balanced
        assert sum(b.closing_balance for b in calc.balances) == 0


class TestJournalProperties:

    @given(amounts_posted=st.lists(st.integers(min_value=1, max_value=10**12), min_size=1, max_size=8))
    @DB_SETTINGS
    def test_posted_entries_keep_period_balanced(
        self, session, journal_service, balance_service, standard_accounts, current_period,
        test_actor_id, amounts_posted,
    ):
        savepoint = session.begin_nested()
        try:
            cash = standard_accounts["cash"].id
            sales = standard_accounts["sales"].id
            for amount in amounts_posted:
                entry = journal_service.create_entry(
                    entry_date=date(2026, 1, 15),
                    description="Generated sale",
                    lines=[LineSpec(cash, DR, amount), LineSpec(sales, CR, amount)],
                    actor_id=test_actor_id,
                )
                journal_service.post(entry.id, test_actor_id)

            result = balance_service.recalculate(2026, 1)

            assert result.is_balanced
            assert result.total_debits == sum(amounts_posted)
            assert balance_service.get_account_balance(cash, 2026, 1).closing_balance == sum(amounts_posted)
        finally:
            savepoint.rollback()

    @given(debit=st.integers(min_value=1, max_value=10**12), credit=st.integers(min_value=1, max_value=10**12))
    @DB_SETTINGS
    def test_unbalanced_lines_rejected(
        self, session, journal_service, standard_accounts, current_period, test_actor_id, debit, credit,
    ):
        assume(debit != credit)
        with pytest.raises(ValidationError):
            journal_service.create_entry(
                entry_date=date(2026, 1, 15),
                description="Generated mismatch",
                lines=[
                    LineSpec(standard_accounts["inventory"].id, DR, debit),
                    LineSpec(standard_accounts["ap"].id, CR, credit),
                ],
                actor_id=test_actor_id,
            )
        assert journal_service.list_entries() == []


@st.composite
def bank_lines(draw):
    rows = draw(
        st.lists(
            st.tuples(jan_days, st.integers(min_value=1, max_value=5), st.booleans()),
            max_size=12,
        )
    )
    return [
        BankLine(uuid4(), date(2026, 1, day), amount * 100 if money_in else -amount * 100, seq)
        for seq, (day, amount, money_in) in enumerate(rows)
    ]


@st.composite
def candidate_lines(draw):
    rows = draw(
        st.lists(
            st.tuples(jan_days, st.integers(min_value=1, max_value=5), st.sampled_from([DR, CR])),
            max_size=12,
        )
    )
    return [CandidateLine(uuid4(), date(2026, 1, day), direction, amount * 100) for day, amount, direction in rows]


class TestMatcherProperties:

    @given(bank=bank_lines(), candidates=candidate_lines(), tolerance=st.integers(0, 5))
    @settings(max_examples=300)
    def test_matching_invariants(self, bank, candidates, tolerance):
        result = AutoMatcher().match(bank_lines=bank, candidates=candidates, date_tolerance_days=tolerance)

        assert result.matched_count + result.unmatched_count == len(bank)

        used = [m.journal_line_id for m in result.matches]
        assert len(used) == len(set(used))

        bank_by_id = {b.id: b for b in bank}
        cand_by_id = {c.id: c for c in candidates}
        for match in result.matches:
            b = bank_by_id[match.bank_transaction_id]
            c = cand_by_id[match.journal_line_id]
            assert c.amount == abs(b.amount)
            assert c.direction == expected_direction(b.amount)
            assert abs((c.entry_date - b.transaction_date).days) == match.date_difference_days
            assert match.date_difference_days <= tolerance

    @given(bank=bank_lines(), candidates=candidate_lines())
    @settings(max_examples=100)
    def test_matching_is_deterministic(self, bank, candidates):
        first = AutoMatcher().match(bank_lines=bank, candidates=candidates, date_tolerance_days=3)
        second = AutoMatcher().match(bank_lines=list(bank), candidates=list(candidates), date_tolerance_days=3)
        assert first == second

    @given(day=jan_days, amount=st.integers(min_value=1, max_value=10**9), shift=st.integers(0, 10))
    @settings(max_examples=100)
    def test_single_pair_matches_iff_within_tolerance(self, day, amount, shift):
        bank = BankLine(uuid4(), date(2026, 1, day), amount)
        candidate = CandidateLine(uuid4(), date(2026, 1, day) + timedelta(days=shift), DR, amount)

        result = AutoMatcher().match(bank_lines=[bank], candidates=[candidate], date_tolerance_days=3)

        assert (result.matched_count == 1) == (shift <= 3)
