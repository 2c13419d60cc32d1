"""
Tests for the LedgerApi facade: envelopes, payload validation, and
end-to-end flows driven purely through request payloads.
"""

import pytest

from ledger_config import LedgerConfig
from ledger_kernel.domain.events import LedgerEventType
from ledger_services.api import LedgerApi, to_json

REOPEN_REASON = "Late supplier invoice received"


@pytest.fixture
def accounts(api, test_actor_id):
    """Create a minimal chart through the API; returns code -> id."""
    chart = [
        ("1020", "Cash at Bank", "asset", "debit"),
        ("1300", "Inventory", "asset", "debit"),
        ("2000", "Accounts Payable", "liability", "credit"),
        ("3000", "Owner Capital", "equity", "credit"),
        ("4000", "Sales", "revenue", "credit"),
    ]
    ids = {}
    for code, name, account_type, normal in chart:
        result = api.create_account(
            {"code": code, "name": name, "accountType": account_type, "normalBalance": normal},
            test_actor_id,
        )
        assert result.success, result.error
        ids[code] = result.data["id"]
    return ids


@pytest.fixture
def january(api, test_actor_id):
    result = api.create_fiscal_period({"fiscalYear": 2026, "fiscalMonth": 1}, test_actor_id)
    assert result.success
    return result.data


def _entry(accounts, debit_code, credit_code, debit, credit=None, entry_date="2026-01-10"):
    return {
        "entryDate": entry_date,
        "description": "API entry",
        "lines": [
            {"accountId": accounts[debit_code], "direction": "DEBIT", "amount": debit},
            {"accountId": accounts[credit_code], "direction": "credit", "amount": credit if credit is not None else debit},
        ],
    }


class TestEnvelope:

    def test_success_data_is_camel_case(self, api, test_actor_id):
        result = api.create_account(
            {"code": "1020", "name": "Cash", "accountType": "ASSET", "normalBalance": "debit"},
            test_actor_id,
        )

        assert result.success
        assert result.error is None
        assert result.data["code"] == "1020"
        assert result.data["accountType"] == "asset"
        assert result.data["normalBalance"] == "debit"
        assert result.data["isActive"] is True
        assert "account_type" not in result.data

    def test_kernel_error_becomes_api_error(self, api, accounts, test_actor_id, captured_logs):
        result = api.create_account(
            {"code": "1020", "name": "Cash again", "accountType": "asset", "normalBalance": "debit"},
            test_actor_id,
        )

        assert not result.success
        assert result.data is None
        assert result.error.code == "DUPLICATE_ACCOUNT"
        assert result.error.details["field"] == "code"
        assert any(r["message"] == "api_request_rejected" for r in captured_logs())

    def test_missing_field(self, api, test_actor_id):
        result = api.create_account({"code": "1020", "name": "Cash"}, test_actor_id)
        assert result.error.code == "VALIDATION_ERROR"
        assert result.error.details["field"] == "accountType"

    def test_to_json_handles_nested_values(self, api, accounts, january, test_actor_id):
        created = api.create_journal_entry(_entry(accounts, "1300", "3000", 10), test_actor_id)
        assert to_json(created.data) == created.data
        assert created.data["entryDate"] == "2026-01-10"
        assert created.data["lines"][0]["direction"] == "debit"


class TestJournalRequests:

    def test_float_amount_rejected(self, api, accounts, january, test_actor_id, journal_service):
        payload = _entry(accounts, "1020", "4000", 100)
        payload["lines"][0]["amount"] = 100.0
        payload["lines"][1]["amount"] = 100.0

        result = api.create_journal_entry(payload, test_actor_id)

        assert result.error.code == "VALIDATION_ERROR"
        assert result.error.details == {"field": "amount"}
        assert journal_service.list_entries() == []

    @pytest.mark.parametrize("amount", ["100", True, None])
    def test_non_integer_amounts_rejected(self, api, accounts, january, test_actor_id, amount):
        payload = _entry(accounts, "1020", "4000", 100)
        payload["lines"][0]["amount"] = amount
        result = api.create_journal_entry(payload, test_actor_id)
        assert result.error.code == "VALIDATION_ERROR"

    def test_unbalanced_entry_leaves_nothing(self, api, accounts, january, test_actor_id, journal_service):
        result = api.create_journal_entry(_entry(accounts, "1020", "4000", 100, 90), test_actor_id)

        assert result.error.code == "UNBALANCED_ENTRY"
        assert result.error.details["debits"] == 100
        assert result.error.details["credits"] == 90
        assert journal_service.list_entries() == []

    def test_create_post_void(self, api, accounts, january, test_actor_id, publisher):
        created = api.create_journal_entry(_entry(accounts, "1300", "3000", 1_200_000_000), test_actor_id)
        assert created.data["status"] == "draft"
        assert created.data["totalDebits"] == 1_200_000_000

        posted = api.post_journal_entry(created.data["id"], test_actor_id)
        assert posted.data["status"] == "posted"
        assert len(publisher.of_type(LedgerEventType.ENTRY_POSTED)) == 1

        short = api.void_journal_entry(created.data["id"], {"reason": "no"}, test_actor_id)
        assert short.error.code == "VALIDATION_ERROR"

        voided = api.void_journal_entry(created.data["id"], {"reason": "Entered twice"}, test_actor_id)
        assert voided.data["status"] == "voided"
        assert api.get_journal_entry(created.data["id"]).data["voidReason"] == "Entered twice"

    def test_bad_entry_id(self, api, test_actor_id):
        assert api.post_journal_entry("not-a-uuid", test_actor_id).error.details["field"] == "entryId"

    def test_iso_datetime_entry_date(self, api, accounts, january, test_actor_id):
        result = api.create_journal_entry(
            _entry(accounts, "1020", "4000", 250, entry_date="2026-01-10T00:00:00.000Z"), test_actor_id
        )

        assert result.success, result.error
        assert result.data["entryDate"] == "2026-01-10"
        assert result.data["fiscalMonth"] == 1

    def test_malformed_entry_date(self, api, accounts, january, test_actor_id):
        result = api.create_journal_entry(
            _entry(accounts, "1020", "4000", 250, entry_date="10/01/2026"), test_actor_id
        )
        assert result.error.code == "VALIDATION_ERROR"
        assert result.error.details == {"field": "entryDate"}

    def test_entry_into_missing_period(self, api, accounts, test_actor_id):
        result = api.create_journal_entry(_entry(accounts, "1020", "4000", 5), test_actor_id)
        assert result.error.code == "NOT_FOUND"


class TestPeriodRequests:

    def test_close_reopen_lock(self, api, accounts, january, test_actor_id):
        entry = api.create_journal_entry(_entry(accounts, "1020", "4000", 7_500), test_actor_id)
        api.post_journal_entry(entry.data["id"], test_actor_id)

        checklist = api.close_checklist(2026, 1)
        assert checklist.data["canClose"] is True

        closed = api.close_fiscal_period(2026, 1, test_actor_id)
        assert closed.data["status"] == "closed"

        late = api.create_journal_entry(_entry(accounts, "1020", "4000", 10), test_actor_id)
        assert late.error.code == "PERIOD_CLOSED"
        assert late.error.details["status"] == "closed"

        reopened = api.reopen_fiscal_period(2026, 1, {"reason": REOPEN_REASON}, test_actor_id)
        assert reopened.data["status"] == "open"
        assert api.close_fiscal_period(2026, 1, test_actor_id).success

        locked = api.lock_fiscal_period(2026, 1, test_actor_id)
        assert locked.data["status"] == "locked"

        refused = api.reopen_fiscal_period(2026, 1, {"reason": REOPEN_REASON}, test_actor_id)
        assert refused.error.code == "INVALID_STATE"
        assert refused.error.details["currentState"] == "locked"

    def test_duplicate_period(self, api, january, test_actor_id):
        result = api.create_fiscal_period({"fiscalYear": 2026, "fiscalMonth": 1}, test_actor_id)
        assert result.error.code == "DUPLICATE_PERIOD"

    def test_period_fields_must_be_integers(self, api, test_actor_id):
        result = api.create_fiscal_period({"fiscalYear": "2026", "fiscalMonth": 1}, test_actor_id)
        assert result.error.details["field"] == "fiscalYear"


class TestReports:

    def test_balances_and_trial_balance(self, api, accounts, january, test_actor_id):
        for payload in (
            _entry(accounts, "1300", "3000", 1_200_000_000),
            _entry(accounts, "1020", "4000", 50_000),
        ):
            created = api.create_journal_entry(payload, test_actor_id)
            api.post_journal_entry(created.data["id"], test_actor_id)

        calc = api.calculate_account_balances({"fiscalYear": 2026, "fiscalMonth": 1}, test_actor_id)
        assert calc.data["isBalanced"] is True
        assert calc.data["totalDebits"] == 1_200_050_000

        balance = api.get_account_balance(accounts["1300"], 2026, 1)
        assert balance.data["closingBalance"] == 1_200_000_000

        trial = api.trial_balance_report(2026, 1)
        assert trial.data["isBalanced"] is True
        assert trial.data["difference"] == 0
        assert [r["accountCode"] for r in trial.data["rows"]] == ["1020", "1300", "3000", "4000"]
        assert trial.data["rows"][2]["netBalance"] == 1_200_000_000

    def test_balance_not_calculated(self, api, accounts, january):
        result = api.get_account_balance(accounts["1020"], 2026, 1)
        assert result.error.code == "NOT_FOUND"


class TestReconciliationRequests:

    def test_full_reconciliation(self, api, accounts, january, test_actor_id):
        deposit = api.create_journal_entry(
            _entry(accounts, "1020", "4000", 25_000_000, entry_date="2026-01-05"), test_actor_id
        )
        api.post_journal_entry(deposit.data["id"], test_actor_id)
        check = api.create_journal_entry(
            _entry(accounts, "2000", "1020", 5_000_000, entry_date="2026-01-20"), test_actor_id
        )
        api.post_journal_entry(check.data["id"], test_actor_id)
        api.calculate_account_balances({"fiscalYear": 2026, "fiscalMonth": 1}, test_actor_id)

        bank = api.create_bank_account(
            {"linkedAccountId": accounts["1020"], "bankName": "First National", "accountNumber": "42"},
            test_actor_id,
        )
        rec = api.create_reconciliation(
            {
                "bankAccountId": bank.data["id"],
                "fiscalYear": 2026,
                "fiscalMonth": 1,
                "statementEndingBalance": 25_000_000,
            },
            test_actor_id,
        )
        assert rec.data["bookEndingBalance"] == 20_000_000
        rec_id = rec.data["id"]

        imported = api.import_statement(
            rec_id,
            {"transactions": [{"transactionDate": "2026-01-05", "amount": 25_000_000, "description": "DEPOSIT"}]},
            test_actor_id,
        )
        assert imported.data["imported"] == 1

        matched = api.auto_match(rec_id, None, test_actor_id)
        assert matched.data["matchedCount"] == 1

        not_yet = api.complete(rec_id, test_actor_id)
        assert not_yet.error.code == "NOT_RECONCILED"
        assert not_yet.error.details["difference"] == 5_000_000

        item = api.add_item(
            rec_id,
            {
                "itemType": "outstanding_check",
                "amount": 5_000_000,
                "itemDate": "2026-01-20",
                "description": "Check 1001",
            },
            test_actor_id,
        )
        assert item.success

        calculated = api.calculate(rec_id, test_actor_id)
        assert calculated.data["isReconciled"] is True

        assert api.complete(rec_id, test_actor_id).data["status"] == "completed"
        assert api.approve(rec_id, test_actor_id).data["status"] == "approved"

    def test_float_statement_amount(self, api, test_actor_id):
        result = api.import_statement(
            "00000000-0000-0000-0000-000000000001",
            {"transactions": [{"transactionDate": "2026-01-05", "amount": 10.5}]},
            test_actor_id,
        )
        assert result.error.code == "VALIDATION_ERROR"
        assert result.error.details["field"] == "amount"


class TestFromConfig:

    def test_policy_comes_from_config(self, session_factory, accounts, january, test_actor_id):
        api = LedgerApi.from_config(
            LedgerConfig(closed_period_void_policy="allow"), session_factory
        )
        created = api.create_journal_entry(_entry(accounts, "1020", "4000", 300), test_actor_id)
        api.post_journal_entry(created.data["id"], test_actor_id)
        api.close_fiscal_period(2026, 1, test_actor_id)

        voided = api.void_journal_entry(created.data["id"], {"reason": "Customer refund"}, test_actor_id)
        assert voided.data["status"] == "voided"
