"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import PeriodClosedError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from ledger_kernel.models.journal import LineDirection


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's setup."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


# ---------------------------------------------------------------------------
# StructuredFormatter
# ---------------------------------------------------------------------------


class TestStructuredFormatter:

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "ledger_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("posted", extra={"entry_number": "JE-2026-000001", "amount": 4_200})

        record = _parse_log(stream)
        assert record["entry_number"] == "JE-2026-000001"
        assert record["amount"] == 4_200

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", period="2026-01")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["period"] == "2026-01"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "actor_id" not in record

    def test_ledger_exception_attributes_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise PeriodClosedError(2026, 1, "closed")
        except PeriodClosedError:
            get_logger("test").error("period_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "PeriodClosedError"
        assert record["exc_code"] == "PERIOD_CLOSED"
        assert record["exc_fiscal_year"] == 2026
        assert record["exc_status"] == "closed"
        assert "traceback" in record

    def test_uuid_and_enum_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("typed", extra={"entry_id_value": uid, "direction": LineDirection.DEBIT})

        record = _parse_log(stream)
        assert record["entry_id_value"] == str(uid)
        assert record["direction"] == "debit"

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second")
        logger.debug("third")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_clear(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(period="2026-01")
        with LogContext.bind(period="2026-02"):
            assert LogContext.get_all()["period"] == "2026-02"
        assert LogContext.get_all()["period"] == "2026-01"

    def test_bind_stringifies_and_skips_none(self):
        rec_id = uuid4()
        with LogContext.bind(reconciliation_id=rec_id, actor_id=None):
            ctx = LogContext.get_all()
            assert ctx["reconciliation_id"] == str(rec_id)
            assert "actor_id" not in ctx
        assert "reconciliation_id" not in LogContext.get_all()

    def test_additive_set(self):
        LogContext.set(correlation_id="a")
        LogContext.set(entry_id="b")
        assert LogContext.get_all() == {"correlation_id": "a", "entry_id": "b"}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            LogContext.set(tenant="acme")
        assert LogContext.get_all() == {}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(period="2026-03"):
                raise RuntimeError("boom")
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert logging.getLogger("ledger_kernel").handlers == [h1]

    def test_does_not_propagate(self):
        configure_logging(handler=_make_handler()[0])
        assert logging.getLogger("ledger_kernel").propagate is False

    def test_get_logger_returns_child(self):
        assert get_logger("services.journal").name == "ledger_kernel.services.journal"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "ledger_kernel.deep.nested.module"
