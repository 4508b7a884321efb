"""Tests for the structured logging system (trade_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from trade_kernel.exceptions import InsufficientStockError
from trade_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "trade_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("invoice_confirmed", extra={"line_count": 3, "invoice_type": "sales"})

        record = _parse_log(stream)
        assert record["line_count"] == 3
        assert record["invoice_type"] == "sales"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        with LogContext.bind(correlation_id="abc-123", invoice_id="inv-456"):
            logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["invoice_id"] == "inv-456"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        with LogContext.bind(operation="cancel"):
            logger.info("transition_rolled_back", extra={"operation": "other"})

        assert _parse_log(stream)["operation"] == "cancel"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "traceback" in record

    def test_kernel_exception_fields_extracted(self):
        """Kernel exceptions carry a .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")

        try:
            raise InsufficientStockError("ITEM-A", "WH-MAIN", Decimal("5"), Decimal("12"))
        except InsufficientStockError:
            logger.warning("transition_rolled_back", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_item_id"] == "ITEM-A"
        assert record["exc_required"] == "12"
        assert record["exc_available"] == "5"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "invoice_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        uid = uuid4()
        logger.info("with_values", extra={"batch_id": uid, "quantity": Decimal("10.50")})

        record = _parse_log(stream)
        assert record["batch_id"] == str(uid)
        assert record["quantity"] == "10.50"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # INFO is the default level, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_bind_and_get(self):
        with LogContext.bind(correlation_id="x", invoice_id="y"):
            assert LogContext.get_all() == {"correlation_id": "x", "invoice_id": "y"}
        assert LogContext.get_all() == {}

    def test_clear_inside_bind(self):
        with LogContext.bind(correlation_id="x"):
            LogContext.clear()
            assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer(self):
        with LogContext.bind(correlation_id="outer", operation="confirm"):
            with LogContext.bind(correlation_id="inner"):
                assert LogContext.get_all() == {"correlation_id": "inner", "operation": "confirm"}
            assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "operation" not in LogContext.get_all()
        with LogContext.bind(operation="confirm"):
            assert LogContext.get_all()["operation"] == "confirm"
        assert "operation" not in LogContext.get_all()

    def test_bind_stringifies_and_skips_none(self):
        invoice_id = uuid4()
        with LogContext.bind(invoice_id=invoice_id, actor_id=None):
            ctx = LogContext.get_all()
        assert ctx == {"invoice_id": str(invoice_id)}

    def test_bind_restores_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(operation="cancel"):
                raise RuntimeError("fail")
        assert LogContext.get_all() == {}

    def test_all_fields(self):
        with LogContext.bind(correlation_id="c", invoice_id="i", actor_id="a", operation="o"):
            ctx = LogContext.get_all()
        assert len(ctx) == 4
        assert ctx["operation"] == "o"

    def test_returned_dict_is_a_copy(self):
        with LogContext.bind(operation="confirm"):
            LogContext.get_all()["operation"] = "tampered"
            assert LogContext.get_all()["operation"] == "confirm"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        root = logging.getLogger("trade_kernel")
        assert root.handlers == [h1]

    def test_reset_allows_reconfigure(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        reset_logging()
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert logging.getLogger("trade_kernel").handlers == [h2]

    def test_get_logger_returns_child(self):
        logger = get_logger("services.invoice_state_machine")
        assert logger.name == "trade_kernel.services.invoice_state_machine"

    def test_logger_hierarchy(self):
        """Child loggers inherit the trade_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("deep.nested.module")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "trade_kernel.deep.nested.module"
