"""Tests for the structured logging system (farm_kernel/logging_config.py)."""

import json
import logging
from datetime import date, datetime
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from farm_kernel.exceptions import EditNotAllowedError, ValidationError
from farm_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)
from farm_modules.purchasing.models import ExpenseStatus


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
    """Parse all JSON log lines from a stream."""
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
        assert record["logger"] == "farm_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("order_created", extra={"installments": 3, "status": "draft"})

        record = _parse_log(stream)
        assert record["installments"] == 3
        assert record["status"] == "draft"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(correlation_id="abc-123", order_id="po-456")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["order_id"] == "po-456"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(actor_id="ctx-actor")
        get_logger("test").info("msg", extra={"actor_id": "extra-actor"})

        assert _parse_log(stream)["actor_id"] == "ctx-actor"

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
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Farm kernel exceptions carry .code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")

        try:
            raise EditNotAllowedError("approved", order_id="po-1")
        except EditNotAllowedError:
            logger.error("edit_rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "EDIT_NOT_ALLOWED"
        assert record["exc_type"] == "EditNotAllowedError"
        assert record["exc_current_status"] == "approved"
        assert record["exc_order_id"] == "po-1"

    def test_validation_errors_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValidationError.single("items", "at least one item is required")
        except ValidationError:
            get_logger("test").warning("rejected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_field_errors"] == [
            {"field": "items", "message": "at least one item is required"}
        ]

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "order_id" not in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "with_values",
            extra={"expense_id": uid, "amount": Decimal("333.34"), "expense_status": ExpenseStatus.PAID},
        )

        record = _parse_log(stream)
        assert record["expense_id"] == str(uid)
        assert record["amount"] == "333.34"
        assert record["expense_status"] == "paid"

    def test_dates_iso_and_unknown_objects_stringified(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)

        class Opaque:
            def __str__(self):
                return "opaque"

        get_logger("test").info(
            "with_dates",
            extra={
                "due_date": date(2026, 4, 1),
                "approved_at": datetime(2026, 3, 2, 9, 30),
                "blob": Opaque(),
            },
        )

        record = _parse_log(stream)
        assert record["due_date"] == "2026-04-01"
        assert record["approved_at"] == "2026-03-02T09:30:00"
        assert record["blob"] == "opaque"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped.
        assert len(logs) == 2
        for record in logs:
            assert "ts" in record
            assert "level" in record
            assert "logger" in record
            assert "message" in record


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", firm_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "firm_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "order_id" not in LogContext.get_all()
        with LogContext.bind(order_id="temp"):
            assert LogContext.get_all()["order_id"] == "temp"
        assert "order_id" not in LogContext.get_all()

    def test_bind_stringifies_uuids(self):
        uid = uuid4()
        with LogContext.bind(actor_id=uid):
            assert LogContext.get_all()["actor_id"] == str(uid)

    def test_bind_ignores_unknown_and_none(self):
        with LogContext.bind(producer="x", firm_id=None):
            assert LogContext.get_all() == {}

    def test_bind_restores_on_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(order_id="po-1"):
                raise RuntimeError("fail")
        assert LogContext.get_all() == {}

    def test_all_fields(self):
        LogContext.set(correlation_id="c", actor_id="a", firm_id="f", order_id="o")
        ctx = LogContext.get_all()
        assert len(ctx) == 4
        assert ctx["firm_id"] == "f"
        assert ctx["order_id"] == "o"


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
        root = logging.getLogger("farm_kernel")
        assert len(root.handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("modules.purchasing.service")
        assert logger.name == "farm_kernel.modules.purchasing.service"

    def test_logger_hierarchy(self):
        """Child loggers inherit the farm_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("deep.nested.module")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "farm_kernel.deep.nested.module"

    def test_reset_allows_reconfiguration(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        reset_logging()
        h2, stream = _make_handler()
        configure_logging(handler=h2)
        get_logger("test").info("after_reset")

        assert _parse_log(stream)["message"] == "after_reset"
