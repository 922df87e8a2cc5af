"""Tests for the structured logging system (spend_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from spend_kernel.logging_config import (
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
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "spend.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("recomputed", extra={"items": 3, "status": "ok"})

        record = _parse_log(stream)
        assert record["items"] == 3
        assert record["status"] == "ok"

    def test_decimal_serialized_as_string(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("overdue", extra={"amount": Decimal("504.11")})

        assert _parse_log(stream)["amount"] == "504.11"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", supplier_id="sup-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["supplier_id"] == "sup-1"

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

    def test_engine_exception_code_extracted(self):
        """Spend engine exceptions carry a .code attribute."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from spend_kernel.exceptions import SupplierNotFoundError

        try:
            raise SupplierNotFoundError("sup-9")
        except SupplierNotFoundError:
            logger.error("snapshot_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "SUPPLIER_NOT_FOUND"
        assert record["exc_type"] == "SupplierNotFoundError"
        assert record["exc_supplier_id"] == "sup-9"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "job_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"run_id": uid})

        assert _parse_log(stream)["run_id"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        # Default level is INFO, so the debug line is dropped.
        logs = _parse_all_logs(stream)
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", job_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "job_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(supplier_id="outer")
        with LogContext.bind(supplier_id="inner"):
            assert LogContext.get_all()["supplier_id"] == "inner"
        assert LogContext.get_all()["supplier_id"] == "outer"

    def test_bind_restores_none(self):
        assert "contract_id" not in LogContext.get_all()
        with LogContext.bind(contract_id="c-1"):
            assert LogContext.get_all()["contract_id"] == "c-1"
        assert "contract_id" not in LogContext.get_all()

    def test_bind_stringifies(self):
        with LogContext.bind(year=2025):
            assert LogContext.get_all()["year"] == "2025"

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(event_id="x")

    def test_additive_set(self):
        LogContext.set(correlation_id="a")
        LogContext.set(job_id="b")
        ctx = LogContext.get_all()
        assert ctx["correlation_id"] == "a"
        assert ctx["job_id"] == "b"

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            job_id="j",
            supplier_id="s",
            year="2025",
            contract_id="k",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["year"] == "2025"


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
        assert len(logging.getLogger("spend").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("services.summary").name == "spend.services.summary"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "spend.deep.nested.module"
