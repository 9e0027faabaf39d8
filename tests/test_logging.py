"""
Structured logging tests.

Verifies:
- each record is one JSON line carrying extra= fields and bound context
- kernel exceptions are logged with their code and attributes
- LogContext.bind() nests and restores
- configure_logging() only takes effect once
"""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from credit_kernel.exceptions import InsufficientBalanceError
from credit_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)
from credit_kernel.models.credit_batch import RecordStatus


@pytest.fixture
def log_lines():
    """Configure kernel logging into a buffer; returns a reader of parsed lines."""
    reset_logging()
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield _read
    reset_logging()
    configure_logging(level=logging.DEBUG)


class TestStructuredFormatter:
    def test_one_json_object_per_record(self, log_lines):
        logger = get_logger("services.ledger")
        logger.info("credits_consumed")
        logger.warning("refund_missing_record")

        first, second = log_lines()
        assert first["message"] == "credits_consumed"
        assert first["level"] == "INFO"
        assert first["logger"] == "credit_kernel.services.ledger"
        assert first["ts"].endswith("+00:00")
        assert second["level"] == "WARNING"

    def test_extra_payload_serialized(self, log_lines):
        batch_id = uuid4()
        get_logger("test").info(
            "batch_restored",
            extra={"batch_id": batch_id, "status": RecordStatus.ACTIVE, "amount": 7},
        )

        (record,) = log_lines()
        assert record["batch_id"] == str(batch_id)
        assert record["status"] == "active"
        assert record["amount"] == 7

    def test_bound_context_merged(self, log_lines):
        task_id = uuid4()
        with LogContext.bind(user_id="user-1", task_id=task_id):
            get_logger("test").info("task_failed")
        get_logger("test").info("outside")

        inside, outside = log_lines()
        assert inside["user_id"] == "user-1"
        assert inside["task_id"] == str(task_id)
        assert "user_id" not in outside

    def test_kernel_exception_fields(self, log_lines):
        try:
            raise InsufficientBalanceError("user-1", 30, 12)
        except InsufficientBalanceError:
            get_logger("test").exception("consume_failed")

        (record,) = log_lines()
        assert record["level"] == "ERROR"
        assert record["exc_type"] == "InsufficientBalanceError"
        assert record["exc_code"] == "INSUFFICIENT_BALANCE"
        assert record["exc_required"] == 30
        assert record["exc_available"] == 12
        assert "Traceback" in record["traceback"]

    def test_plain_exception(self, log_lines):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        (record,) = log_lines()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record


class TestLogContext:
    def test_nested_bind_restores_outer_value(self):
        with LogContext.bind(actor_id="reconcile_refunds"):
            with LogContext.bind(actor_id="inner", consumption_id="c-1"):
                assert LogContext.get_all() == {
                    "actor_id": "inner",
                    "consumption_id": "c-1",
                }
            assert LogContext.get_all() == {"actor_id": "reconcile_refunds"}
        assert LogContext.get_all() == {}

    def test_none_values_skipped(self):
        with LogContext.bind(user_id=None, correlation_id="req-9"):
            assert LogContext.get_all() == {"correlation_id": "req-9"}

    def test_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(task_id="t-1"):
                raise RuntimeError("worker died")
        assert LogContext.get_all() == {}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            with LogContext.bind(order_no="o-1"):
                pass

    def test_clear(self):
        with LogContext.bind(user_id="user-1"):
            LogContext.clear()
            assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_second_call_keeps_first_handler(self):
        reset_logging()
        first = logging.StreamHandler(StringIO())
        second = logging.StreamHandler(StringIO())
        try:
            configure_logging(handler=first)
            configure_logging(handler=second)

            handlers = logging.getLogger("credit_kernel").handlers
            assert first in handlers
            assert second not in handlers
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)

    def test_kernel_logger_does_not_propagate(self, log_lines):
        assert logging.getLogger("credit_kernel").propagate is False

    def test_debug_dropped_at_info_level(self):
        reset_logging()
        stream = StringIO()
        try:
            configure_logging(stream=stream)
            get_logger("test").debug("noise")
            get_logger("test").info("signal")

            messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
            assert messages == ["signal"]
        finally:
            reset_logging()
            configure_logging(level=logging.DEBUG)
