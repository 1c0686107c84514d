"""Tests for the structured logging system (payout_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from payout_kernel.exceptions import CheckpointCommitError
from payout_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)

from tests.conftest import T1


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite default."""
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


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_all_logs(stream)[0]
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "payout.test"
        assert "ts" in record

    def test_extra_fields_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        run_id = uuid4()
        get_logger("test").info(
            "checkpoint_committed",
            extra={"run": run_id, "amount": Decimal("70.50"), "at": T1},
        )

        record = _parse_all_logs(stream)[0]
        assert record["run"] == str(run_id)
        assert record["amount"] == "70.50"
        assert record["at"] == T1.isoformat()

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(run_id="run-1", seller_id="s-1", step="commit"):
            get_logger("test").info("inside")

        record = _parse_all_logs(stream)[0]
        assert record["run_id"] == "run-1"
        assert record["seller_id"] == "s-1"
        assert record["step"] == "commit"

    def test_payout_exception_fields_expanded(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise CheckpointCommitError("s-1", T1, 3, "database is locked")
        except CheckpointCommitError:
            get_logger("test").error("commit_failed", exc_info=True)

        record = _parse_all_logs(stream)[0]
        assert record["exc_code"] == "CHECKPOINT_COMMIT_FAILURE"
        assert record["exc_type"] == "CheckpointCommitError"
        assert record["exc_seller_id"] == "s-1"
        assert record["exc_attempts"] == 3
        assert "traceback" in record

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.debug("hidden")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first"]


class TestLogContext:
    def test_bind_restores_previous(self):
        LogContext.set(run_id="outer")
        with LogContext.bind(run_id="inner", seller_id="s-1"):
            assert LogContext.get_all() == {"run_id": "inner", "seller_id": "s-1"}
        assert LogContext.get_all() == {"run_id": "outer"}

    def test_clear(self):
        LogContext.set(run_id="x", tenant_id="eu")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_none_values_ignored(self):
        with LogContext.bind(run_id="r", tenant_id=None):
            assert "tenant_id" not in LogContext.get_all()


class TestConfigureLogging:
    def test_idempotent(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=handler)
        assert len(logging.getLogger("payout").handlers) == 1

    def test_reset_restores_propagation(self):
        configure_logging(handler=_make_handler()[0])
        assert logging.getLogger("payout").propagate is False
        reset_logging()
        assert logging.getLogger("payout").propagate is True
        assert logging.getLogger("payout").handlers == []
