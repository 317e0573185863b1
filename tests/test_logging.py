"""Tests for the structured logging system (contract_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from contract_kernel.domain.workflow import ContractStatus
from contract_kernel.logging_config import (
    CONTEXT_FIELDS,
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
        assert record["logger"] == "contract_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("submitted", extra={"seq": 42, "track_type": "LEGAL"})

        record = _parse_log(stream)
        assert record["seq"] == 42
        assert record["track_type"] == "LEGAL"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        actor = uuid4()
        with LogContext.bind(operation="approve", actor_id=actor):
            get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["operation"] == "approve"
        assert record["actor_id"] == str(actor)

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(operation="cancel"):
            get_logger("test").info("msg", extra={"operation": "spoofed"})

        assert _parse_log(stream)["operation"] == "cancel"

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("typed", extra={
            "contract_ref": uid,
            "amount": Decimal("1250.50"),
            "status": ContractStatus.SENT_TO_LEGAL,
            "tracks": frozenset({"LEGAL", "FINANCE"}),
        })

        record = _parse_log(stream)
        assert record["contract_ref"] == str(uid)
        assert record["amount"] == "1250.50"
        assert record["status"] == "SENT_TO_LEGAL"
        assert record["tracks"] == ["FINANCE", "LEGAL"]

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        error = _parse_log(stream)["error"]
        assert error["type"] == "ValueError"
        assert error["message"] == "boom"
        assert "code" not in error
        assert "Traceback" in error["traceback"]

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from contract_kernel.exceptions import CommentTooShortError

        try:
            raise CommentTooShortError(10, 3)
        except CommentTooShortError:
            logger.error("decision_rejected", exc_info=True)

        error = _parse_log(stream)["error"]
        assert error["type"] == "CommentTooShortError"
        assert error["code"] == CommentTooShortError.code
        assert error["fields"]["min_length"] == 10
        assert error["fields"]["actual_length"] == 3

    def test_service_name(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, service="contracts-api")
        get_logger("test").info("named")

        assert _parse_log(stream)["service"] == "contracts-api"

    def test_default_service_name(self):
        handler, stream = _make_handler()
        get_logger("test").addHandler(handler)
        try:
            get_logger("test").warning("unconfigured")
        finally:
            get_logger("test").removeHandler(handler)

        assert _parse_log(stream)["service"] == "contract-workflow"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "operation" not in record
        assert "contract_id" not in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", contract_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "contract_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(operation="outer")
        with LogContext.bind(operation="inner"):
            assert LogContext.get_all()["operation"] == "inner"
        assert LogContext.get_all()["operation"] == "outer"

    def test_bind_restores_none(self):
        assert "track_id" not in LogContext.get_all()
        with LogContext.bind(track_id="temp"):
            assert LogContext.get_all()["track_id"] == "temp"
        assert "track_id" not in LogContext.get_all()

    def test_bind_ignores_none_and_unknown(self):
        with LogContext.bind(operation="submit", track_id=None, unknown_field="x"):
            assert LogContext.get_all() == {"operation": "submit"}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            contract_id="k",
            track_id="t",
            operation="o",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["track_id"] == "t"
        assert tuple(ctx) == CONTEXT_FIELDS

    def test_set_none_keeps_field(self):
        LogContext.set(operation="submit")
        LogContext.set(operation=None, track_id="t")
        assert LogContext.get_all() == {"operation": "submit", "track_id": "t"}

    def test_bind_restores_after_error(self):
        contract_id = uuid4()
        with pytest.raises(RuntimeError):
            with LogContext.bind(contract_id=contract_id):
                assert LogContext.get_all()["contract_id"] == str(contract_id)
                raise RuntimeError("command failed")
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("contract_kernel").handlers) == 1

    def test_reset_keeps_foreign_handlers(self):
        foreign, _ = _make_handler()
        root = logging.getLogger("contract_kernel")
        root.addHandler(foreign)
        try:
            own, _ = _make_handler()
            configure_logging(handler=own)
            reset_logging()
            assert own not in root.handlers
            assert foreign in root.handlers
        finally:
            root.removeHandler(foreign)

    def test_get_logger_returns_child(self):
        assert get_logger("services.workflow").name == "contract_kernel.services.workflow"

    def test_logger_hierarchy(self):
        """Child loggers inherit the contract_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "contract_kernel.deep.nested.module"
