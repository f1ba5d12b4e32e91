"""Tests for structured logging configuration."""

import json
import logging

from sos_api.logging_config import (
    JsonFormatter,
    StructuredLogger,
    TextFormatter,
    correlation_id_ctx,
    get_bound_fields,
    get_logger,
    log_context,
    setup_logging,
)


def make_record(msg="Test message", level=logging.INFO, name="test.logger", **extra):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JSON log formatting."""

    def test_json_format_basic(self):
        parsed = json.loads(JsonFormatter(service_name="test-service").format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["service"] == "test-service"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "test.logger"
        assert "timestamp" in parsed
        assert "correlation_id" not in parsed
        assert "location" not in parsed

    def test_json_format_with_correlation_id(self):
        token = correlation_id_ctx.set("test-correlation-123")
        try:
            parsed = json.loads(JsonFormatter().format(make_record()))
        finally:
            correlation_id_ctx.reset(token)

        assert parsed["correlation_id"] == "test-correlation-123"

    def test_bound_and_extra_fields(self):
        record = make_record(extra_fields={"notified": 2})

        with log_context(alert_id="a-1"):
            parsed = json.loads(JsonFormatter().format(record))

        assert parsed["alert_id"] == "a-1"
        assert parsed["notified"] == 2

    def test_errors_carry_location(self):
        parsed = json.loads(JsonFormatter().format(make_record(level=logging.ERROR)))

        assert parsed["location"]["file"] == "test.py"
        assert parsed["location"]["line"] == 10


class TestTextFormatter:
    """Tests for human-readable formatting."""

    def test_text_format(self):
        token = correlation_id_ctx.set("abc")
        try:
            output = TextFormatter(service_name="svc").format(
                make_record(extra_fields={"user_id": "u-9"})
            )
        finally:
            correlation_id_ctx.reset(token)

        assert " - svc - INFO - [abc] - Test message" in output
        assert output.endswith("user_id=u-9")

    def test_text_format_without_correlation_id(self):
        output = TextFormatter().format(make_record())

        assert "[-]" in output


class TestLogContext:
    """log_context nesting."""

    def test_nested_contexts_merge_and_unwind(self):
        with log_context(alert_id="a-1"):
            with log_context(recipient="Mother"):
                inner = get_bound_fields()
            outer = get_bound_fields()

        assert inner == {"alert_id": "a-1", "recipient": "Mother"}
        assert outer == {"alert_id": "a-1"}
        assert get_bound_fields() == {}


class TestStructuredLogger:
    """StructuredLogger passes keyword fields through to records."""

    def test_extra_fields_reach_record(self, caplog):
        logger = get_logger("sos_api.test")

        with caplog.at_level(logging.INFO, logger="sos_api.test"):
            logger.info("Dispatch finished", notified_count=3)

        record = caplog.records[-1]
        assert isinstance(logger, StructuredLogger)
        assert record.getMessage() == "Dispatch finished"
        assert record.extra_fields == {"notified_count": 3}

    def test_exception_includes_traceback(self, caplog):
        logger = get_logger("sos_api.test")

        with caplog.at_level(logging.ERROR, logger="sos_api.test"):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                logger.exception("Sweep failed")

        assert caplog.records[-1].exc_info is not None


class TestSetupLogging:
    """setup_logging picks the formatter."""

    def test_json_and_text(self):
        root = logging.getLogger()
        original_handlers = root.handlers[:]
        original_level = root.level
        try:
            setup_logging(log_format="json", log_level="DEBUG")
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
            assert root.level == logging.DEBUG

            setup_logging(log_format="text", log_level="warning")
            assert isinstance(root.handlers[0].formatter, TextFormatter)
            assert root.level == logging.WARNING
        finally:
            root.handlers[:] = original_handlers
            root.setLevel(original_level)
