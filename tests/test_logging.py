from __future__ import annotations

import io
import json
import logging

from aduib_intercept.observability.logging import LogContext, get_logger


def _logger(name: str, fmt: str):
    stream = io.StringIO()
    logger = get_logger(name, log_format=fmt, level="debug", stream=stream)
    return logger, stream


def test_json_records_carry_log_context():
    logger, stream = _logger("tests.logging.json", "json")
    with LogContext(session_id="s-1", interceptor_id="redact"):
        logger.info("invoked %s", "redact", extra={"duration_ms": 3})
    record = json.loads(stream.getvalue())
    assert record["message"] == "invoked redact"
    assert record["level"] == "INFO"
    assert record["session_id"] == "s-1"
    assert record["interceptor_id"] == "redact"
    assert record["request_id"] == "-"
    assert record["duration_ms"] == 3


def test_context_is_restored_on_exit():
    with LogContext(interceptor_id="outer"):
        with LogContext(interceptor_id="inner", request_id="r-1"):
            assert LogContext.snapshot()["interceptor_id"] == "inner"
        snapshot = LogContext.snapshot()
    assert snapshot["interceptor_id"] == "outer"
    assert snapshot["request_id"] is None
    assert LogContext.snapshot()["interceptor_id"] is None


def test_console_format_fills_missing_context_with_dash():
    logger, stream = _logger("tests.logging.console", "console")
    logger.warning("slow handler")
    line = stream.getvalue()
    assert "WARNING tests.logging.console slow handler" in line
    assert "interceptor_id=-" in line


def test_get_logger_does_not_stack_handlers():
    logger, _ = _logger("tests.logging.once", "json")
    get_logger("tests.logging.once", log_format="json")
    assert len(logger.handlers) == 1
    assert logger.level == logging.DEBUG
