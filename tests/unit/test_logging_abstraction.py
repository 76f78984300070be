"""Unit tests for the logging abstraction."""

from __future__ import annotations

import json
import logging

from cdp_logger.correlation import correlation_context
from cdp_logger.logging_abstraction import CDPLogger, HumanReadableFormatter, JSONFormatter, get_logger


def _record(message: str, extra_data: dict[str, object] | None = None) -> logging.LogRecord:
    record = logging.LogRecord("cdp_logger.test", logging.INFO, __file__, 10, message, (), None)
    if extra_data is not None:
        record.extra_data = extra_data
    return record


class TestFormatters:
    """Tests for the JSON and human-readable formatters."""

    def test_json_includes_context_and_correlation(self):
        record = _record("Request queued", {"request_id": 3, "kind": "VERSION_REQUEST"})

        with correlation_context("req-3"):
            payload = json.loads(JSONFormatter().format(record))

        assert payload["message"] == "Request queued"
        assert payload["level"] == "INFO"
        assert payload["correlation_id"] == "req-3"
        assert payload["context"] == {"request_id": 3, "kind": "VERSION_REQUEST"}

    def test_human_readable_appends_context(self):
        record = _record("Node directory replaced", {"nodes": 3})

        with correlation_context("req-12345678901234"):
            line = HumanReadableFormatter().format(record)

        assert "[req-12345678" in line
        assert line.endswith("Node directory replaced | nodes=3")

    def test_human_readable_without_correlation(self):
        line = HumanReadableFormatter().format(_record("Connection open"))

        assert "[------------]" in line


class TestCDPLogger:
    """Tests for the logger wrapper."""

    def test_structured_extra_reaches_records(self, caplog):
        """Keyword context travels as extra_data on the record."""
        logger = get_logger("cdp_logger.tests.structured", log_format="none")

        with caplog.at_level(logging.INFO, logger="cdp_logger.tests.structured"):
            logger.info("Sending %d queued requests", 2, extra={"count": 2})

        assert caplog.records[-1].getMessage() == "Sending 2 queued requests"
        assert caplog.records[-1].extra_data == {"count": 2}

    def test_no_output_format_adds_no_handlers(self):
        logger = CDPLogger("cdp_logger.tests.silent", log_format="none")

        assert logger.handlers == []

    def test_handlers_not_duplicated(self):
        """Creating the same logger twice keeps a single handler."""
        first = get_logger("cdp_logger.tests.dedupe", log_format="human")
        second = get_logger("cdp_logger.tests.dedupe", log_format="human")

        assert len(second.handlers) == 1
        assert first.handlers is second.handlers

    def test_set_level(self):
        logger = get_logger("cdp_logger.tests.level", log_format="none")

        logger.set_level(logging.DEBUG)

        assert logger.logger.level == logging.DEBUG
