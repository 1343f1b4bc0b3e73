"""Unit tests for logging utilities."""

import json
import logging
from unittest.mock import patch

from labproxy.services.models import ProxyRequest
from labproxy.utils.logger import (
    StructuredFormatter,
    get_logger,
    log_request,
    log_response,
)


def _record(**extra):
    logger = logging.getLogger("labproxy.tests.formatter")
    return logger.makeRecord(
        logger.name, logging.INFO, __file__, 1, "Forwarding to %s",
        ("https://badssl.com/",), None, extra=extra,
    )


class TestStructuredFormatter:
    """Test cases for StructuredFormatter."""

    def test_format_includes_extra_fields(self):
        """Test that extra fields end up in the JSON entry."""
        entry = json.loads(StructuredFormatter().format(
            _record(status_code=200, target_url="https://badssl.com/")
        ))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "labproxy.tests.formatter"
        assert entry["message"] == "Forwarding to https://badssl.com/"
        assert entry["status_code"] == 200
        assert entry["target_url"] == "https://badssl.com/"
        assert "args" not in entry
        assert "exception" not in entry


class TestGetLogger:
    """Test cases for get_logger."""

    def test_level_from_environment(self):
        """Test that LOG_LEVEL sets the logger level."""
        with patch.dict("os.environ", {"LOG_LEVEL": "warning"}):
            logger = get_logger("labproxy.tests.level")

        assert logger.level == logging.WARNING
        assert logger.propagate is False
        assert len(logger.handlers) == 1

    def test_structured_formatter_in_lambda(self):
        """Test that Lambda environments log JSON."""
        with patch.dict("os.environ", {"AWS_LAMBDA_FUNCTION_NAME": "labproxy"}):
            logger = get_logger("labproxy.tests.lambda")

        assert isinstance(logger.handlers[0].formatter, StructuredFormatter)

    def test_configured_once(self):
        """Test that repeated calls do not stack handlers."""
        get_logger("labproxy.tests.once")
        logger = get_logger("labproxy.tests.once")

        assert len(logger.handlers) == 1


class TestRequestResponseLogging:
    """Test cases for log_request and log_response."""

    def test_log_request(self, caplog):
        """Test that request details are attached to the record."""
        logger = logging.getLogger("labproxy.tests.request")
        caplog.set_level(logging.INFO, logger=logger.name)
        request = ProxyRequest(
            method="GET", path="/proxy",
            headers={"user-agent": "pytest"},
            source_ip="10.0.0.1", request_id="req-1",
        )

        log_request(logger, request)

        record = caplog.records[-1]
        assert record.getMessage() == "Incoming request"
        assert record.method == "GET"
        assert record.user_agent == "pytest"
        assert record.source_ip == "10.0.0.1"
        assert record.request_id == "req-1"

    def test_log_response(self, caplog):
        """Test that response details are attached to the record."""
        logger = logging.getLogger("labproxy.tests.response")
        caplog.set_level(logging.INFO, logger=logger.name)

        log_response(logger, 403, 18)

        record = caplog.records[-1]
        assert record.status_code == 403
        assert record.response_size == 18
