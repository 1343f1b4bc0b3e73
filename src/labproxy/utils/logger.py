"""Logging utilities for the lab proxy."""

import json
import logging
import os

from labproxy.services.models import ProxyRequest

# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured JSON.

        Args:
            record: Log record to format.

        Returns:
            str: JSON formatted log message.
        """
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False, default=str)


def get_logger(name: str) -> logging.Logger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically __name__).

    Returns:
        logging.Logger: Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
        logger.setLevel(getattr(logging, log_level, logging.INFO))

        handler = logging.StreamHandler()
        handler.setLevel(logger.level)

        if os.environ.get("AWS_LAMBDA_FUNCTION_NAME"):
            # Use structured logging in Lambda
            formatter = StructuredFormatter()
        else:
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            )

        handler.setFormatter(formatter)
        logger.addHandler(handler)

        # Prevent duplicate logs
        logger.propagate = False

    return logger


def log_request(logger: logging.Logger, request: ProxyRequest) -> None:
    """Log incoming request details.

    Args:
        logger: Logger instance.
        request: Incoming proxy request.
    """
    request_info = {
        "method": request.method,
        "path": request.path,
        "source_ip": request.source_ip,
        "user_agent": request.header("User-Agent"),
        "request_id": request.request_id,
    }

    logger.info("Incoming request", extra=request_info)


def log_response(logger: logging.Logger, status_code: int, response_size: int) -> None:
    """Log response details.

    Args:
        logger: Logger instance.
        status_code: HTTP status code.
        response_size: Response body size in bytes.
    """
    response_info = {"status_code": status_code, "response_size": response_size}

    logger.info("Outgoing response", extra=response_info)
