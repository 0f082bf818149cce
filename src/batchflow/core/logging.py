"""Structured logging setup with PII filtering.

Log records carry context through ``extra={...}``; the JSON formatter emits
the known context fields and scrubs free text (file names, merchants, error
strings) before it leaves the process.
"""

import json
import logging
import re
import sys

from batchflow.config import settings

# PII patterns to filter from logs
PII_PATTERNS = [
    # Card numbers (13-19 digits, with or without spaces/dashes)
    (re.compile(r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{1,7}\b"), "[CARD]"),
    # Email addresses
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
    # Phone numbers (international format)
    (re.compile(r"\+\d{1,3}[-.\s]?\(?\d{2,4}\)?[-.\s]?\d{3,4}[-.\s]?\d{4,5}"), "[PHONE]"),
    # Account numbers following a keyword
    (re.compile(r"(?:acct|account)[\s#:]*\d{4,}", re.I), "[ACCOUNT]"),
]

# Context fields copied from ``extra`` into the JSON payload.
CONTEXT_FIELDS = (
    "request_id",
    "owner_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "error_code",
    "error_type",
    "client_ip",
    "batch_id",
    "batch_item_id",
    "activity_type",
    "status",
    "retry_count",
    "strategy",
    "rule_id",
    "transaction_id",
    "confidence",
)


def filter_pii(text: str) -> str:
    """Remove PII from text using regex patterns.

    Args:
        text: Input text that may contain PII

    Returns:
        Text with PII replaced by placeholders
    """
    if not text:
        return text

    filtered = text
    for pattern, replacement in PII_PATTERNS:
        filtered = pattern.sub(replacement, filtered)

    return filtered


class JSONLogFormatter(logging.Formatter):
    """Format log records as JSON for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": filter_pii(record.getMessage()),
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            log_data[name] = filter_pii(value) if isinstance(value, str) else value

        if record.exc_info:
            log_data["exception"] = filter_pii(self.formatException(record.exc_info))

        return json.dumps(log_data, default=str)


def configure_logging() -> None:
    """Install a single stderr handler on the root logger."""
    handler = logging.StreamHandler(sys.stderr)
    if settings.log_json:
        handler.setFormatter(JSONLogFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level.upper())
