"""Unit tests for PII filtering and the JSON log formatter."""
import json
import logging

from batchflow.core.logging import JSONLogFormatter, filter_pii


def test_filter_pii_masks_card_numbers():
    assert filter_pii("card 4111 1111 1111 1111 declined") == "card [CARD] declined"


def test_filter_pii_masks_email_and_account():
    text = filter_pii("sent to jane.doe@example.com for account 12345678")
    assert "[EMAIL]" in text
    assert "[ACCOUNT]" in text
    assert "jane.doe" not in text


def test_filter_pii_passes_through_empty():
    assert filter_pii("") == ""


def test_json_formatter_emits_context_fields():
    record = logging.LogRecord(
        name="batchflow.services.processor",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Item completed",
        args=(),
        exc_info=None,
    )
    record.batch_id = "b-1"
    record.duration_ms = 42
    record.path = "/api/v1/batches?email=bob@example.com"

    data = json.loads(JSONLogFormatter().format(record))

    assert data["message"] == "Item completed"
    assert data["level"] == "INFO"
    assert data["batch_id"] == "b-1"
    assert data["duration_ms"] == 42
    assert data["path"] == "/api/v1/batches?email=[EMAIL]"
    assert "owner_id" not in data
