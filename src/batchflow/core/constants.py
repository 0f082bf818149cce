"""Enumerations shared across the import pipeline.

Values are stored as plain strings in the database so they stay readable in
ad-hoc queries and migrations.
"""

from enum import Enum


class BatchStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"


# Items a worker may (re)claim.
CLAIMABLE_ITEM_STATUSES = frozenset({ItemStatus.PENDING.value, ItemStatus.PROCESSING.value})
FINISHED_BATCH_STATUSES = frozenset({BatchStatus.COMPLETED.value, BatchStatus.FAILED.value})


class ImportType(str, Enum):
    RECEIPTS = "receipts"
    BANK_STATEMENTS = "bank_statements"
    INVOICES = "invoices"
    MIXED = "mixed"


class ActivityType(str, Enum):
    BATCH_CREATED = "batch_created"
    FILE_UPLOADED = "file_uploaded"
    EXTRACTION_START = "extraction_start"
    EXTRACTION_COMPLETE = "extraction_complete"
    CATEGORIZATION_START = "categorization_start"
    CATEGORIZATION_COMPLETE = "categorization_complete"
    DUPLICATE_DETECTED = "duplicate_detected"
    ITEM_COMPLETED = "item_completed"
    ITEM_FAILED = "item_failed"
    BATCH_COMPLETED = "batch_completed"


class RuleField(str, Enum):
    MERCHANT_NAME = "merchant_name"
    DESCRIPTION = "description"


class MatchType(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    REGEX = "regex"


class CategorizationMethod(str, Enum):
    RULE = "rule"
    HISTORY = "history"
    AI = "ai"
    NONE = "none"


class DuplicateMatchType(str, Enum):
    EXACT_IMAGE = "exact_image"
    MERCHANT_DATE_AMOUNT = "merchant_date_amount"


class TransferType(str, Enum):
    INTERNAL = "internal"
    CREDIT_CARD_PAYMENT = "credit_card_payment"


class ExclusionReason(str, Enum):
    DUPLICATE = "duplicate"
    INTERNAL_TRANSFER = "internal_transfer"
    CREDIT_CARD_PAYMENT = "credit_card_payment"
    MANUAL = "manual"
    INSTALLMENT_PLAN_CREDIT = "installment_plan_credit"


# Extension -> format understood by the extraction service.
FILE_FORMATS: dict[str, str] = {
    "jpg": "jpg",
    "jpeg": "jpg",
    "png": "png",
    "webp": "webp",
    "gif": "gif",
    "pdf": "pdf",
    "csv": "csv",
    "xlsx": "xlsx",
    "xls": "xls",
}
DEFAULT_FILE_FORMAT = "jpg"


def get_file_format(file_name: str | None) -> str:
    """Derive the extraction format from a file name or URL extension."""
    if not file_name or "." not in file_name:
        return DEFAULT_FILE_FORMAT
    ext = file_name.rsplit(".", 1)[-1].split("?", 1)[0].lower()
    return FILE_FORMATS.get(ext, DEFAULT_FILE_FORMAT)
