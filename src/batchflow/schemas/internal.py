"""Internal data schemas passed between pipeline stages.

These models describe what collaborators hand us (extracted transactions,
job payloads) and what the stages hand each other. None are persisted as-is.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from batchflow.core.constants import DuplicateMatchType


class ExtractedTransaction(BaseModel):
    """Normalized output of document extraction.

    ``amount`` is signed: negative is an outflow.
    """

    merchant_name: str | None = Field(None, description="Merchant as printed on the document")
    description: str | None = Field(None, description="Free-text line description")
    txn_date: date | None = Field(None, description="Transaction date")
    amount: Decimal = Field(..., description="Signed amount; negative = outflow")
    currency: str = Field(default="USD", min_length=3, max_length=3)

    @field_validator("merchant_name", "description")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @field_validator("amount")
    @classmethod
    def quantize_cents(cls, v: Decimal) -> Decimal:
        return v.quantize(Decimal("0.01"))


class Fingerprint(BaseModel):
    """Inputs to duplicate detection; any subset may be present."""

    content_hash: str | None = None
    merchant_name: str | None = None
    txn_date: date | None = None
    amount: Decimal | None = None


class DuplicateMatch(BaseModel):
    """A previously ingested transaction the new item duplicates."""

    transaction_id: UUID
    match_type: DuplicateMatchType
    confidence: float


class ImportJobPayload(BaseModel):
    """Everything a worker needs to process one item without batch lookups."""

    batch_id: UUID
    batch_item_id: UUID
    owner_id: UUID
    file_url: str
    file_name: str
    file_format: str
    import_type: str
    source_format: str | None = None
    order: int = 0


class EnqueueReceipt(BaseModel):
    event_id: str


class JobProcessingResult(BaseModel):
    """Outcome of one processing attempt, returned to the queue handler."""

    success: bool
    batch_item_id: UUID
    status: str | None = None
    transaction_id: UUID | None = None
    error: str | None = None
    error_code: str | None = None
    is_duplicate: bool = False
    duplicate_of_transaction_id: UUID | None = None
    retry_scheduled: bool = False
