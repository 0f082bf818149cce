"""Transaction flag annotations.

Flags are sparse: only fields that were set are stored, so the JSON column
stays small and readers treat a missing key as "not flagged".
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from batchflow.core.constants import DuplicateMatchType, ExclusionReason


class TransactionFlags(BaseModel):
    is_duplicate: bool | None = None
    linked_transaction_id: UUID | None = None
    linked_transaction_type: str | None = None
    duplicate_confidence: float | None = Field(None, ge=0.0, le=1.0)
    duplicate_match_type: DuplicateMatchType | None = None

    is_internal_transfer: bool | None = None
    is_excluded_from_totals: bool | None = None
    exclusion_reason: ExclusionReason | None = None

    is_bnpl_purchase: bool | None = None
    bnpl_provider: str | None = None
    is_installment_credit: bool | None = None
    is_credit_card_payment: bool | None = None

    user_verified: bool | None = None
    verified_at: datetime | None = None
    auto_detected: bool | None = None
    detection_method: str | None = None
    detection_confidence: float | None = Field(None, ge=0.0, le=1.0)

    @classmethod
    def from_storage(cls, data: dict[str, Any] | None) -> "TransactionFlags":
        return cls.model_validate(data or {})

    def to_storage(self) -> dict[str, Any] | None:
        """JSON-safe dict of the set fields, or None when nothing is flagged."""
        data = self.model_dump(mode="json", exclude_none=True)
        return data or None
