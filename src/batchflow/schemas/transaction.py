"""Transaction read and flag-override schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from batchflow.core.constants import TransferType
from batchflow.schemas.flags import TransactionFlags


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    batch_id: UUID | None = None
    merchant_name: str | None = None
    description: str | None = None
    txn_date: date | None = None
    amount: Decimal
    currency: str
    category_id: UUID | None = None
    categorization_method: str
    categorization_confidence: float | None = None
    flags: TransactionFlags | None = None
    created_at: datetime

    @field_validator("flags", mode="before")
    @classmethod
    def empty_flags(cls, v: Any) -> Any:
        return v or None


class ExclusionUpdate(BaseModel):
    excluded: bool = Field(..., description="Exclude from spending totals, or include again")


class DuplicateMark(BaseModel):
    linked_transaction_id: UUID = Field(..., description="The original this transaction repeats")


class TransferMark(BaseModel):
    transfer_type: TransferType = Field(
        TransferType.INTERNAL, description="internal or credit_card_payment"
    )
