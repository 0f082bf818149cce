"""Categorization request/response schemas."""

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from batchflow.core.constants import CategorizationMethod


class CategorizationInput(BaseModel):
    merchant_name: str | None = None
    description: str | None = None
    amount: Decimal | None = None


class CategorizationOptions(BaseModel):
    include_ai: bool = True
    min_confidence: float = Field(0.7, ge=0.0, le=1.0)


class AISuggestion(BaseModel):
    """What the AI categorizer returns; confidence may be missing."""

    category_id: UUID
    confidence: float | None = Field(None, ge=0.0, le=1.0)


class CategorizationResult(BaseModel):
    """Engine decision. ``category_id`` is None when nothing qualified."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    category_id: UUID | None = None
    category_name: str | None = None
    method: CategorizationMethod = CategorizationMethod.NONE
    confidence: float = 0.0
    matched_rule_id: UUID | None = None

    @property
    def is_categorized(self) -> bool:
        return self.category_id is not None

    @classmethod
    def uncategorized(cls) -> "CategorizationResult":
        return cls()


class CategorizationPreviewRequest(BaseModel):
    merchant_name: str | None = Field(None, description="Merchant to test")
    description: str | None = Field(None, description="Description to test")
    amount: Decimal | None = Field(None, description="Signed amount")
    include_ai: bool = Field(False, description="Also consult the AI categorizer")
    min_confidence: float | None = Field(
        None, ge=0.0, le=1.0, description="Override the configured threshold"
    )
