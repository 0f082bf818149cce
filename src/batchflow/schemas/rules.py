"""Rule and category management schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from batchflow.core.constants import MatchType, RuleField


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Category name")


class CategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    is_system: bool
    owner_id: UUID | None = None


class RuleCreate(BaseModel):
    category_id: UUID = Field(..., description="Target category (system or owned)")
    field: RuleField = Field(RuleField.MERCHANT_NAME, description="Which text to test")
    match_type: MatchType = Field(..., description="exact, contains or regex")
    value: str = Field(..., min_length=1, max_length=500, description="Pattern")


class RuleUpdate(BaseModel):
    """Partial rule update; omitted fields keep their stored values."""

    category_id: UUID | None = Field(None, description="New target category")
    field: RuleField | None = Field(None, description="Which text to test")
    match_type: MatchType | None = Field(None, description="exact, contains or regex")
    value: str | None = Field(None, min_length=1, max_length=500, description="Pattern")
    is_enabled: bool | None = Field(None, description="Disabled rules are skipped")


class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    category_id: UUID
    field: str
    match_type: str
    value: str
    is_enabled: bool
    created_at: datetime


class DeleteResult(BaseModel):
    deleted: bool = True
    detached_transactions: int = Field(
        0, description="Transactions sent back to review by this deletion"
    )
    removed_rules: int = Field(0, description="Rules removed along with a category")
