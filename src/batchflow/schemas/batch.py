"""Batch request/response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from batchflow.core.constants import ImportType


class FileUpload(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=512)
    file_url: str = Field(..., min_length=1, description="Storage URL of the uploaded file")
    file_size_bytes: int | None = Field(None, ge=0)


class BatchCreateRequest(BaseModel):
    import_type: ImportType = Field(ImportType.RECEIPTS, description="Kind of documents")
    source_format: str | None = Field(None, max_length=32)
    files: list[FileUpload] = Field(default_factory=list)


class BatchItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    file_name: str
    file_format: str
    order: int
    status: str


class BatchCreateResult(BaseModel):
    batch_id: UUID
    items: list[BatchItemResponse]
    enqueued: int = 0
    enqueue_failed: int = 0


class BatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    import_type: str
    source_format: str | None = None
    status: str
    total_files: int
    processed_files: int
    successful_files: int
    failed_files: int
    duplicate_files: int
    skipped_files: int
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class BatchStatusSummary(BatchResponse):
    completion_percentage: int = Field(..., ge=0, le=100)
    remaining_files: int
    estimated_completion_at: datetime | None = None
    errors: list[dict] = Field(default_factory=list)
    has_retryable_items: bool = False


class BatchProgress(BaseModel):
    percentage: int
    status: str
    processed: int
    total: int
    successful: int
    failed: int
    duplicates: int
    skipped: int
    remaining: int
    is_complete: bool
    estimated_completion_at: datetime | None = None


class BatchItemStatus(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    file_name: str
    status: str
    error_message: str | None = None
    error_code: str | None = None
    retry_count: int
    order: int


class BatchListResult(BaseModel):
    batches: list[BatchResponse]
    next_cursor: UUID | None = None
    has_more: bool = False


class RetryResult(BaseModel):
    item_id: UUID
    status: str
    retry_count: int
    enqueued: bool


class RetryFailedResult(BaseModel):
    retried_count: int
    errors: list[str] = Field(default_factory=list)


class RequeueResult(BaseModel):
    requeued_count: int
    errors: list[str] = Field(default_factory=list)


class ActivityEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    batch_item_id: UUID | None = None
    activity_type: str
    message: str
    file_name: str | None = None
    details: dict | None = None
    duration_ms: int | None = None
    created_at: datetime
