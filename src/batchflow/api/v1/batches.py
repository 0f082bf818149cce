"""Batch import endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from batchflow.api.deps import OwnerId, get_batch_coordinator
from batchflow.core.constants import BatchStatus
from batchflow.schemas.batch import (
    ActivityEntryResponse,
    BatchCreateRequest,
    BatchCreateResult,
    BatchItemStatus,
    BatchListResult,
    BatchProgress,
    BatchStatusSummary,
    RequeueResult,
    RetryFailedResult,
    RetryResult,
)
from batchflow.services.batch import BatchCoordinator

router = APIRouter(prefix="/batches", tags=["batches"])

Coordinator = Annotated[BatchCoordinator, Depends(get_batch_coordinator)]


@router.post(
    "",
    response_model=BatchCreateResult,
    status_code=status.HTTP_201_CREATED,
    summary="Create an import batch",
    description="""
    Create a batch with one item per file and enqueue a processing job for each.

    Files must already be uploaded to storage; only their URLs are sent here.
    Enqueue failures do not fail the request: affected items stay `pending`
    and are listed in the batch's `errors` for `/requeue`.
    """,
    responses={
        201: {"description": "Batch created"},
        400: {"description": "No files, or invalid import type"},
        401: {"description": "Not authenticated"},
    },
)
async def create_batch(
    request: BatchCreateRequest, owner_id: OwnerId, coordinator: Coordinator
) -> BatchCreateResult:
    return await coordinator.start_import(
        owner_id, request.import_type, request.source_format, request.files
    )


@router.get(
    "",
    response_model=BatchListResult,
    summary="List batches",
    description="""
    Newest-first, keyset-paginated list of the caller's batches.

    Pass the previous response's `next_cursor` as `cursor` to fetch the next
    page. Pages never overlap or skip rows, even while new batches are created.
    """,
)
async def list_batches(
    owner_id: OwnerId,
    coordinator: Coordinator,
    limit: Annotated[
        int | None, Query(ge=1, le=100, description="Page size (1-100), default from settings")
    ] = None,
    cursor: Annotated[UUID | None, Query(description="Last batch id of previous page")] = None,
    status_filter: Annotated[
        BatchStatus | None, Query(alias="status", description="Filter by status")
    ] = None,
) -> BatchListResult:
    return await coordinator.list_batches(owner_id, limit, cursor, status_filter)


@router.get(
    "/{batch_id}",
    response_model=BatchStatusSummary,
    summary="Batch status summary",
    responses={404: {"description": "Batch not found"}},
)
async def get_batch(
    batch_id: UUID, owner_id: OwnerId, coordinator: Coordinator
) -> BatchStatusSummary:
    return await coordinator.get_batch_status_summary(batch_id, owner_id)


@router.get("/{batch_id}/progress", response_model=BatchProgress, summary="Batch progress")
async def get_batch_progress(
    batch_id: UUID, owner_id: OwnerId, coordinator: Coordinator
) -> BatchProgress:
    return await coordinator.get_batch_progress(batch_id, owner_id)


@router.get(
    "/{batch_id}/items",
    response_model=list[BatchItemStatus],
    summary="Per-file status in upload order",
)
async def get_batch_items(
    batch_id: UUID, owner_id: OwnerId, coordinator: Coordinator
) -> list[BatchItemStatus]:
    return await coordinator.get_batch_items_status(batch_id, owner_id)


@router.get(
    "/{batch_id}/activity",
    response_model=list[ActivityEntryResponse],
    summary="Activity log, newest first",
)
async def get_batch_activity(
    batch_id: UUID,
    owner_id: OwnerId,
    coordinator: Coordinator,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> list[ActivityEntryResponse]:
    entries = await coordinator.get_batch_activity(batch_id, owner_id, limit)
    return [ActivityEntryResponse.model_validate(e) for e in entries]


@router.post(
    "/{batch_id}/cancel",
    response_model=BatchStatusSummary,
    summary="Cancel a batch",
    responses={409: {"description": "Batch already finished"}},
)
async def cancel_batch(
    batch_id: UUID, owner_id: OwnerId, coordinator: Coordinator
) -> BatchStatusSummary:
    return await coordinator.cancel_batch(batch_id, owner_id)


@router.post(
    "/{batch_id}/retry-failed",
    response_model=RetryFailedResult,
    summary="Retry all failed items under the retry limit",
)
async def retry_failed_items(
    batch_id: UUID, owner_id: OwnerId, coordinator: Coordinator
) -> RetryFailedResult:
    return await coordinator.retry_failed_items(batch_id, owner_id)


@router.post(
    "/{batch_id}/requeue",
    response_model=RequeueResult,
    summary="Re-submit items that were never picked up",
)
async def requeue_pending_items(
    batch_id: UUID, owner_id: OwnerId, coordinator: Coordinator
) -> RequeueResult:
    return await coordinator.requeue_pending_items(batch_id, owner_id)


@router.post(
    "/{batch_id}/items/{item_id}/retry",
    response_model=RetryResult,
    summary="Retry one failed item",
    responses={
        404: {"description": "Item not found"},
        409: {"description": "Item not failed, at retry limit, or batch cancelled"},
    },
)
async def retry_item(
    batch_id: UUID, item_id: UUID, owner_id: OwnerId, coordinator: Coordinator
) -> RetryResult:
    return await coordinator.retry_item(item_id, owner_id, batch_id=batch_id)
