"""Batch coordination.

Creates batches and their items, fans jobs out to the queue, and derives
batch-level status from item state. Item processing itself lives in
``processor.py``.
"""

import logging
import math
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.clients.protocols import JobQueue
from batchflow.config import settings
from batchflow.core.constants import (
    FINISHED_BATCH_STATUSES,
    BatchStatus,
    ImportType,
    ItemStatus,
    get_file_format,
)
from batchflow.core.exceptions import (
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from batchflow.core.logging import filter_pii
from batchflow.models.base import as_utc, utcnow
from batchflow.models.batch import ImportBatch
from batchflow.models.batch_item import BatchItem
from batchflow.repositories.activity import ActivityRepository
from batchflow.repositories.batch import BatchRepository
from batchflow.repositories.batch_item import BatchItemRepository
from batchflow.schemas.batch import (
    BatchCreateResult,
    BatchItemResponse,
    BatchItemStatus,
    BatchListResult,
    BatchProgress,
    BatchResponse,
    BatchStatusSummary,
    FileUpload,
    RequeueResult,
    RetryFailedResult,
    RetryResult,
)
from batchflow.schemas.internal import ImportJobPayload
from batchflow.services.activity import ActivityLogger

logger = logging.getLogger(__name__)

ACTIVE_BATCH_STATUSES = frozenset({BatchStatus.PENDING.value, BatchStatus.PROCESSING.value})


def derive_batch_status(counts: dict[str, int], started: bool) -> str:
    """Batch status implied by item status counts.

    - any item pending/processing: ``processing`` once work has started, else ``pending``
    - every item failed: ``failed``
    - at least one completed or duplicate: ``completed``
    - every item skipped: ``cancelled``
    - otherwise (failed and skipped only): ``failed``
    """
    total = sum(counts.values())
    if total == 0:
        return BatchStatus.PENDING.value

    pending = counts.get(ItemStatus.PENDING.value, 0)
    processing = counts.get(ItemStatus.PROCESSING.value, 0)
    if pending or processing:
        if started or processing or (pending < total):
            return BatchStatus.PROCESSING.value
        return BatchStatus.PENDING.value

    if counts.get(ItemStatus.FAILED.value, 0) == total:
        return BatchStatus.FAILED.value
    if counts.get(ItemStatus.COMPLETED.value, 0) + counts.get(ItemStatus.DUPLICATE.value, 0):
        return BatchStatus.COMPLETED.value
    if counts.get(ItemStatus.SKIPPED.value, 0) == total:
        return BatchStatus.CANCELLED.value
    return BatchStatus.FAILED.value


def completion_percentage(processed: int, total: int) -> int:
    if total <= 0:
        return 0
    return min(100, math.floor(processed * 100 / total + 0.5))


def estimate_completion(
    started_at: datetime | None, processed: int, remaining: int, now: datetime
) -> datetime | None:
    """Linear extrapolation: ``now + elapsed * remaining / processed``."""
    if started_at is None or processed <= 0:
        return None
    elapsed = (now - as_utc(started_at)).total_seconds()
    return now + timedelta(seconds=max(elapsed, 0) * remaining / processed)


class BatchCoordinator:
    """Owns batch lifecycle: creation, enqueue, status, cancel and retry."""

    def __init__(
        self,
        db: AsyncSession,
        queue: JobQueue | None = None,
        max_retries: int | None = None,
    ):
        self.db = db
        self.queue = queue
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.batch_repo = BatchRepository(db)
        self.item_repo = BatchItemRepository(db)
        self.activity_repo = ActivityRepository(db)
        self.activity = ActivityLogger(db)

    # ------------------------------------------------------------------
    # Creation and enqueue
    # ------------------------------------------------------------------

    async def create_batch(
        self,
        owner_id: UUID,
        import_type: ImportType | str,
        source_format: str | None,
        files: list[FileUpload],
    ) -> tuple[ImportBatch, list[BatchItem]]:
        """Create a batch and one pending item per file in a single transaction.

        Raises:
            ValidationError: If ``files`` is empty or the import type is unknown
            PersistenceError: If the insert fails (nothing is left behind)
        """
        if not files:
            raise ValidationError("BATCH_001")
        try:
            import_type = ImportType(import_type).value
        except ValueError as e:
            raise ValidationError("BATCH_004", {"import_type": str(import_type)}) from e

        try:
            batch = ImportBatch(
                owner_id=owner_id,
                import_type=import_type,
                source_format=source_format,
                status=BatchStatus.PENDING.value,
                total_files=len(files),
                errors=[],
            )
            self.db.add(batch)
            await self.db.flush()

            items = [
                BatchItem(
                    batch_id=batch.id,
                    owner_id=owner_id,
                    file_name=f.file_name,
                    file_url=f.file_url,
                    file_size_bytes=f.file_size_bytes,
                    file_format=get_file_format(f.file_name if "." in f.file_name else f.file_url),
                    order=index,
                    status=ItemStatus.PENDING.value,
                    retry_count=0,
                )
                for index, f in enumerate(files)
            ]
            self.db.add_all(items)
            self.activity.batch_created(batch.id, owner_id, len(items), import_type)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            if settings.debug:
                logger.exception("Batch creation failed", extra={"error_type": type(e).__name__})
            else:
                logger.error("Batch creation failed", extra={"error_type": type(e).__name__})
            raise PersistenceError("DB_001", {"stage": "create_batch"}) from e

        logger.info(
            "Batch created",
            extra={"batch_id": str(batch.id), "owner_id": str(owner_id), "status": batch.status},
        )
        return batch, items

    @staticmethod
    def build_payload(batch: ImportBatch, item: BatchItem) -> ImportJobPayload:
        return ImportJobPayload(
            batch_id=batch.id,
            batch_item_id=item.id,
            owner_id=item.owner_id,
            file_url=item.file_url,
            file_name=item.file_name,
            file_format=item.file_format,
            import_type=batch.import_type,
            source_format=batch.source_format,
            order=item.order,
        )

    async def _submit(self, batch: ImportBatch, item: BatchItem) -> str | None:
        """Submit one job. Returns an error message instead of raising."""
        if self.queue is None:
            return "No job queue configured"
        try:
            await self.queue.enqueue(self.build_payload(batch, item))
        except Exception as e:
            # A queue outage must not fail the batch; the item stays pending for requeue.
            logger.warning(
                "Enqueue failed",
                extra={
                    "batch_id": str(batch.id),
                    "batch_item_id": str(item.id),
                    "error_type": type(e).__name__,
                },
            )
            return filter_pii(str(e)) or type(e).__name__
        return None

    async def enqueue(self, batch: ImportBatch, items: list[BatchItem]) -> tuple[int, list[str]]:
        """Submit one job per item.

        Failures are per item: the item stays ``pending`` and the error is
        appended to ``Batch.errors`` for the requeue sweep.

        Returns:
            (number enqueued, error messages)
        """
        enqueued = 0
        errors: list[str] = []
        records: list[dict] = []
        for item in items:
            error = await self._submit(batch, item)
            if error is None:
                enqueued += 1
                continue
            errors.append(f"{item.file_name}: {error}")
            records.append(
                {
                    "batch_item_id": str(item.id),
                    "file_name": item.file_name,
                    "error_code": "QUEUE_001",
                    "message": error,
                    "at": utcnow().isoformat(),
                }
            )

        if records:
            await self.batch_repo.append_errors(batch.id, records)
            await self.db.commit()
        return enqueued, errors

    async def start_import(
        self,
        owner_id: UUID,
        import_type: ImportType | str,
        source_format: str | None,
        files: list[FileUpload],
    ) -> BatchCreateResult:
        """Create a batch and enqueue all of its items."""
        batch, items = await self.create_batch(owner_id, import_type, source_format, files)
        enqueued, errors = await self.enqueue(batch, items)
        return BatchCreateResult(
            batch_id=batch.id,
            items=[BatchItemResponse.model_validate(i) for i in items],
            enqueued=enqueued,
            enqueue_failed=len(errors),
        )

    # ------------------------------------------------------------------
    # Status queries (pure reads)
    # ------------------------------------------------------------------

    async def _get_owned_batch(self, batch_id: UUID, owner_id: UUID) -> ImportBatch:
        batch = await self.batch_repo.get_for_owner(batch_id, owner_id)
        if batch is None:
            raise NotFoundError("BATCH_002", {"batch_id": str(batch_id)})
        return batch

    async def get_batch_status_summary(self, batch_id: UUID, owner_id: UUID) -> BatchStatusSummary:
        """Counters, completion percentage and ETA recomputed from stored state.

        Raises:
            NotFoundError: If no batch matches (batch_id, owner_id)
        """
        batch = await self._get_owned_batch(batch_id, owner_id)
        items = await self.item_repo.list_for_batch(batch.id)

        counts: dict[str, int] = {}
        for item in items:
            counts[item.status] = counts.get(item.status, 0) + 1

        status = batch.status
        if status != BatchStatus.CANCELLED.value:
            status = derive_batch_status(counts, batch.started_at is not None)

        now = utcnow()
        remaining = batch.total_files - batch.processed_files
        if status in FINISHED_BATCH_STATUSES:
            eta = as_utc(batch.completed_at)
        else:
            eta = estimate_completion(batch.started_at, batch.processed_files, remaining, now)

        base = BatchResponse.model_validate(batch).model_dump()
        base["status"] = status
        return BatchStatusSummary(
            **base,
            completion_percentage=completion_percentage(batch.processed_files, batch.total_files),
            remaining_files=remaining,
            estimated_completion_at=eta,
            errors=list(batch.errors or []),
            has_retryable_items=any(
                i.status == ItemStatus.FAILED.value and i.retry_count < self.max_retries
                for i in items
            ),
        )

    async def get_batch_progress(self, batch_id: UUID, owner_id: UUID) -> BatchProgress:
        """UI-oriented projection of the status summary."""
        summary = await self.get_batch_status_summary(batch_id, owner_id)
        return BatchProgress(
            percentage=summary.completion_percentage,
            status=summary.status,
            processed=summary.processed_files,
            total=summary.total_files,
            successful=summary.successful_files,
            failed=summary.failed_files,
            duplicates=summary.duplicate_files,
            skipped=summary.skipped_files,
            remaining=summary.remaining_files,
            is_complete=summary.status
            in (*FINISHED_BATCH_STATUSES, BatchStatus.CANCELLED.value),
            estimated_completion_at=summary.estimated_completion_at,
        )

    async def get_batch_items_status(self, batch_id: UUID, owner_id: UUID) -> list[BatchItemStatus]:
        batch = await self._get_owned_batch(batch_id, owner_id)
        items = await self.item_repo.list_for_batch(batch.id)
        return [BatchItemStatus.model_validate(i) for i in items]

    async def list_batches(
        self,
        owner_id: UUID,
        limit: int | None = None,
        cursor: UUID | None = None,
        status: BatchStatus | str | None = None,
    ) -> BatchListResult:
        """Keyset-paginated batches, newest first.

        Fetches ``limit + 1`` rows to know whether another page exists; the
        cursor for the next page is the id of the last batch returned.
        """
        if limit is None:
            limit = settings.batch_list_default_limit
        if not 1 <= limit <= settings.batch_list_max_limit:
            raise ValidationError("VAL_001", {"limit": limit})
        status_value = BatchStatus(status).value if status else None

        rows = await self.batch_repo.list_page(owner_id, limit + 1, cursor, status_value)
        has_more = len(rows) > limit
        rows = rows[:limit]
        return BatchListResult(
            batches=[BatchResponse.model_validate(b) for b in rows],
            next_cursor=rows[-1].id if has_more and rows else None,
            has_more=has_more,
        )

    async def get_batch_activity(self, batch_id: UUID, owner_id: UUID, limit: int = 100):
        batch = await self._get_owned_batch(batch_id, owner_id)
        return await self.activity_repo.list_for_batch(batch.id, limit)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def refresh_batch_status(self, batch_id: UUID) -> ImportBatch | None:
        """Recompute and store batch status from item states.

        A cancelled batch keeps its status. The ``batch_completed`` activity
        entry is written only by the caller whose conditional UPDATE moved the
        batch into a finished state.
        """
        batch = await self.batch_repo.get_by_id(batch_id)
        if batch is None or batch.status == BatchStatus.CANCELLED.value:
            return batch

        counts = await self.item_repo.status_counts(batch_id)
        new_status = derive_batch_status(counts, batch.started_at is not None)
        now = utcnow()

        if new_status in FINISHED_BATCH_STATUSES:
            won = await self.batch_repo.transition_status(
                batch_id,
                ACTIVE_BATCH_STATUSES,
                new_status,
                completed_at=now,
                estimated_completion_at=None,
            )
            if won:
                batch = await self.batch_repo.get_by_id(batch_id)
                self.activity.batch_completed(
                    batch.id,
                    batch.owner_id,
                    new_status,
                    batch.successful_files,
                    batch.failed_files,
                    batch.duplicate_files,
                    batch.skipped_files,
                )
                logger.info(
                    "Batch finished",
                    extra={"batch_id": str(batch_id), "status": new_status},
                )
        elif new_status != batch.status:
            await self.batch_repo.transition_status(
                batch_id, {batch.status}, new_status, completed_at=None
            )
        else:
            remaining = batch.total_files - batch.processed_files
            await self.batch_repo.set_estimated_completion(
                batch_id,
                estimate_completion(batch.started_at, batch.processed_files, remaining, now),
            )

        await self.db.commit()
        return await self.batch_repo.get_by_id(batch_id)

    async def cancel_batch(self, batch_id: UUID, owner_id: UUID) -> BatchStatusSummary:
        """Cancel a batch: pending items become ``skipped``; in-flight items stop
        before duplicate/categorize/persist work.

        Raises:
            NotFoundError: Unknown batch for owner
            ConflictError: Batch already completed or failed
        """
        batch = await self._get_owned_batch(batch_id, owner_id)
        if batch.status in FINISHED_BATCH_STATUSES:
            raise ConflictError("BATCH_003", {"status": batch.status})

        if batch.status != BatchStatus.CANCELLED.value:
            now = utcnow()
            moved = await self.batch_repo.transition_status(
                batch.id,
                ACTIVE_BATCH_STATUSES,
                BatchStatus.CANCELLED.value,
                completed_at=now,
                estimated_completion_at=None,
            )
            if not moved:
                await self.db.rollback()
                raise ConflictError("BATCH_003")
            skipped = await self.item_repo.skip_pending(batch.id, now)
            await self.batch_repo.increment_counters(
                batch.id, processed_files=skipped, skipped_files=skipped
            )
            await self.db.commit()
            logger.info(
                "Batch cancelled",
                extra={"batch_id": str(batch.id), "status": BatchStatus.CANCELLED.value},
            )

        return await self.get_batch_status_summary(batch.id, owner_id)

    async def requeue_failed_item(self, batch: ImportBatch, item: BatchItem) -> bool:
        """``failed -> pending`` (retry_count + 1), then enqueue.

        The failed attempt's contribution to ``processed_files`` and
        ``failed_files`` is reversed in the same transaction. If the enqueue
        fails the item goes back to ``failed`` with the queue error.

        Returns:
            True if the job was enqueued

        Raises:
            ConflictError: Item is no longer failed or is at the retry cap
        """
        reset = await self.item_repo.reset_for_retry(item.id, self.max_retries)
        if not reset:
            await self.db.rollback()
            raise ConflictError("ITEM_003", {"batch_item_id": str(item.id)})

        await self.batch_repo.increment_counters(batch.id, processed_files=-1, failed_files=-1)
        await self.batch_repo.transition_status(
            batch.id,
            FINISHED_BATCH_STATUSES,
            BatchStatus.PROCESSING.value,
            completed_at=None,
        )
        await self.db.commit()

        error = await self._submit(batch, item)
        if error is None:
            logger.info(
                "Item re-enqueued",
                extra={"batch_id": str(batch.id), "batch_item_id": str(item.id)},
            )
            return True

        await self.item_repo.finish(
            item.id,
            ItemStatus.PENDING.value,
            status=ItemStatus.FAILED.value,
            error_code="QUEUE_001",
            error_message=error,
            processed_at=utcnow(),
        )
        await self.batch_repo.increment_counters(batch.id, processed_files=1, failed_files=1)
        await self.db.commit()
        await self.refresh_batch_status(batch.id)
        return False

    async def retry_item(
        self, item_id: UUID, owner_id: UUID, batch_id: UUID | None = None
    ) -> RetryResult:
        """User-initiated retry of one failed item.

        Raises:
            NotFoundError: Unknown item for owner (or not in ``batch_id`` when given)
            ConflictError: Item not failed, at the retry cap, or batch cancelled
        """
        item = await self.item_repo.get_for_owner(item_id, owner_id)
        if item is None or (batch_id is not None and item.batch_id != batch_id):
            raise NotFoundError("ITEM_001", {"batch_item_id": str(item_id)})
        if item.status != ItemStatus.FAILED.value:
            raise ConflictError("ITEM_002", {"status": item.status})
        if item.retry_count >= self.max_retries:
            raise ConflictError("ITEM_003", {"retry_count": item.retry_count})

        batch = await self.batch_repo.get_by_id(item.batch_id)
        if batch.status == BatchStatus.CANCELLED.value:
            raise ConflictError("BATCH_005")

        enqueued = await self.requeue_failed_item(batch, item)
        item = await self.item_repo.get_by_id(item.id)
        return RetryResult(
            item_id=item.id,
            status=item.status,
            retry_count=item.retry_count,
            enqueued=enqueued,
        )

    async def retry_failed_items(self, batch_id: UUID, owner_id: UUID) -> RetryFailedResult:
        """Retry every failed item of a batch that is still under the cap."""
        batch = await self._get_owned_batch(batch_id, owner_id)
        if batch.status == BatchStatus.CANCELLED.value:
            raise ConflictError("BATCH_005")

        failed = await self.item_repo.list_for_batch(batch.id, status=ItemStatus.FAILED.value)
        retried = 0
        errors: list[str] = []
        for item in failed:
            if item.retry_count >= self.max_retries:
                errors.append(f"{item.file_name}: retry limit reached")
                continue
            try:
                enqueued = await self.requeue_failed_item(batch, item)
            except ConflictError:
                errors.append(f"{item.file_name}: no longer retryable")
                continue
            if enqueued:
                retried += 1
            else:
                errors.append(f"{item.file_name}: could not be enqueued")

        return RetryFailedResult(retried_count=retried, errors=errors)

    async def requeue_pending_items(self, batch_id: UUID, owner_id: UUID) -> RequeueResult:
        """Re-submit items left ``pending`` (e.g. after an enqueue failure).

        Safe to call repeatedly: a redelivered job for an item that has since
        been processed is a no-op in the processor.
        """
        batch = await self._get_owned_batch(batch_id, owner_id)
        if batch.status == BatchStatus.CANCELLED.value:
            raise ConflictError("BATCH_005")

        pending = await self.item_repo.list_for_batch(batch.id, status=ItemStatus.PENDING.value)
        enqueued, errors = await self.enqueue(batch, pending)
        return RequeueResult(requeued_count=enqueued, errors=errors)
