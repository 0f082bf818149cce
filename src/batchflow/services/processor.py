"""Per-item processing.

This module runs one delivered job through the item state machine:
1. Claim the item (pending -> processing)
2. Fetch the file and extract its transaction (bounded timeout)
3. Check for duplicates
4. Categorize
5. Detect transaction flags
6. Persist the transaction and the terminal item state in one write

Every terminal outcome updates the item (guarded on ``processing``) and the
batch counters in the same transaction, so a redelivered job can never count
twice.
"""

import asyncio
import hashlib
import logging
import time
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.categorization.engine import CategorizationEngine
from batchflow.categorization.flags import detect_flags
from batchflow.categorization.matchers import normalize_merchant
from batchflow.clients.protocols import AICategorizer, ExtractionService, FileStorage, JobQueue
from batchflow.config import settings
from batchflow.core.constants import BatchStatus, ExclusionReason, ItemStatus
from batchflow.core.errors import get_error, is_retryable
from batchflow.core.exceptions import ExtractionError, ImportPipelineError, PersistenceError
from batchflow.core.logging import filter_pii
from batchflow.models.base import utcnow
from batchflow.models.transaction import Transaction
from batchflow.repositories.batch import BatchRepository
from batchflow.repositories.batch_item import BatchItemRepository
from batchflow.schemas.categorization import (
    CategorizationInput,
    CategorizationOptions,
    CategorizationResult,
)
from batchflow.schemas.flags import TransactionFlags
from batchflow.schemas.internal import (
    DuplicateMatch,
    ExtractedTransaction,
    Fingerprint,
    ImportJobPayload,
    JobProcessingResult,
)
from batchflow.services.activity import ActivityLogger
from batchflow.services.batch import BatchCoordinator
from batchflow.services.duplicates import DuplicateDetector

logger = logging.getLogger(__name__)


class ItemProcessor:
    """Process batch items delivered by the job queue.

    Only extraction failures (including timeouts) whose error code the catalog
    marks retryable are treated as transient. If the batch was cancelled while
    extraction ran, the item is skipped instead of retried.
    When ``auto_retry`` is on and the item is under the retry cap, the failed
    attempt moves the item straight back to ``pending`` (``retry_count`` + 1)
    and re-enqueues it. Failures in later steps mark the item ``failed``
    without consuming a retry and are left for the user to retry.
    """

    def __init__(
        self,
        db: AsyncSession,
        extraction: ExtractionService,
        storage: FileStorage,
        queue: JobQueue | None = None,
        ai_categorizer: AICategorizer | None = None,
        engine: CategorizationEngine | None = None,
        max_retries: int | None = None,
        auto_retry: bool | None = None,
        extraction_timeout: float | None = None,
        categorization_options: CategorizationOptions | None = None,
    ):
        self.db = db
        self.extraction = extraction
        self.storage = storage
        self.queue = queue
        self.engine = engine or CategorizationEngine(db, ai_categorizer)
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.auto_retry = auto_retry if auto_retry is not None else settings.auto_retry_extraction
        self.extraction_timeout = extraction_timeout or settings.extraction_timeout_seconds
        self.categorization_options = categorization_options

        self.item_repo = BatchItemRepository(db)
        self.batch_repo = BatchRepository(db)
        self.duplicates = DuplicateDetector(db)
        self.activity = ActivityLogger(db)
        self.coordinator = BatchCoordinator(db, queue=queue, max_retries=self.max_retries)

    async def process_item(self, payload: ImportJobPayload) -> JobProcessingResult:
        """Run one processing attempt for ``payload.batch_item_id``.

        Never raises for item-level problems; the outcome is recorded on the
        item and returned.
        """
        start_time = time.time()
        item_id = payload.batch_item_id
        extra = {"batch_id": str(payload.batch_id), "batch_item_id": str(item_id)}

        # Step 1: Claim
        now = utcnow()
        if not await self.item_repo.claim(item_id, now):
            await self.db.rollback()
            return await self._skip_redelivery(payload)

        await self.batch_repo.mark_started(payload.batch_id, now)
        await self.batch_repo.transition_status(
            payload.batch_id, {BatchStatus.PENDING.value}, BatchStatus.PROCESSING.value
        )
        self.activity.file_uploaded(payload.batch_id, payload.owner_id, item_id, payload.file_name)
        self.activity.extraction_start(
            payload.batch_id, payload.owner_id, item_id, payload.file_name
        )
        await self.db.commit()
        logger.info("Item claimed", extra=extra)

        # Step 2: Fetch + extract
        extract_start = time.time()
        try:
            content_hash, extracted = await asyncio.wait_for(
                self._fetch_and_extract(payload), timeout=self.extraction_timeout
            )
        except asyncio.TimeoutError:
            return await self._fail(
                payload, "EXTRACT_002", "Extraction timed out", is_retryable("EXTRACT_002")
            )
        except ExtractionError as e:
            message = e.details.get("reason") or get_error(e.error_code)["message"]
            return await self._fail(
                payload, e.error_code, str(message), is_retryable(e.error_code)
            )

        self.activity.extraction_complete(
            payload.batch_id,
            payload.owner_id,
            item_id,
            payload.file_name,
            extracted.merchant_name,
            extracted.amount,
            int((time.time() - extract_start) * 1000),
        )
        await self.db.commit()

        # Steps 3-6
        try:
            if await self._batch_cancelled(payload.batch_id):
                return await self._finish_skipped(payload)

            duplicate = await self.duplicates.find_duplicate(
                payload.owner_id,
                Fingerprint(
                    content_hash=content_hash,
                    merchant_name=extracted.merchant_name,
                    txn_date=extracted.txn_date,
                    amount=extracted.amount,
                ),
                exclude_item_id=item_id,
            )
            if duplicate is not None:
                return await self._finish_duplicate(payload, content_hash, duplicate)

            result = await self._categorize(payload, extracted)
            return await self._finish_completed(
                payload, content_hash, extracted, result, start_time
            )
        except Exception as e:
            await self.db.rollback()
            code = e.error_code if isinstance(e, ImportPipelineError) else "PROC_001"
            if settings.debug:
                logger.exception(
                    "Item processing error", extra={**extra, "error_type": type(e).__name__}
                )
            else:
                logger.error(
                    "Item processing error",
                    extra={**extra, "error_type": type(e).__name__, "error_code": code},
                )
            return await self._fail(payload, code, get_error(code)["message"], transient=False)

    async def _fetch_and_extract(
        self, payload: ImportJobPayload
    ) -> tuple[str, ExtractedTransaction]:
        content = await self.storage.fetch(payload.file_url)
        content_hash = hashlib.sha256(content).hexdigest()
        extracted = await self.extraction.extract(
            payload.file_url, payload.file_format, content=content
        )
        return content_hash, extracted

    async def _batch_cancelled(self, batch_id: UUID) -> bool:
        batch = await self.batch_repo.get_by_id(batch_id)
        return batch is None or batch.status == BatchStatus.CANCELLED.value

    async def _categorize(
        self, payload: ImportJobPayload, extracted: ExtractedTransaction
    ) -> CategorizationResult:
        self.activity.categorization_start(
            payload.batch_id, payload.owner_id, payload.batch_item_id, payload.file_name
        )
        result = await self.engine.categorize(
            CategorizationInput(
                merchant_name=extracted.merchant_name,
                description=extracted.description,
                amount=extracted.amount,
            ),
            payload.owner_id,
            self.categorization_options,
        )
        self.activity.categorization_complete(
            payload.batch_id,
            payload.owner_id,
            payload.batch_item_id,
            payload.file_name,
            result.category_name,
            str(result.method),
            result.confidence,
        )
        return result

    # ------------------------------------------------------------------
    # Terminal outcomes
    # ------------------------------------------------------------------

    async def _finish_completed(
        self,
        payload: ImportJobPayload,
        content_hash: str,
        extracted: ExtractedTransaction,
        result: CategorizationResult,
        start_time: float,
    ) -> JobProcessingResult:
        """Persist transaction + flags + item status + counters as one write."""
        flags = detect_flags(extracted.merchant_name, extracted.description, extracted.amount)
        try:
            txn = Transaction(
                owner_id=payload.owner_id,
                batch_id=payload.batch_id,
                batch_item_id=payload.batch_item_id,
                merchant_name=extracted.merchant_name,
                merchant_key=normalize_merchant(extracted.merchant_name) or None,
                description=extracted.description,
                txn_date=extracted.txn_date,
                amount=extracted.amount,
                currency=extracted.currency.upper(),
                content_hash=content_hash,
                category_id=result.category_id,
                categorization_method=str(result.method),
                categorization_confidence=result.confidence if result.is_categorized else None,
                matched_rule_id=result.matched_rule_id,
                flags=flags.to_storage(),
            )
            self.db.add(txn)
            await self.db.flush()

            applied = await self.item_repo.finish(
                payload.batch_item_id,
                ItemStatus.PROCESSING.value,
                status=ItemStatus.COMPLETED.value,
                transaction_id=txn.id,
                content_hash=content_hash,
                error_code=None,
                error_message=None,
                processed_at=utcnow(),
            )
            if not applied:
                await self.db.rollback()
                return await self._skip_redelivery(payload)

            await self.batch_repo.increment_counters(
                payload.batch_id, processed_files=1, successful_files=1
            )
            duration_ms = int((time.time() - start_time) * 1000)
            self.activity.item_completed(
                payload.batch_id, payload.owner_id, payload.batch_item_id,
                payload.file_name, duration_ms,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("DB_001", {"stage": "persist"}) from e

        logger.info(
            "Item completed",
            extra={
                "batch_id": str(payload.batch_id),
                "batch_item_id": str(payload.batch_item_id),
                "duration_ms": duration_ms,
            },
        )
        await self.coordinator.refresh_batch_status(payload.batch_id)
        return JobProcessingResult(
            success=True,
            batch_item_id=payload.batch_item_id,
            status=ItemStatus.COMPLETED.value,
            transaction_id=txn.id,
        )

    async def _finish_duplicate(
        self, payload: ImportJobPayload, content_hash: str, match: DuplicateMatch
    ) -> JobProcessingResult:
        """No transaction is written; the link lives in the item's flags."""
        flags = TransactionFlags(
            is_duplicate=True,
            linked_transaction_id=match.transaction_id,
            linked_transaction_type="transaction",
            duplicate_confidence=match.confidence,
            duplicate_match_type=match.match_type,
            is_excluded_from_totals=True,
            exclusion_reason=ExclusionReason.DUPLICATE,
            auto_detected=True,
            detection_method=match.match_type.value,
            detection_confidence=match.confidence,
        )
        try:
            applied = await self.item_repo.finish(
                payload.batch_item_id,
                ItemStatus.PROCESSING.value,
                status=ItemStatus.DUPLICATE.value,
                content_hash=content_hash,
                flags=flags.to_storage(),
                error_code=None,
                error_message=None,
                processed_at=utcnow(),
            )
            if not applied:
                await self.db.rollback()
                return await self._skip_redelivery(payload)

            await self.batch_repo.increment_counters(
                payload.batch_id, processed_files=1, duplicate_files=1
            )
            self.activity.duplicate_detected(
                payload.batch_id, payload.owner_id, payload.batch_item_id, payload.file_name,
                match.match_type.value, match.transaction_id, match.confidence,
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            raise PersistenceError("DB_001", {"stage": "duplicate"}) from e

        logger.info(
            "Duplicate detected",
            extra={
                "batch_id": str(payload.batch_id),
                "batch_item_id": str(payload.batch_item_id),
                "confidence": match.confidence,
            },
        )
        await self.coordinator.refresh_batch_status(payload.batch_id)
        return JobProcessingResult(
            success=True,
            batch_item_id=payload.batch_item_id,
            status=ItemStatus.DUPLICATE.value,
            is_duplicate=True,
            duplicate_of_transaction_id=match.transaction_id,
        )

    async def _finish_skipped(self, payload: ImportJobPayload) -> JobProcessingResult:
        applied = await self.item_repo.finish(
            payload.batch_item_id,
            ItemStatus.PROCESSING.value,
            status=ItemStatus.SKIPPED.value,
            processed_at=utcnow(),
        )
        if applied:
            await self.batch_repo.increment_counters(
                payload.batch_id, processed_files=1, skipped_files=1
            )
        await self.db.commit()
        logger.info(
            "Item skipped, batch cancelled",
            extra={"batch_id": str(payload.batch_id), "batch_item_id": str(payload.batch_item_id)},
        )
        return JobProcessingResult(
            success=False,
            batch_item_id=payload.batch_item_id,
            status=ItemStatus.SKIPPED.value,
            error="Batch cancelled",
        )

    async def _fail(
        self,
        payload: ImportJobPayload,
        error_code: str,
        message: str,
        transient: bool,
    ) -> JobProcessingResult:
        """Record a failed attempt.

        A transient failure under the retry cap (with auto retry on) goes
        directly back to ``pending`` and is re-enqueued; the counters are left
        untouched because the attempt did not end the item. Anything else
        becomes ``failed`` and counts as processed.
        """
        message = filter_pii(message)
        item = await self.item_repo.get_by_id(payload.batch_item_id)
        if item is None or item.status != ItemStatus.PROCESSING.value:
            await self.db.rollback()
            return await self._skip_redelivery(payload)

        if transient and await self._batch_cancelled(payload.batch_id):
            return await self._finish_skipped(payload)

        schedule_retry = transient and self.auto_retry and item.retry_count < self.max_retries
        if schedule_retry:
            applied = await self.item_repo.finish(
                item.id,
                ItemStatus.PROCESSING.value,
                status=ItemStatus.PENDING.value,
                retry_count=item.retry_count + 1,
                error_code=error_code,
                error_message=message,
            )
        else:
            applied = await self.item_repo.finish(
                item.id,
                ItemStatus.PROCESSING.value,
                status=ItemStatus.FAILED.value,
                error_code=error_code,
                error_message=message,
                processed_at=utcnow(),
            )
            if applied:
                await self.batch_repo.increment_counters(
                    payload.batch_id, processed_files=1, failed_files=1
                )

        if not applied:
            await self.db.rollback()
            return await self._skip_redelivery(payload)

        self.activity.item_failed(
            payload.batch_id, payload.owner_id, item.id, payload.file_name,
            error_code, message, item.retry_count + (1 if schedule_retry else 0),
        )
        await self.db.commit()

        logger.warning(
            "Item attempt failed",
            extra={
                "batch_id": str(payload.batch_id),
                "batch_item_id": str(item.id),
                "error_code": error_code,
                "retry_count": item.retry_count,
            },
        )

        retry_scheduled = False
        if schedule_retry:
            retry_scheduled = await self._enqueue_retry(payload)

        await self.coordinator.refresh_batch_status(payload.batch_id)
        item = await self.item_repo.get_by_id(payload.batch_item_id)
        return JobProcessingResult(
            success=False,
            batch_item_id=payload.batch_item_id,
            status=item.status if item else None,
            error=message,
            error_code=error_code,
            retry_scheduled=retry_scheduled,
        )

    async def _enqueue_retry(self, payload: ImportJobPayload) -> bool:
        """Submit the retry job; on failure the item becomes ``failed``."""
        error = None
        if self.queue is None:
            error = "No job queue configured"
        else:
            try:
                await self.queue.enqueue(payload)
            except Exception as e:
                logger.warning(
                    "Retry enqueue failed",
                    extra={
                        "batch_item_id": str(payload.batch_item_id),
                        "error_type": type(e).__name__,
                    },
                )
                error = filter_pii(str(e)) or type(e).__name__

        if error is None:
            return True

        applied = await self.item_repo.finish(
            payload.batch_item_id,
            ItemStatus.PENDING.value,
            status=ItemStatus.FAILED.value,
            error_code="QUEUE_001",
            error_message=error,
            processed_at=utcnow(),
        )
        if applied:
            await self.batch_repo.increment_counters(
                payload.batch_id, processed_files=1, failed_files=1
            )
        await self.db.commit()
        return False

    async def _skip_redelivery(self, payload: ImportJobPayload) -> JobProcessingResult:
        """At-least-once redelivery of an item that is no longer claimable."""
        item = await self.item_repo.get_by_id(payload.batch_item_id)
        status = item.status if item else None
        logger.warning(
            "Ignoring job for item not in a claimable state",
            extra={
                "batch_id": str(payload.batch_id),
                "batch_item_id": str(payload.batch_item_id),
                "status": status,
            },
        )
        return JobProcessingResult(
            success=status in (ItemStatus.COMPLETED.value, ItemStatus.DUPLICATE.value),
            batch_item_id=payload.batch_item_id,
            status=status,
            transaction_id=item.transaction_id if item else None,
            is_duplicate=status == ItemStatus.DUPLICATE.value,
            error="Item already processed",
        )
