"""User-facing activity log for import batches.

Entries are staged on the caller's session and committed together with the
state change they describe, so the log never shows an event that was rolled
back.
"""

import logging
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.core.constants import ActivityType
from batchflow.core.logging import filter_pii
from batchflow.models.activity_log import ActivityLogEntry

logger = logging.getLogger(__name__)


class ActivityLogger:
    """Append activity entries for one owner."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def log(
        self,
        batch_id: UUID,
        owner_id: UUID,
        activity_type: ActivityType,
        message: str,
        batch_item_id: UUID | None = None,
        file_name: str | None = None,
        details: dict[str, Any] | None = None,
        duration_ms: int | None = None,
    ) -> ActivityLogEntry:
        entry = ActivityLogEntry(
            batch_id=batch_id,
            batch_item_id=batch_item_id,
            owner_id=owner_id,
            activity_type=activity_type.value,
            message=message,
            file_name=file_name,
            details=details,
            duration_ms=duration_ms,
        )
        self.db.add(entry)
        logger.debug(
            filter_pii(message),
            extra={"batch_id": str(batch_id), "activity_type": activity_type.value},
        )
        return entry

    def batch_created(self, batch_id, owner_id, total_files: int, import_type: str):
        return self.log(
            batch_id,
            owner_id,
            ActivityType.BATCH_CREATED,
            f"Started importing {total_files} file{'s' if total_files != 1 else ''}",
            details={"total_files": total_files, "import_type": import_type},
        )

    def file_uploaded(self, batch_id, owner_id, item_id, file_name: str):
        return self.log(
            batch_id, owner_id, ActivityType.FILE_UPLOADED,
            f"Processing {file_name}", batch_item_id=item_id, file_name=file_name,
        )

    def extraction_start(self, batch_id, owner_id, item_id, file_name: str):
        return self.log(
            batch_id, owner_id, ActivityType.EXTRACTION_START,
            f"Reading {file_name}", batch_item_id=item_id, file_name=file_name,
        )

    def extraction_complete(
        self, batch_id, owner_id, item_id, file_name: str,
        merchant_name: str | None, amount, duration_ms: int,
    ):
        return self.log(
            batch_id, owner_id, ActivityType.EXTRACTION_COMPLETE,
            f"Extracted {merchant_name or 'transaction'} ({amount})",
            batch_item_id=item_id, file_name=file_name,
            details={"merchant_name": merchant_name, "amount": str(amount)},
            duration_ms=duration_ms,
        )

    def categorization_start(self, batch_id, owner_id, item_id, file_name: str):
        return self.log(
            batch_id, owner_id, ActivityType.CATEGORIZATION_START,
            "Categorizing transaction", batch_item_id=item_id, file_name=file_name,
        )

    def categorization_complete(
        self, batch_id, owner_id, item_id, file_name: str,
        category_name: str | None, method: str, confidence: float,
    ):
        message = (
            f"Categorized as {category_name}" if category_name else "Left uncategorized for review"
        )
        return self.log(
            batch_id, owner_id, ActivityType.CATEGORIZATION_COMPLETE, message,
            batch_item_id=item_id, file_name=file_name,
            details={"category_name": category_name, "method": method, "confidence": confidence},
        )

    def duplicate_detected(
        self, batch_id, owner_id, item_id, file_name: str,
        match_type: str, linked_transaction_id: UUID, confidence: float,
    ):
        return self.log(
            batch_id, owner_id, ActivityType.DUPLICATE_DETECTED,
            f"{file_name} is a duplicate of an existing transaction",
            batch_item_id=item_id, file_name=file_name,
            details={
                "match_type": match_type,
                "linked_transaction_id": str(linked_transaction_id),
                "confidence": confidence,
            },
        )

    def item_completed(self, batch_id, owner_id, item_id, file_name: str, duration_ms: int):
        return self.log(
            batch_id, owner_id, ActivityType.ITEM_COMPLETED,
            f"Finished {file_name}", batch_item_id=item_id, file_name=file_name,
            duration_ms=duration_ms,
        )

    def item_failed(
        self, batch_id, owner_id, item_id, file_name: str,
        error_code: str, error: str, retry_count: int,
    ):
        return self.log(
            batch_id, owner_id, ActivityType.ITEM_FAILED,
            f"Failed to process {file_name}: {error}",
            batch_item_id=item_id, file_name=file_name,
            details={"error_code": error_code, "retry_count": retry_count},
        )

    def batch_completed(
        self, batch_id, owner_id, status: str, successful: int, failed: int,
        duplicates: int, skipped: int,
    ):
        return self.log(
            batch_id, owner_id, ActivityType.BATCH_COMPLETED,
            f"Import {status}: {successful} imported, {failed} failed, {duplicates} duplicates",
            details={
                "status": status,
                "successful": successful,
                "failed": failed,
                "duplicates": duplicates,
                "skipped": skipped,
            },
        )
