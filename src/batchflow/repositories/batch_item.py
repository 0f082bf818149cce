"""Batch item repository: conditional state transitions keyed on prior status."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.core.constants import CLAIMABLE_ITEM_STATUSES, ItemStatus
from batchflow.models.batch_item import BatchItem
from batchflow.repositories.base import BaseRepository


class BatchItemRepository(BaseRepository[BatchItem]):
    """Repository for BatchItem.

    Every status change is a single UPDATE guarded by the expected current
    status; a rowcount of zero means another attempt got there first.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(db, BatchItem)

    async def list_for_batch(
        self, batch_id: UUID, status: str | None = None
    ) -> list[BatchItem]:
        """All items of a batch in upload order."""
        query = select(BatchItem).where(BatchItem.batch_id == batch_id)
        if status:
            query = query.where(BatchItem.status == status)
        result = await self.db.execute(
            query.order_by(BatchItem.order).execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def claim(self, item_id: UUID, started_at: datetime) -> bool:
        """Move a pending (or redelivered processing) item to processing."""
        result = await self.db.execute(
            update(BatchItem)
            .where(BatchItem.id == item_id, BatchItem.status.in_(CLAIMABLE_ITEM_STATUSES))
            .values(status=ItemStatus.PROCESSING.value, started_at=started_at)
        )
        return result.rowcount == 1

    async def finish(self, item_id: UUID, expected_status: str, **values) -> bool:
        """Set a terminal/failed outcome if the item is still in ``expected_status``."""
        result = await self.db.execute(
            update(BatchItem)
            .where(BatchItem.id == item_id, BatchItem.status == expected_status)
            .values(**values)
        )
        return result.rowcount == 1

    async def reset_for_retry(self, item_id: UUID, max_retries: int) -> bool:
        """``failed -> pending`` guarded by the retry cap; bumps ``retry_count``."""
        result = await self.db.execute(
            update(BatchItem)
            .where(
                BatchItem.id == item_id,
                BatchItem.status == ItemStatus.FAILED.value,
                BatchItem.retry_count < max_retries,
            )
            .values(
                status=ItemStatus.PENDING.value,
                retry_count=BatchItem.retry_count + 1,
                error_message=None,
                error_code=None,
                processed_at=None,
            )
        )
        return result.rowcount == 1

    async def skip_pending(self, batch_id: UUID, processed_at: datetime) -> int:
        """Mark every pending item of a batch skipped; returns how many changed."""
        result = await self.db.execute(
            update(BatchItem)
            .where(
                BatchItem.batch_id == batch_id,
                BatchItem.status == ItemStatus.PENDING.value,
            )
            .values(status=ItemStatus.SKIPPED.value, processed_at=processed_at)
        )
        return result.rowcount

    async def status_counts(self, batch_id: UUID) -> dict[str, int]:
        """Number of items per status for a batch."""
        result = await self.db.execute(
            select(BatchItem.status, func.count(BatchItem.id))
            .where(BatchItem.batch_id == batch_id)
            .group_by(BatchItem.status)
        )
        return {row[0]: int(row[1]) for row in result}
