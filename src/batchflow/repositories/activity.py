"""Activity log repository (read side)."""
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.models.activity_log import ActivityLogEntry
from batchflow.repositories.base import BaseRepository


class ActivityRepository(BaseRepository[ActivityLogEntry]):
    """Repository for ActivityLogEntry."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ActivityLogEntry)

    async def list_for_batch(self, batch_id: UUID, limit: int = 100) -> list[ActivityLogEntry]:
        """Newest-first entries for a batch."""
        result = await self.db.execute(
            select(ActivityLogEntry)
            .where(ActivityLogEntry.batch_id == batch_id)
            .order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
