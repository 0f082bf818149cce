"""Import batch repository: owner-scoped reads, keyset listing, atomic counters."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.models.batch import ImportBatch
from batchflow.repositories.base import BaseRepository

COUNTER_COLUMNS = (
    "processed_files",
    "successful_files",
    "failed_files",
    "duplicate_files",
    "skipped_files",
)


class BatchRepository(BaseRepository[ImportBatch]):
    """Repository for ImportBatch."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, ImportBatch)

    async def list_page(
        self,
        owner_id: UUID,
        limit: int,
        cursor: UUID | None = None,
        status: str | None = None,
    ) -> list[ImportBatch]:
        """Newest-first page of batches, fetching ``limit`` rows.

        ``cursor`` is the id of the last batch of the previous page. It is
        resolved to its ``(created_at, id)`` pair; rows strictly after that
        pair in sort order are returned. An unknown cursor starts from the top.
        """
        query = select(ImportBatch).where(ImportBatch.owner_id == owner_id)

        if status:
            query = query.where(ImportBatch.status == status)

        if cursor is not None:
            anchor = await self.get_for_owner(cursor, owner_id)
            if anchor is not None:
                query = query.where(
                    or_(
                        ImportBatch.created_at < anchor.created_at,
                        and_(
                            ImportBatch.created_at == anchor.created_at,
                            ImportBatch.id < anchor.id,
                        ),
                    )
                )

        query = query.order_by(ImportBatch.created_at.desc(), ImportBatch.id.desc()).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def increment_counters(self, batch_id: UUID, **deltas: int) -> None:
        """Apply counter deltas in a single UPDATE (``col = col + delta``).

        Does not commit; callers bundle it with the item transition that
        caused it.
        """
        values = {}
        for column, delta in deltas.items():
            if column not in COUNTER_COLUMNS:
                raise ValueError(f"Unknown batch counter: {column}")
            if delta:
                values[column] = getattr(ImportBatch, column) + delta
        if not values:
            return
        await self.db.execute(
            update(ImportBatch).where(ImportBatch.id == batch_id).values(**values)
        )

    async def transition_status(
        self,
        batch_id: UUID,
        from_statuses: set[str] | frozenset[str],
        to_status: str,
        **values,
    ) -> bool:
        """Conditionally move a batch between statuses.

        Returns True only for the caller whose UPDATE matched, so side effects
        tied to a transition (e.g. the completion log entry) happen once.
        """
        result = await self.db.execute(
            update(ImportBatch)
            .where(ImportBatch.id == batch_id, ImportBatch.status.in_(from_statuses))
            .values(status=to_status, **values)
        )
        return result.rowcount == 1

    async def mark_started(self, batch_id: UUID, started_at: datetime) -> None:
        """Set ``started_at`` once; later calls are no-ops."""
        await self.db.execute(
            update(ImportBatch)
            .where(ImportBatch.id == batch_id, ImportBatch.started_at.is_(None))
            .values(started_at=started_at)
        )

    async def set_estimated_completion(self, batch_id: UUID, value: datetime | None) -> None:
        await self.db.execute(
            update(ImportBatch)
            .where(ImportBatch.id == batch_id)
            .values(estimated_completion_at=value)
        )

    async def append_errors(self, batch_id: UUID, errors: list[dict]) -> None:
        """Append entries to ``errors``.

        Only the coordinator writes this column, so read-then-write is safe.
        """
        if not errors:
            return
        batch = await self.get_by_id(batch_id)
        if batch is None:
            return
        batch.errors = [*(batch.errors or []), *errors]
        await self.db.flush()
