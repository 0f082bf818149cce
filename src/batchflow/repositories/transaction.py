"""Transaction repository: duplicate lookups, merchant history and cascades."""
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.core.constants import CategorizationMethod
from batchflow.models.transaction import Transaction
from batchflow.repositories.base import BaseRepository


class TransactionRepository(BaseRepository[Transaction]):
    """Repository for Transaction. All queries are scoped to one owner."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Transaction)

    async def find_by_content_hash(
        self, owner_id: UUID, content_hash: str, exclude_item_id: UUID | None = None
    ) -> Transaction | None:
        query = select(Transaction).where(
            Transaction.owner_id == owner_id,
            Transaction.content_hash == content_hash,
            Transaction.deleted_at.is_(None),
        )
        if exclude_item_id is not None:
            query = query.where(_not_item(exclude_item_id))
        result = await self.db.execute(query.order_by(Transaction.created_at).limit(1))
        return result.scalar_one_or_none()

    async def find_by_merchant_date_amount(
        self,
        owner_id: UUID,
        merchant_key: str,
        txn_date: date,
        amount: Decimal,
        exclude_item_id: UUID | None = None,
    ) -> Transaction | None:
        """Same merchant key, same calendar day, amount equal to the cent."""
        query = select(Transaction).where(
            Transaction.owner_id == owner_id,
            Transaction.merchant_key == merchant_key,
            Transaction.txn_date == txn_date,
            Transaction.amount == amount,
            Transaction.deleted_at.is_(None),
        )
        if exclude_item_id is not None:
            query = query.where(_not_item(exclude_item_id))
        result = await self.db.execute(query.order_by(Transaction.created_at).limit(1))
        return result.scalar_one_or_none()

    async def category_counts_for_merchant(
        self, owner_id: UUID, merchant_key: str
    ) -> list[tuple[UUID, int]]:
        """Categorized-transaction counts per category for one merchant key.

        Sorted by count descending, then category id, so ties resolve the
        same way on every call.
        """
        count = func.count(Transaction.id)
        result = await self.db.execute(
            select(Transaction.category_id, count)
            .where(
                Transaction.owner_id == owner_id,
                Transaction.merchant_key == merchant_key,
                Transaction.category_id.is_not(None),
                Transaction.deleted_at.is_(None),
            )
            .group_by(Transaction.category_id)
            .order_by(count.desc(), Transaction.category_id)
        )
        return [(row[0], int(row[1])) for row in result]

    async def count_by_category(self, owner_id: UUID, category_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.owner_id == owner_id, Transaction.category_id == category_id
            )
        )
        return int(result.scalar_one())

    async def count_by_rule(self, owner_id: UUID, rule_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(Transaction.id)).where(
                Transaction.owner_id == owner_id, Transaction.matched_rule_id == rule_id
            )
        )
        return int(result.scalar_one())

    async def detach_category(self, owner_id: UUID, category_id: UUID) -> int:
        """Send transactions in a category back to review."""
        result = await self.db.execute(
            update(Transaction)
            .where(Transaction.owner_id == owner_id, Transaction.category_id == category_id)
            .values(**_UNCATEGORIZED)
        )
        return result.rowcount

    async def detach_rule(self, owner_id: UUID, rule_id: UUID) -> int:
        """Send transactions categorized by a rule back to review."""
        result = await self.db.execute(
            update(Transaction)
            .where(Transaction.owner_id == owner_id, Transaction.matched_rule_id == rule_id)
            .values(**_UNCATEGORIZED)
        )
        return result.rowcount


_UNCATEGORIZED = {
    "category_id": None,
    "matched_rule_id": None,
    "categorization_method": CategorizationMethod.NONE.value,
    "categorization_confidence": None,
}


def _not_item(item_id: UUID):
    return or_(Transaction.batch_item_id.is_(None), Transaction.batch_item_id != item_id)
