"""Category and rule repositories (the rule store read by the engine)."""
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.models.category import Category, CategoryRule
from batchflow.repositories.base import BaseRepository


class CategoryRepository(BaseRepository[Category]):
    """Repository for Category. "Visible" means system or owned by the caller."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, Category)

    def _visible(self, owner_id: UUID):
        return or_(Category.is_system.is_(True), Category.owner_id == owner_id)

    async def list_visible(self, owner_id: UUID) -> list[Category]:
        result = await self.db.execute(
            select(Category)
            .where(self._visible(owner_id), Category.deleted_at.is_(None))
            .order_by(Category.is_system.desc(), Category.name)
        )
        return list(result.scalars().all())

    async def get_visible(self, category_id: UUID, owner_id: UUID) -> Category | None:
        result = await self.db.execute(
            select(Category).where(
                Category.id == category_id,
                self._visible(owner_id),
                Category.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def find_by_name(self, owner_id: UUID, name: str) -> Category | None:
        """Case-insensitive lookup among categories visible to the owner."""
        result = await self.db.execute(
            select(Category)
            .where(
                self._visible(owner_id),
                func.lower(Category.name) == name.strip().lower(),
                Category.deleted_at.is_(None),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()


class RuleRepository(BaseRepository[CategoryRule]):
    """Repository for CategoryRule."""

    def __init__(self, db: AsyncSession):
        super().__init__(db, CategoryRule)

    async def list_for_owner(
        self, owner_id: UUID, enabled_only: bool = False
    ) -> list[CategoryRule]:
        """Owner's rules in stored order (creation time, then id)."""
        query = select(CategoryRule).where(
            CategoryRule.owner_id == owner_id, CategoryRule.deleted_at.is_(None)
        )
        if enabled_only:
            query = query.where(CategoryRule.is_enabled.is_(True))
        result = await self.db.execute(
            query.order_by(CategoryRule.created_at, CategoryRule.id)
        )
        return list(result.scalars().all())

    async def list_for_category(self, category_id: UUID) -> list[CategoryRule]:
        result = await self.db.execute(
            select(CategoryRule).where(CategoryRule.category_id == category_id)
        )
        return list(result.scalars().all())
