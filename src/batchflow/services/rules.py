"""Category and rule management.

Deleting a rule or category that transactions depend on requires an explicit
``confirm=True``; with it, affected transactions are sent back to review
(category cleared, method reset to ``none``).
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.categorization.engine import CategorizationEngine
from batchflow.categorization.matchers import validate_pattern
from batchflow.clients.protocols import AICategorizer
from batchflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from batchflow.models.category import Category, CategoryRule
from batchflow.repositories.category import CategoryRepository, RuleRepository
from batchflow.repositories.transaction import TransactionRepository
from batchflow.schemas.categorization import (
    CategorizationInput,
    CategorizationOptions,
    CategorizationPreviewRequest,
    CategorizationResult,
)
from batchflow.schemas.rules import DeleteResult, RuleCreate, RuleUpdate

logger = logging.getLogger(__name__)


class RuleService:
    """Owner-scoped management of categories and categorization rules."""

    def __init__(self, db: AsyncSession, ai_categorizer: AICategorizer | None = None):
        self.db = db
        self.ai_categorizer = ai_categorizer
        self.category_repo = CategoryRepository(db)
        self.rule_repo = RuleRepository(db)
        self.transaction_repo = TransactionRepository(db)

    # Categories

    async def list_categories(self, owner_id: UUID) -> list[Category]:
        return await self.category_repo.list_visible(owner_id)

    async def create_category(self, owner_id: UUID, name: str) -> Category:
        name = name.strip()
        if not name:
            raise ValidationError("VAL_001", {"field": "name"})
        if await self.category_repo.find_by_name(owner_id, name) is not None:
            raise ConflictError("CAT_004", {"name": name})

        category = Category(owner_id=owner_id, name=name, is_system=False)
        return await self.category_repo.create(category)

    async def delete_category(
        self, owner_id: UUID, category_id: UUID, confirm: bool = False
    ) -> DeleteResult:
        """Delete an owned category.

        Raises:
            NotFoundError: Category not visible to owner
            ConflictError: System category, or in use without ``confirm``
        """
        category = await self.category_repo.get_visible(category_id, owner_id)
        if category is None:
            raise NotFoundError("CAT_001", {"category_id": str(category_id)})
        if category.is_system or category.owner_id != owner_id:
            raise ConflictError("CAT_003")

        in_use = await self.transaction_repo.count_by_category(owner_id, category_id)
        rules = await self.rule_repo.list_for_category(category_id)
        if (in_use or rules) and not confirm:
            raise ConflictError(
                "CAT_002", {"transactions": in_use, "rules": len(rules)}
            )

        detached = await self.transaction_repo.detach_category(owner_id, category_id)
        for rule in rules:
            await self.transaction_repo.detach_rule(owner_id, rule.id)
            await self.db.delete(rule)
        await self.db.delete(category)
        await self.db.commit()

        logger.info(
            "Category deleted",
            extra={"owner_id": str(owner_id), "status": "detached" if detached else "unused"},
        )
        return DeleteResult(detached_transactions=detached, removed_rules=len(rules))

    # Rules

    async def list_rules(self, owner_id: UUID) -> list[CategoryRule]:
        return await self.rule_repo.list_for_owner(owner_id)

    async def create_rule(self, owner_id: UUID, data: RuleCreate) -> CategoryRule:
        """Create a rule after validating its pattern and target category.

        Raises:
            ValidationError: Pattern does not compile for its match type (RULE_001)
                or the category is not visible to the owner (CAT_001)
        """
        validate_pattern(data.match_type, data.value)
        if await self.category_repo.get_visible(data.category_id, owner_id) is None:
            raise ValidationError("CAT_001", {"category_id": str(data.category_id)})

        rule = CategoryRule(
            owner_id=owner_id,
            category_id=data.category_id,
            field=data.field.value,
            match_type=data.match_type.value,
            value=data.value,
        )
        return await self.rule_repo.create(rule)

    async def update_rule(self, owner_id: UUID, rule_id: UUID, data: RuleUpdate) -> CategoryRule:
        """Apply a partial update, validating the merged pattern and category.

        Raises:
            NotFoundError: Rule not found for owner (RULE_002)
            ValidationError: Merged pattern does not compile (RULE_001) or the
                category is not visible to the owner (CAT_001)
        """
        rule = await self.rule_repo.get_for_owner(rule_id, owner_id)
        if rule is None:
            raise NotFoundError("RULE_002", {"rule_id": str(rule_id)})

        changes = data.model_dump(exclude_unset=True, exclude_none=True, mode="json")
        validate_pattern(
            changes.get("match_type", rule.match_type), changes.get("value", rule.value)
        )
        category_id = data.category_id or rule.category_id
        if await self.category_repo.get_visible(category_id, owner_id) is None:
            raise ValidationError("CAT_001", {"category_id": str(category_id)})
        if data.category_id is not None:
            changes["category_id"] = data.category_id

        updated = await self.rule_repo.update(rule.id, changes)
        logger.info("Rule updated", extra={"owner_id": str(owner_id), "rule_id": str(rule_id)})
        return updated

    async def set_rule_enabled(self, owner_id: UUID, rule_id: UUID, enabled: bool) -> CategoryRule:
        """Turn a rule on or off without touching its pattern."""
        rule = await self.rule_repo.get_for_owner(rule_id, owner_id)
        if rule is None:
            raise NotFoundError("RULE_002", {"rule_id": str(rule_id)})
        return await self.rule_repo.update(rule.id, {"is_enabled": enabled})

    async def delete_rule(
        self, owner_id: UUID, rule_id: UUID, confirm: bool = False
    ) -> DeleteResult:
        """Delete a rule; transactions it categorized need ``confirm``."""
        rule = await self.rule_repo.get_for_owner(rule_id, owner_id)
        if rule is None:
            raise NotFoundError("RULE_002", {"rule_id": str(rule_id)})

        in_use = await self.transaction_repo.count_by_rule(owner_id, rule_id)
        if in_use and not confirm:
            raise ConflictError("RULE_003", {"transactions": in_use})

        detached = await self.transaction_repo.detach_rule(owner_id, rule_id)
        await self.db.delete(rule)
        await self.db.commit()
        return DeleteResult(detached_transactions=detached)

    async def preview(
        self, owner_id: UUID, request: CategorizationPreviewRequest
    ) -> CategorizationResult:
        """Run the engine without persisting anything (rule tester)."""
        defaults = CategorizationEngine.default_options()
        options = CategorizationOptions(
            include_ai=request.include_ai,
            min_confidence=(
                request.min_confidence
                if request.min_confidence is not None
                else defaults.min_confidence
            ),
        )
        engine = CategorizationEngine(self.db, self.ai_categorizer)
        return await engine.categorize(
            CategorizationInput(
                merchant_name=request.merchant_name,
                description=request.description,
                amount=request.amount,
            ),
            owner_id,
            options,
        )
