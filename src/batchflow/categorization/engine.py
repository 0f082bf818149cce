"""Categorization decision engine.

Tries strategies in a fixed priority order (exact rule, regex rule, contains
rule, merchant history, AI) and returns the first confident suggestion. A
transaction nothing qualifies for comes back uncategorized with method
``none``; that is a normal outcome, not an error.
"""

import logging
import time
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.categorization.strategies import (
    CategorizationContext,
    CategorizationStrategy,
    default_strategies,
)
from batchflow.clients.protocols import AICategorizer
from batchflow.config import settings
from batchflow.repositories.category import CategoryRepository
from batchflow.schemas.categorization import (
    CategorizationInput,
    CategorizationOptions,
    CategorizationResult,
)

logger = logging.getLogger(__name__)


class CategorizationEngine:
    """Run categorization strategies for one owner's transactions."""

    def __init__(
        self,
        db: AsyncSession,
        ai_categorizer: AICategorizer | None = None,
        strategies: list[CategorizationStrategy] | None = None,
    ):
        self.db = db
        self.category_repo = CategoryRepository(db)
        strategies = strategies if strategies is not None else default_strategies(ai_categorizer)
        self.strategies = sorted(strategies, key=lambda s: s.priority)

    @staticmethod
    def default_options() -> CategorizationOptions:
        return CategorizationOptions(
            include_ai=settings.categorization_include_ai,
            min_confidence=settings.categorization_min_confidence,
        )

    async def categorize(
        self,
        txn: CategorizationInput,
        owner_id: UUID,
        options: CategorizationOptions | None = None,
    ) -> CategorizationResult:
        """Decide a category for ``txn``.

        Args:
            txn: Merchant, description and amount to categorize
            owner_id: Owner whose rules and history apply
            options: ``include_ai`` and ``min_confidence``; settings defaults when omitted

        Returns:
            The first strategy result, or an uncategorized result
        """
        options = options or self.default_options()
        ctx = CategorizationContext(owner_id=owner_id, options=options, db=self.db)
        start = time.time()

        for strategy in self.strategies:
            result = await strategy.attempt(txn, ctx)
            if result is None:
                continue
            if result.category_name is None:
                category = await self.category_repo.get_by_id(result.category_id)
                result.category_name = category.name if category else None
            logger.info(
                "Categorized",
                extra={
                    "method": result.method,
                    "strategy": strategy.name,
                    "duration_ms": int((time.time() - start) * 1000),
                },
            )
            return result

        return CategorizationResult.uncategorized()
