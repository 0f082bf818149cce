"""Categorization strategies, evaluated by the engine in priority order.

Each strategy either returns a confident suggestion or None, in which case
the engine moves on to the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.categorization.matchers import CompiledRule, compile_rule, normalize_merchant
from batchflow.clients.protocols import AICategorizer
from batchflow.config import settings
from batchflow.core.constants import CategorizationMethod, MatchType
from batchflow.core.exceptions import CategorizerError
from batchflow.repositories.category import CategoryRepository, RuleRepository
from batchflow.repositories.transaction import TransactionRepository
from batchflow.schemas.categorization import (
    CategorizationInput,
    CategorizationOptions,
    CategorizationResult,
)

logger = logging.getLogger(__name__)


@dataclass
class CategorizationContext:
    """Per-call state shared by the strategies (the owner's rules load once)."""

    owner_id: UUID
    options: CategorizationOptions
    db: AsyncSession
    _rules: list[CompiledRule] | None = field(default=None, repr=False)

    async def rules(self) -> list[CompiledRule]:
        if self._rules is None:
            rows = await RuleRepository(self.db).list_for_owner(
                self.owner_id, enabled_only=True
            )
            self._rules = [compile_rule(r) for r in rows]
        return self._rules


class CategorizationStrategy(Protocol):
    name: str
    priority: int

    async def attempt(
        self, txn: CategorizationInput, ctx: CategorizationContext
    ) -> CategorizationResult | None: ...


class RuleStrategy:
    """One rule tier: the first rule of ``match_type`` (in stored order) that matches."""

    def __init__(self, match_type: MatchType, priority: int):
        self.match_type = match_type
        self.priority = priority
        self.name = f"rule_{match_type.value}"

    async def attempt(self, txn, ctx):
        for rule in await ctx.rules():
            if rule.match_type is not self.match_type:
                continue
            if rule.matches(txn.merchant_name, txn.description):
                return CategorizationResult(
                    category_id=rule.category_id,
                    method=CategorizationMethod.RULE,
                    confidence=1.0,
                    matched_rule_id=rule.rule_id,
                )
        return None


class MerchantHistoryStrategy:
    """Most frequent category among the owner's past transactions for this merchant."""

    name = "history"
    priority = 20

    async def attempt(self, txn, ctx):
        merchant_key = normalize_merchant(txn.merchant_name)
        if not merchant_key:
            return None

        counts = await TransactionRepository(ctx.db).category_counts_for_merchant(
            ctx.owner_id, merchant_key
        )
        if not counts:
            return None

        total = sum(n for _, n in counts)
        category_id, top = counts[0]
        confidence = top / total
        if confidence < ctx.options.min_confidence:
            logger.debug(
                "History below threshold",
                extra={"confidence": round(confidence, 3), "matches": total},
            )
            return None

        return CategorizationResult(
            category_id=category_id,
            method=CategorizationMethod.HISTORY,
            confidence=confidence,
        )


class AIStrategy:
    """Ask the AI categorizer; accept only confident, owner-visible categories."""

    name = "ai"
    priority = 100

    def __init__(self, categorizer: AICategorizer | None):
        self.categorizer = categorizer

    async def attempt(self, txn, ctx):
        if not ctx.options.include_ai or self.categorizer is None:
            return None

        try:
            suggestion = await self.categorizer.suggest_category(
                txn.merchant_name, txn.description, txn.amount
            )
        except CategorizerError as e:
            logger.warning("AI categorizer unavailable", extra={"error_code": e.error_code})
            return None

        if suggestion is None:
            return None

        confidence = (
            suggestion.confidence
            if suggestion.confidence is not None
            else settings.ai_default_confidence
        )
        if confidence < ctx.options.min_confidence:
            return None

        category = await CategoryRepository(ctx.db).get_visible(
            suggestion.category_id, ctx.owner_id
        )
        if category is None:
            logger.warning("AI suggested a category the owner cannot see")
            return None

        return CategorizationResult(
            category_id=category.id,
            category_name=category.name,
            method=CategorizationMethod.AI,
            confidence=confidence,
        )


def default_strategies(ai_categorizer: AICategorizer | None = None) -> list:
    return [
        RuleStrategy(MatchType.EXACT, priority=1),
        RuleStrategy(MatchType.REGEX, priority=2),
        RuleStrategy(MatchType.CONTAINS, priority=3),
        MerchantHistoryStrategy(),
        AIStrategy(ai_categorizer),
    ]
