"""Integration tests for category and rule management."""
from decimal import Decimal

import pytest
from sqlalchemy import select

from batchflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from batchflow.models.category import Category, CategoryRule
from batchflow.models.transaction import Transaction
from batchflow.schemas.categorization import CategorizationPreviewRequest
from batchflow.schemas.rules import RuleCreate, RuleUpdate
from batchflow.services.rules import RuleService


@pytest.fixture
def service(db_session):
    return RuleService(db_session)


async def _categorized_txn(db, owner_id, category_id, rule_id=None):
    txn = Transaction(
        owner_id=owner_id,
        merchant_name="Uber Trip",
        merchant_key="UBER TRIP",
        amount=Decimal("-18.40"),
        currency="USD",
        category_id=category_id,
        matched_rule_id=rule_id,
        categorization_method="rule" if rule_id else "history",
        categorization_confidence=1.0,
    )
    db.add(txn)
    await db.commit()
    return txn


class TestRules:
    @pytest.mark.asyncio
    async def test_create_rule(self, service, owner_id, category_factory):
        travel = await category_factory("Travel", owner_id)

        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="regex", value=r"^UBER\b")
        )

        assert rule.field == "merchant_name"
        assert rule.match_type == "regex"
        assert [r.id for r in await service.list_rules(owner_id)] == [rule.id]

    @pytest.mark.asyncio
    async def test_invalid_regex_rejected_before_insert(self, service, owner_id, category_factory):
        travel = await category_factory("Travel", owner_id)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_rule(
                owner_id, RuleCreate(category_id=travel.id, match_type="regex", value="(uber")
            )

        assert exc_info.value.error_code == "RULE_001"
        assert await service.list_rules(owner_id) == []

    @pytest.mark.asyncio
    async def test_rule_for_foreign_category_rejected(
        self, service, owner_id, other_owner_id, category_factory
    ):
        foreign = await category_factory("Travel", other_owner_id)

        with pytest.raises(ValidationError) as exc_info:
            await service.create_rule(
                owner_id, RuleCreate(category_id=foreign.id, match_type="exact", value="Uber")
            )

        assert exc_info.value.error_code == "CAT_001"

    @pytest.mark.asyncio
    async def test_rule_may_target_system_category(self, service, owner_id, category_factory):
        system = await category_factory("Transportation", None, is_system=True)

        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=system.id, match_type="contains", value="uber")
        )

        assert rule.category_id == system.id

    @pytest.mark.asyncio
    async def test_delete_rule_in_use_requires_confirm(
        self, db_session, service, owner_id, category_factory
    ):
        travel = await category_factory("Travel", owner_id)
        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="contains", value="uber")
        )
        txn = await _categorized_txn(db_session, owner_id, travel.id, rule.id)

        with pytest.raises(ConflictError) as exc_info:
            await service.delete_rule(owner_id, rule.id)
        assert exc_info.value.error_code == "RULE_003"

        result = await service.delete_rule(owner_id, rule.id, confirm=True)

        assert result.detached_transactions == 1
        await db_session.refresh(txn)
        assert txn.category_id is None
        assert txn.matched_rule_id is None
        assert txn.categorization_method == "none"
        assert await service.list_rules(owner_id) == []

    @pytest.mark.asyncio
    async def test_delete_unused_rule(self, service, owner_id, category_factory):
        travel = await category_factory("Travel", owner_id)
        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="exact", value="Lyft")
        )

        result = await service.delete_rule(owner_id, rule.id)

        assert result.deleted is True
        assert result.detached_transactions == 0

    @pytest.mark.asyncio
    async def test_delete_other_owners_rule_not_found(
        self, service, owner_id, other_owner_id, category_factory
    ):
        travel = await category_factory("Travel", other_owner_id)
        rule = await service.create_rule(
            other_owner_id, RuleCreate(category_id=travel.id, match_type="exact", value="Lyft")
        )

        with pytest.raises(NotFoundError):
            await service.delete_rule(owner_id, rule.id, confirm=True)


    @pytest.mark.asyncio
    async def test_update_rule_pattern_and_category(self, service, owner_id, category_factory):
        travel = await category_factory("Travel", owner_id)
        rides = await category_factory("Rides", owner_id)
        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="exact", value="Uber")
        )

        updated = await service.update_rule(
            owner_id,
            rule.id,
            RuleUpdate(category_id=rides.id, match_type="regex", value=r"^UBER\s+TRIP"),
        )

        assert updated.category_id == rides.id
        assert updated.match_type == "regex"
        assert updated.value == r"^UBER\s+TRIP"
        assert updated.field == "merchant_name"
        assert updated.is_enabled is True

    @pytest.mark.asyncio
    async def test_update_rule_invalid_regex_keeps_stored_rule(
        self, service, owner_id, category_factory
    ):
        travel = await category_factory("Travel", owner_id)
        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="contains", value="(uber")
        )

        # A contains pattern becomes an uncompilable regex once the match type changes.
        with pytest.raises(ValidationError) as exc_info:
            await service.update_rule(owner_id, rule.id, RuleUpdate(match_type="regex"))

        assert exc_info.value.error_code == "RULE_001"
        [stored] = await service.list_rules(owner_id)
        assert stored.match_type == "contains"

    @pytest.mark.asyncio
    async def test_update_rule_to_foreign_category_rejected(
        self, service, owner_id, other_owner_id, category_factory
    ):
        travel = await category_factory("Travel", owner_id)
        foreign = await category_factory("Secret", other_owner_id)
        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="exact", value="Uber")
        )

        with pytest.raises(ValidationError) as exc_info:
            await service.update_rule(owner_id, rule.id, RuleUpdate(category_id=foreign.id))

        assert exc_info.value.error_code == "CAT_001"

    @pytest.mark.asyncio
    async def test_update_other_owners_rule_not_found(
        self, service, owner_id, other_owner_id, category_factory
    ):
        travel = await category_factory("Travel", other_owner_id)
        rule = await service.create_rule(
            other_owner_id, RuleCreate(category_id=travel.id, match_type="exact", value="Lyft")
        )

        with pytest.raises(NotFoundError) as exc_info:
            await service.update_rule(owner_id, rule.id, RuleUpdate(value="Uber"))
        assert exc_info.value.error_code == "RULE_002"

        with pytest.raises(NotFoundError):
            await service.set_rule_enabled(owner_id, rule.id, False)

    @pytest.mark.asyncio
    async def test_disabled_rule_is_listed_but_not_applied(
        self, service, owner_id, category_factory
    ):
        travel = await category_factory("Travel", owner_id)
        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="contains", value="uber")
        )

        disabled = await service.set_rule_enabled(owner_id, rule.id, False)

        assert disabled.is_enabled is False
        assert [r.id for r in await service.list_rules(owner_id)] == [rule.id]
        result = await service.preview(
            owner_id, CategorizationPreviewRequest(merchant_name="UBER *TRIP")
        )
        assert result.method == "none"

        await service.set_rule_enabled(owner_id, rule.id, True)
        result = await service.preview(
            owner_id, CategorizationPreviewRequest(merchant_name="UBER *TRIP")
        )
        assert result.category_id == travel.id

class TestCategories:
    @pytest.mark.asyncio
    async def test_list_includes_system_and_owned(
        self, service, owner_id, other_owner_id, category_factory
    ):
        await category_factory("Groceries", None, is_system=True)
        await category_factory("Hobbies", owner_id)
        await category_factory("Secret", other_owner_id)

        names = {c.name for c in await service.list_categories(owner_id)}

        assert names == {"Groceries", "Hobbies"}

    @pytest.mark.asyncio
    async def test_duplicate_name_conflicts(self, service, owner_id):
        await service.create_category(owner_id, "Pets")

        with pytest.raises(ConflictError) as exc_info:
            await service.create_category(owner_id, "  pets ")
        assert exc_info.value.error_code == "CAT_004"

    @pytest.mark.asyncio
    async def test_system_category_cannot_be_deleted(self, service, owner_id, category_factory):
        system = await category_factory("Groceries", None, is_system=True)

        with pytest.raises(ConflictError) as exc_info:
            await service.delete_category(owner_id, system.id, confirm=True)
        assert exc_info.value.error_code == "CAT_003"

    @pytest.mark.asyncio
    async def test_delete_category_in_use_cascades_with_confirm(
        self, db_session, service, owner_id, category_factory
    ):
        travel = await category_factory("Travel", owner_id)
        rule = await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="contains", value="uber")
        )
        txn = await _categorized_txn(db_session, owner_id, travel.id, rule.id)

        with pytest.raises(ConflictError) as exc_info:
            await service.delete_category(owner_id, travel.id)
        assert exc_info.value.error_code == "CAT_002"

        result = await service.delete_category(owner_id, travel.id, confirm=True)

        assert result.detached_transactions == 1
        assert result.removed_rules == 1
        await db_session.refresh(txn)
        assert txn.category_id is None
        remaining = (await db_session.execute(select(CategoryRule))).scalars().all()
        assert remaining == []
        assert await db_session.get(Category, travel.id) is None


class TestPreview:
    @pytest.mark.asyncio
    async def test_preview_matches_rule_without_persisting(
        self, db_session, service, owner_id, category_factory
    ):
        travel = await category_factory("Travel", owner_id)
        await service.create_rule(
            owner_id, RuleCreate(category_id=travel.id, match_type="contains", value="uber")
        )

        result = await service.preview(
            owner_id, CategorizationPreviewRequest(merchant_name="UBER *TRIP")
        )

        assert result.category_id == travel.id
        assert result.category_name == "Travel"
        assert result.method == "rule"
        assert (await db_session.execute(select(Transaction))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_preview_uncategorized(self, service, owner_id):
        result = await service.preview(
            owner_id, CategorizationPreviewRequest(merchant_name="Unknown Shop")
        )

        assert result.category_id is None
        assert result.method == "none"
        assert result.confidence == 0.0
