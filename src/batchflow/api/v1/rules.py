"""Category and rule management endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from batchflow.api.deps import OwnerId, get_rule_service
from batchflow.schemas.categorization import CategorizationPreviewRequest, CategorizationResult
from batchflow.schemas.rules import (
    CategoryCreate,
    CategoryResponse,
    DeleteResult,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
)
from batchflow.services.rules import RuleService

router = APIRouter(tags=["categorization"])

Rules = Annotated[RuleService, Depends(get_rule_service)]
Confirm = Annotated[
    bool, Query(description="Acknowledge that affected transactions go back to review")
]


@router.get("/categories", response_model=list[CategoryResponse], summary="List categories")
async def list_categories(owner_id: OwnerId, service: Rules) -> list[CategoryResponse]:
    categories = await service.list_categories(owner_id)
    return [CategoryResponse.model_validate(c) for c in categories]


@router.post(
    "/categories",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a category",
    responses={409: {"description": "Name already used"}},
)
async def create_category(
    request: CategoryCreate, owner_id: OwnerId, service: Rules
) -> CategoryResponse:
    category = await service.create_category(owner_id, request.name)
    return CategoryResponse.model_validate(category)


@router.delete(
    "/categories/{category_id}",
    response_model=DeleteResult,
    summary="Delete a category",
    description="""
    Deleting a category that transactions or rules use requires `confirm=true`.
    Those transactions lose their category and its rules are removed.
    System categories cannot be deleted.
    """,
    responses={409: {"description": "In use without confirm, or system category"}},
)
async def delete_category(
    category_id: UUID, owner_id: OwnerId, service: Rules, confirm: Confirm = False
) -> DeleteResult:
    return await service.delete_category(owner_id, category_id, confirm)


@router.get("/rules", response_model=list[RuleResponse], summary="List rules in match order")
async def list_rules(owner_id: OwnerId, service: Rules) -> list[RuleResponse]:
    rules = await service.list_rules(owner_id)
    return [RuleResponse.model_validate(r) for r in rules]


@router.post(
    "/rules",
    response_model=RuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a rule",
    responses={400: {"description": "Invalid pattern or category"}},
)
async def create_rule(request: RuleCreate, owner_id: OwnerId, service: Rules) -> RuleResponse:
    rule = await service.create_rule(owner_id, request)
    return RuleResponse.model_validate(rule)


@router.patch(
    "/rules/{rule_id}",
    response_model=RuleResponse,
    summary="Update a rule",
    description="""
    Change a rule's pattern, field, category or enabled flag. Omitted fields
    keep their values; the resulting pattern and category are validated again.
    Disabled rules stay listed but are skipped during categorization.
    """,
    responses={
        400: {"description": "Invalid pattern or category"},
        404: {"description": "Rule not found"},
    },
)
async def update_rule(
    rule_id: UUID, request: RuleUpdate, owner_id: OwnerId, service: Rules
) -> RuleResponse:
    rule = await service.update_rule(owner_id, rule_id, request)
    return RuleResponse.model_validate(rule)


@router.post(
    "/rules/{rule_id}/enable",
    response_model=RuleResponse,
    summary="Enable a rule",
    responses={404: {"description": "Rule not found"}},
)
async def enable_rule(rule_id: UUID, owner_id: OwnerId, service: Rules) -> RuleResponse:
    return RuleResponse.model_validate(await service.set_rule_enabled(owner_id, rule_id, True))


@router.post(
    "/rules/{rule_id}/disable",
    response_model=RuleResponse,
    summary="Disable a rule",
    responses={404: {"description": "Rule not found"}},
)
async def disable_rule(rule_id: UUID, owner_id: OwnerId, service: Rules) -> RuleResponse:
    return RuleResponse.model_validate(await service.set_rule_enabled(owner_id, rule_id, False))


@router.delete(
    "/rules/{rule_id}",
    response_model=DeleteResult,
    summary="Delete a rule",
    responses={409: {"description": "Rule in use without confirm"}},
)
async def delete_rule(
    rule_id: UUID, owner_id: OwnerId, service: Rules, confirm: Confirm = False
) -> DeleteResult:
    return await service.delete_rule(owner_id, rule_id, confirm)


@router.post(
    "/categorization/preview",
    response_model=CategorizationResult,
    summary="Test categorization without saving",
)
async def preview_categorization(
    request: CategorizationPreviewRequest, owner_id: OwnerId, service: Rules
) -> CategorizationResult:
    return await service.preview(owner_id, request)
