"""Transaction flag override endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends

from batchflow.api.deps import OwnerId, get_transaction_flag_service
from batchflow.schemas.transaction import (
    DuplicateMark,
    ExclusionUpdate,
    TransactionResponse,
    TransferMark,
)
from batchflow.services.transactions import TransactionFlagService

router = APIRouter(prefix="/transactions", tags=["transactions"])

Flags = Annotated[TransactionFlagService, Depends(get_transaction_flag_service)]
NOT_FOUND = {404: {"description": "Transaction not found"}}


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a transaction",
    responses=NOT_FOUND,
)
async def get_transaction(
    transaction_id: UUID, owner_id: OwnerId, service: Flags
) -> TransactionResponse:
    txn = await service.get_transaction(owner_id, transaction_id)
    return TransactionResponse.model_validate(txn)


@router.put(
    "/{transaction_id}/exclusion",
    response_model=TransactionResponse,
    summary="Exclude from or include in totals",
    responses=NOT_FOUND,
)
async def set_exclusion(
    transaction_id: UUID, request: ExclusionUpdate, owner_id: OwnerId, service: Flags
) -> TransactionResponse:
    txn = await service.set_excluded_from_totals(owner_id, transaction_id, request.excluded)
    return TransactionResponse.model_validate(txn)


@router.post(
    "/{transaction_id}/duplicate",
    response_model=TransactionResponse,
    summary="Mark as a duplicate",
    description="""
    Link this transaction to the original it repeats. Duplicates are excluded
    from totals. Both transactions must belong to the caller.
    """,
    responses={400: {"description": "Linked to itself"}, **NOT_FOUND},
)
async def mark_duplicate(
    transaction_id: UUID, request: DuplicateMark, owner_id: OwnerId, service: Flags
) -> TransactionResponse:
    txn = await service.mark_duplicate(owner_id, transaction_id, request.linked_transaction_id)
    return TransactionResponse.model_validate(txn)


@router.delete(
    "/{transaction_id}/duplicate",
    response_model=TransactionResponse,
    summary="Clear a duplicate mark",
    responses=NOT_FOUND,
)
async def unmark_duplicate(
    transaction_id: UUID, owner_id: OwnerId, service: Flags
) -> TransactionResponse:
    txn = await service.unmark_duplicate(owner_id, transaction_id)
    return TransactionResponse.model_validate(txn)


@router.post(
    "/{transaction_id}/transfer",
    response_model=TransactionResponse,
    summary="Mark as an internal transfer",
    responses=NOT_FOUND,
)
async def mark_transfer(
    transaction_id: UUID, owner_id: OwnerId, service: Flags, request: TransferMark | None = None
) -> TransactionResponse:
    transfer_type = (request or TransferMark()).transfer_type
    txn = await service.mark_internal_transfer(owner_id, transaction_id, transfer_type)
    return TransactionResponse.model_validate(txn)


@router.delete(
    "/{transaction_id}/transfer",
    response_model=TransactionResponse,
    summary="Clear an internal transfer mark",
    responses=NOT_FOUND,
)
async def unmark_transfer(
    transaction_id: UUID, owner_id: OwnerId, service: Flags
) -> TransactionResponse:
    txn = await service.unmark_internal_transfer(owner_id, transaction_id)
    return TransactionResponse.model_validate(txn)
