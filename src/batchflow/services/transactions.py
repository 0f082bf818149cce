"""Manual overrides of transaction flags.

Every override is owner-scoped and stamped as a user decision
(``user_verified``, ``detection_method="user_manual"``, ``auto_detected=False``)
so later automatic detection can tell it apart from pattern matches.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.core.constants import ExclusionReason, TransferType
from batchflow.core.exceptions import NotFoundError, ValidationError
from batchflow.models.base import utcnow
from batchflow.models.transaction import Transaction
from batchflow.repositories.transaction import TransactionRepository
from batchflow.schemas.flags import TransactionFlags

logger = logging.getLogger(__name__)

USER_DETECTION_METHOD = "user_manual"

_TRANSFER_REASONS = {
    TransferType.INTERNAL: ExclusionReason.INTERNAL_TRANSFER,
    TransferType.CREDIT_CARD_PAYMENT: ExclusionReason.CREDIT_CARD_PAYMENT,
}


class TransactionFlagService:
    """Owner-scoped reads and flag overrides for stored transactions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.transaction_repo = TransactionRepository(db)

    async def get_transaction(self, owner_id: UUID, transaction_id: UUID) -> Transaction:
        """
        Raises:
            NotFoundError: Transaction not found for owner (TXN_001)
        """
        txn = await self.transaction_repo.get_for_owner(transaction_id, owner_id)
        if txn is None:
            raise NotFoundError("TXN_001", {"transaction_id": str(transaction_id)})
        return txn

    async def set_excluded_from_totals(
        self, owner_id: UUID, transaction_id: UUID, excluded: bool
    ) -> Transaction:
        """Exclude a transaction from spending totals, or include it again."""
        txn = await self.get_transaction(owner_id, transaction_id)
        flags = TransactionFlags.from_storage(txn.flags)
        if excluded:
            flags.is_excluded_from_totals = True
            flags.exclusion_reason = ExclusionReason.MANUAL
        else:
            flags.is_excluded_from_totals = None
            flags.exclusion_reason = None
        return await self._save(txn, flags)

    async def mark_duplicate(
        self, owner_id: UUID, transaction_id: UUID, linked_transaction_id: UUID
    ) -> Transaction:
        """Mark a transaction as a duplicate of another of the owner's transactions.

        Raises:
            NotFoundError: Either transaction not found for owner (TXN_001)
            ValidationError: The transaction is linked to itself (TXN_002)
        """
        if transaction_id == linked_transaction_id:
            raise ValidationError("TXN_002", {"transaction_id": str(transaction_id)})
        txn = await self.get_transaction(owner_id, transaction_id)
        await self.get_transaction(owner_id, linked_transaction_id)

        flags = TransactionFlags.from_storage(txn.flags)
        flags.is_duplicate = True
        flags.linked_transaction_id = linked_transaction_id
        flags.linked_transaction_type = "transaction"
        flags.duplicate_confidence = None
        flags.duplicate_match_type = None
        flags.is_excluded_from_totals = True
        flags.exclusion_reason = ExclusionReason.DUPLICATE
        return await self._save(txn, flags)

    async def unmark_duplicate(self, owner_id: UUID, transaction_id: UUID) -> Transaction:
        txn = await self.get_transaction(owner_id, transaction_id)
        flags = TransactionFlags.from_storage(txn.flags)
        flags.is_duplicate = None
        flags.linked_transaction_id = None
        flags.linked_transaction_type = None
        flags.duplicate_confidence = None
        flags.duplicate_match_type = None
        if flags.exclusion_reason == ExclusionReason.DUPLICATE:
            flags.is_excluded_from_totals = None
            flags.exclusion_reason = None
        return await self._save(txn, flags)

    async def mark_internal_transfer(
        self,
        owner_id: UUID,
        transaction_id: UUID,
        transfer_type: TransferType = TransferType.INTERNAL,
    ) -> Transaction:
        """Mark money moved between the owner's own accounts; excluded from totals."""
        txn = await self.get_transaction(owner_id, transaction_id)
        transfer_type = TransferType(transfer_type)
        flags = TransactionFlags.from_storage(txn.flags)
        flags.is_internal_transfer = True
        flags.is_credit_card_payment = (
            True if transfer_type is TransferType.CREDIT_CARD_PAYMENT else None
        )
        flags.is_excluded_from_totals = True
        flags.exclusion_reason = _TRANSFER_REASONS[transfer_type]
        return await self._save(txn, flags)

    async def unmark_internal_transfer(
        self, owner_id: UUID, transaction_id: UUID
    ) -> Transaction:
        txn = await self.get_transaction(owner_id, transaction_id)
        flags = TransactionFlags.from_storage(txn.flags)
        flags.is_internal_transfer = None
        flags.is_credit_card_payment = None
        if flags.exclusion_reason in _TRANSFER_REASONS.values():
            flags.is_excluded_from_totals = None
            flags.exclusion_reason = None
        return await self._save(txn, flags)

    async def _save(self, txn: Transaction, flags: TransactionFlags) -> Transaction:
        flags.user_verified = True
        flags.verified_at = utcnow()
        flags.auto_detected = False
        flags.detection_method = USER_DETECTION_METHOD
        flags.detection_confidence = None

        updated = await self.transaction_repo.update(txn.id, {"flags": flags.to_storage()})
        logger.info(
            "Transaction flags overridden",
            extra={"owner_id": str(txn.owner_id), "transaction_id": str(txn.id)},
        )
        return updated
