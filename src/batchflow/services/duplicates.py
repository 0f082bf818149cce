"""Duplicate detection for newly extracted items.

Checks run in order and the first hit wins:

1. Content hash of the source file against the owner's transactions
   (confidence 1.0, ``exact_image``).
2. Merchant key + same calendar day + amount equal to the cent
   (confidence 0.9, ``merchant_date_amount``).

The detector is conservative: a false positive silently drops a real
transaction, so anything short of these exact matches is not a duplicate.
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from batchflow.categorization.matchers import normalize_merchant
from batchflow.core.constants import DuplicateMatchType
from batchflow.repositories.transaction import TransactionRepository
from batchflow.schemas.internal import DuplicateMatch, Fingerprint

logger = logging.getLogger(__name__)

EXACT_IMAGE_CONFIDENCE = 1.0
MERCHANT_DATE_AMOUNT_CONFIDENCE = 0.9


class DuplicateDetector:
    def __init__(self, db: AsyncSession):
        self.transaction_repo = TransactionRepository(db)

    async def find_duplicate(
        self,
        owner_id: UUID,
        fingerprint: Fingerprint,
        exclude_item_id: UUID | None = None,
    ) -> DuplicateMatch | None:
        """Return the first matching prior transaction, or None.

        Args:
            owner_id: Only this owner's transactions are considered
            fingerprint: Content hash and/or merchant, date, amount
            exclude_item_id: Batch item being processed (never its own duplicate)
        """
        if fingerprint.content_hash:
            match = await self.transaction_repo.find_by_content_hash(
                owner_id, fingerprint.content_hash, exclude_item_id
            )
            if match is not None:
                return DuplicateMatch(
                    transaction_id=match.id,
                    match_type=DuplicateMatchType.EXACT_IMAGE,
                    confidence=EXACT_IMAGE_CONFIDENCE,
                )

        merchant_key = normalize_merchant(fingerprint.merchant_name)
        if merchant_key and fingerprint.txn_date and fingerprint.amount is not None:
            match = await self.transaction_repo.find_by_merchant_date_amount(
                owner_id,
                merchant_key,
                fingerprint.txn_date,
                fingerprint.amount,
                exclude_item_id,
            )
            if match is not None:
                logger.debug(
                    "Merchant/date/amount duplicate",
                    extra={"confidence": MERCHANT_DATE_AMOUNT_CONFIDENCE},
                )
                return DuplicateMatch(
                    transaction_id=match.id,
                    match_type=DuplicateMatchType.MERCHANT_DATE_AMOUNT,
                    confidence=MERCHANT_DATE_AMOUNT_CONFIDENCE,
                )

        return None
