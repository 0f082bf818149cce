"""Transaction model: one extracted, categorized financial record."""
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, Date, Float, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from batchflow.core.constants import CategorizationMethod
from batchflow.models.base import BaseModel


class Transaction(BaseModel):
    """Transaction produced by a completed batch item.

    ``merchant_key`` is the normalized merchant name used for history
    lookups and duplicate checks. ``amount`` is signed; negative is an outflow.
    """

    __tablename__ = "transactions"

    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    batch_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("import_batches.id", ondelete="SET NULL"), nullable=True
    )
    batch_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("import_batch_items.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    merchant_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    merchant_key: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    txn_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    category_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    categorization_method: Mapped[str] = mapped_column(
        String(16), default=CategorizationMethod.NONE.value, nullable=False
    )
    categorization_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    matched_rule_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("category_rules.id", ondelete="SET NULL"), nullable=True, index=True
    )
    flags: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_transactions_owner_merchant_key", "owner_id", "merchant_key"),
        Index("ix_transactions_owner_content_hash", "owner_id", "content_hash"),
        Index("ix_transactions_owner_txn_date", "owner_id", "txn_date"),
    )

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, merchant={self.merchant_name}, amount={self.amount})>"
