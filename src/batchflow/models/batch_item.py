"""Batch item model: one file within an import batch."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from batchflow.core.constants import ItemStatus
from batchflow.models.base import BaseModel


class BatchItem(BaseModel):
    """Per-file processing state.

    ``owner_id`` is denormalized from the batch so authorization checks never
    need a join. ``flags`` holds duplicate links for items that did not
    produce a transaction.
    """

    __tablename__ = "import_batch_items"

    batch_id: Mapped[UUID] = mapped_column(
        ForeignKey("import_batches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    file_name: Mapped[str] = mapped_column(String(512), nullable=False)
    file_url: Mapped[str] = mapped_column(Text, nullable=False)
    file_size_bytes: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    file_format: Mapped[str] = mapped_column(String(10), nullable=False)
    order: Mapped[int] = mapped_column("item_order", Integer, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=ItemStatus.PENDING.value, nullable=False, index=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    transaction_id: Mapped[UUID | None] = mapped_column(nullable=True)
    flags: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_import_batch_items_batch_order", "batch_id", "item_order"),
    )

    batch: Mapped["ImportBatch"] = relationship("ImportBatch", back_populates="items")

    def __repr__(self) -> str:
        return f"<BatchItem(id={self.id}, file_name={self.file_name}, status={self.status})>"
