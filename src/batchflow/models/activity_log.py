"""Append-only activity log shown to users as import progress."""
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from batchflow.models.base import BaseModel


class ActivityLogEntry(BaseModel):
    """One pipeline event. Rows are inserted, never updated or deleted."""

    __tablename__ = "batch_activity_logs"

    batch_id: Mapped[UUID] = mapped_column(
        ForeignKey("import_batches.id", ondelete="CASCADE"), nullable=False
    )
    batch_item_id: Mapped[UUID | None] = mapped_column(nullable=True)
    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    activity_type: Mapped[str] = mapped_column(String(40), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    file_name: Mapped[str | None] = mapped_column(String(512), nullable=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        Index("ix_batch_activity_logs_batch_created", "batch_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ActivityLogEntry(batch_id={self.batch_id}, type={self.activity_type})>"
