"""Import batch model: one user-initiated bulk import."""
from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from batchflow.core.constants import BatchStatus
from batchflow.models.base import BaseModel


class ImportBatch(BaseModel):
    """A batch groups the files of one import and carries aggregate counters.

    Counters are only ever changed through single UPDATE statements
    (``col = col + 1``) so concurrent item completions never lose updates.
    ``processed_files`` always equals the sum of the four outcome counters.
    """

    __tablename__ = "import_batches"

    owner_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    import_type: Mapped[str] = mapped_column(String(32), nullable=False)
    source_format: Mapped[str | None] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), default=BatchStatus.PENDING.value, nullable=False, index=True
    )

    total_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    successful_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duplicate_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_files: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_completion_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    errors: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    __table_args__ = (
        Index("ix_import_batches_owner_created", "owner_id", "created_at", "id"),
    )

    items: Mapped[list["BatchItem"]] = relationship(
        "BatchItem",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="BatchItem.order",
    )

    def __repr__(self) -> str:
        return (
            f"<ImportBatch(id={self.id}, status={self.status}, "
            f"processed={self.processed_files}/{self.total_files})>"
        )
