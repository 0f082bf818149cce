"""Spending categories and user-authored categorization rules."""
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String
from sqlalchemy import true as sa_true
from sqlalchemy.orm import Mapped, mapped_column, relationship

from batchflow.models.base import BaseModel


class Category(BaseModel):
    """A spending category.

    System categories have no owner and are visible to everyone; user
    categories are visible only to their owner.
    """

    __tablename__ = "categories"

    owner_id: Mapped[UUID | None] = mapped_column(nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    rules: Mapped[list["CategoryRule"]] = relationship(
        "CategoryRule", back_populates="category", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, name={self.name}, is_system={self.is_system})>"


class CategoryRule(BaseModel):
    """Pattern mapping merchant/description text to a category for one owner."""

    __tablename__ = "category_rules"

    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    category_id: Mapped[UUID] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    field: Mapped[str] = mapped_column(String(32), nullable=False)
    match_type: Mapped[str] = mapped_column(String(16), nullable=False)
    value: Mapped[str] = mapped_column(String(500), nullable=False)
    is_enabled: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=sa_true(), nullable=False
    )

    __table_args__ = (
        Index("ix_category_rules_owner_created", "owner_id", "created_at"),
    )

    category: Mapped["Category"] = relationship("Category", back_populates="rules")

    def __repr__(self) -> str:
        return (
            f"<CategoryRule(id={self.id}, field={self.field}, "
            f"match_type={self.match_type}, value={self.value})>"
        )
