"""Create import pipeline tables and seed system categories.

Revision ID: 5d1e7a20c4b8
Revises:
Create Date: 2026-10-17
"""

import uuid
from datetime import datetime, timezone
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5d1e7a20c4b8"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SYSTEM_CATEGORIES = [
    "Food & Dining",
    "Groceries",
    "Shopping",
    "Transportation",
    "Travel",
    "Utilities",
    "Entertainment",
    "Health",
    "Fees & Charges",
    "Transfers",
    "Income",
    "Other",
]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "import_batches",
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("import_type", sa.String(length=32), nullable=False),
        sa.Column("source_format", sa.String(length=32), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("total_files", sa.Integer(), nullable=False),
        sa.Column("processed_files", sa.Integer(), nullable=False),
        sa.Column("successful_files", sa.Integer(), nullable=False),
        sa.Column("failed_files", sa.Integer(), nullable=False),
        sa.Column("duplicate_files", sa.Integer(), nullable=False),
        sa.Column("skipped_files", sa.Integer(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estimated_completion_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("errors", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_batches_owner_id", "import_batches", ["owner_id"])
    op.create_index("ix_import_batches_status", "import_batches", ["status"])
    op.create_index(
        "ix_import_batches_owner_created", "import_batches", ["owner_id", "created_at", "id"]
    )

    op.create_table(
        "import_batch_items",
        sa.Column("batch_id", sa.Uuid(), nullable=False),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("file_name", sa.String(length=512), nullable=False),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("file_size_bytes", sa.BigInteger(), nullable=True),
        sa.Column("file_format", sa.String(length=10), nullable=False),
        sa.Column("item_order", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_code", sa.String(length=32), nullable=True),
        sa.Column("retry_count", sa.Integer(), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("transaction_id", sa.Uuid(), nullable=True),
        sa.Column("flags", sa.JSON(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["batch_id"], ["import_batches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_import_batch_items_batch_id", "import_batch_items", ["batch_id"])
    op.create_index("ix_import_batch_items_owner_id", "import_batch_items", ["owner_id"])
    op.create_index("ix_import_batch_items_status", "import_batch_items", ["status"])
    op.create_index(
        "ix_import_batch_items_batch_order", "import_batch_items", ["batch_id", "item_order"]
    )

    op.create_table(
        "categories",
        sa.Column("owner_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("is_system", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_categories_owner_id", "categories", ["owner_id"])

    op.create_table(
        "category_rules",
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("category_id", sa.Uuid(), nullable=False),
        sa.Column("field", sa.String(length=32), nullable=False),
        sa.Column("match_type", sa.String(length=16), nullable=False),
        sa.Column("value", sa.String(length=500), nullable=False),
        sa.Column("is_enabled", sa.Boolean(), server_default=sa.true(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_category_rules_category_id", "category_rules", ["category_id"])
    op.create_index(
        "ix_category_rules_owner_created", "category_rules", ["owner_id", "created_at"]
    )

    op.create_table(
        "transactions",
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("batch_id", sa.Uuid(), nullable=True),
        sa.Column("batch_item_id", sa.Uuid(), nullable=True),
        sa.Column("merchant_name", sa.String(length=255), nullable=True),
        sa.Column("merchant_key", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("txn_date", sa.Date(), nullable=True),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("content_hash", sa.String(length=64), nullable=True),
        sa.Column("category_id", sa.Uuid(), nullable=True),
        sa.Column("categorization_method", sa.String(length=16), nullable=False),
        sa.Column("categorization_confidence", sa.Float(), nullable=True),
        sa.Column("matched_rule_id", sa.Uuid(), nullable=True),
        sa.Column("flags", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["batch_id"], ["import_batches.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["batch_item_id"], ["import_batch_items.id"], ondelete="SET NULL"
        ),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["matched_rule_id"], ["category_rules.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("batch_item_id"),
    )
    op.create_index("ix_transactions_owner_id", "transactions", ["owner_id"])
    op.create_index("ix_transactions_category_id", "transactions", ["category_id"])
    op.create_index("ix_transactions_matched_rule_id", "transactions", ["matched_rule_id"])
    op.create_index(
        "ix_transactions_owner_merchant_key", "transactions", ["owner_id", "merchant_key"]
    )
    op.create_index(
        "ix_transactions_owner_content_hash", "transactions", ["owner_id", "content_hash"]
    )
    op.create_index("ix_transactions_owner_txn_date", "transactions", ["owner_id", "txn_date"])

    op.create_table(
        "batch_activity_logs",
        sa.Column("batch_id", sa.Uuid(), nullable=False),
        sa.Column("batch_item_id", sa.Uuid(), nullable=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("activity_type", sa.String(length=40), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("file_name", sa.String(length=512), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["batch_id"], ["import_batches.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_batch_activity_logs_batch_created", "batch_activity_logs", ["batch_id", "created_at"]
    )

    # System categories get stable ids so environments agree on them.
    categories = sa.table(
        "categories",
        sa.column("id", sa.Uuid()),
        sa.column("owner_id", sa.Uuid()),
        sa.column("name", sa.String()),
        sa.column("is_system", sa.Boolean()),
        sa.column("created_at", sa.DateTime(timezone=True)),
        sa.column("updated_at", sa.DateTime(timezone=True)),
    )
    now = datetime.now(timezone.utc)
    op.bulk_insert(
        categories,
        [
            {
                "id": uuid.uuid5(uuid.NAMESPACE_URL, f"batchflow:category:{name}"),
                "owner_id": None,
                "name": name,
                "is_system": True,
                "created_at": now,
                "updated_at": now,
            }
            for name in SYSTEM_CATEGORIES
        ],
    )


def downgrade() -> None:
    op.drop_index("ix_batch_activity_logs_batch_created", table_name="batch_activity_logs")
    op.drop_table("batch_activity_logs")

    for name in (
        "ix_transactions_owner_txn_date",
        "ix_transactions_owner_content_hash",
        "ix_transactions_owner_merchant_key",
        "ix_transactions_matched_rule_id",
        "ix_transactions_category_id",
        "ix_transactions_owner_id",
    ):
        op.drop_index(name, table_name="transactions")
    op.drop_table("transactions")

    op.drop_index("ix_category_rules_owner_created", table_name="category_rules")
    op.drop_index("ix_category_rules_category_id", table_name="category_rules")
    op.drop_table("category_rules")

    op.drop_index("ix_categories_owner_id", table_name="categories")
    op.drop_table("categories")

    for name in (
        "ix_import_batch_items_batch_order",
        "ix_import_batch_items_status",
        "ix_import_batch_items_owner_id",
        "ix_import_batch_items_batch_id",
    ):
        op.drop_index(name, table_name="import_batch_items")
    op.drop_table("import_batch_items")

    for name in (
        "ix_import_batches_owner_created",
        "ix_import_batches_status",
        "ix_import_batches_owner_id",
    ):
        op.drop_index(name, table_name="import_batches")
    op.drop_table("import_batches")
