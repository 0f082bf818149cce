"""Database models."""
from batchflow.models.activity_log import ActivityLogEntry
from batchflow.models.batch import ImportBatch
from batchflow.models.batch_item import BatchItem
from batchflow.models.category import Category, CategoryRule
from batchflow.models.transaction import Transaction

__all__ = [
    "ActivityLogEntry",
    "BatchItem",
    "Category",
    "CategoryRule",
    "ImportBatch",
    "Transaction",
]
