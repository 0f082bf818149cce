"""Error codes and user-friendly messages.

This module defines the error catalog for the import pipeline.
Each error has:
- code: Unique identifier
- message: Technical description (for logs)
- user_message: User-friendly explanation
- suggestion: Actionable guidance for the user
- retry_allowed: Whether the error is retryable
"""

from dataclasses import asdict, dataclass


@dataclass
class ErrorDefinition:
    """Definition of a single error type."""

    code: str
    message: str
    user_message: str
    suggestion: str
    retry_allowed: bool


_DEFINITIONS = [
    # Batches
    ErrorDefinition(
        "BATCH_001",
        "Batch creation requested with no files",
        "Select at least one file to import.",
        "Add one or more receipts or statements and try again.",
        False,
    ),
    ErrorDefinition(
        "BATCH_002",
        "Batch not found for owner",
        "We couldn't find this import.",
        "Check the link or start a new import.",
        False,
    ),
    ErrorDefinition(
        "BATCH_003",
        "Batch is already finished and cannot be cancelled",
        "This import has already finished.",
        "Nothing to cancel. Review the results instead.",
        False,
    ),
    ErrorDefinition(
        "BATCH_005",
        "Batch is cancelled",
        "This import was cancelled.",
        "Start a new import to process these files.",
        False,
    ),
    ErrorDefinition(
        "BATCH_004",
        "Unsupported import type",
        "This import type isn't supported.",
        "Choose receipts, bank statements, invoices, or mixed.",
        False,
    ),
    # Items
    ErrorDefinition(
        "ITEM_001",
        "Batch item not found for owner",
        "We couldn't find this file.",
        "Refresh the import to see its current files.",
        False,
    ),
    ErrorDefinition(
        "ITEM_002",
        "Only failed items can be retried",
        "This file isn't in a failed state.",
        "Wait for processing to finish before retrying.",
        False,
    ),
    ErrorDefinition(
        "ITEM_003",
        "Retry limit reached for batch item",
        "This file has already been retried the maximum number of times.",
        "Check the file is readable and upload it again in a new import.",
        False,
    ),
    # Processing
    ErrorDefinition(
        "EXTRACT_001",
        "Document extraction failed",
        "We couldn't read this document.",
        "We'll retry automatically. If it keeps failing, try a clearer scan.",
        True,
    ),
    ErrorDefinition(
        "EXTRACT_002",
        "Document extraction timed out",
        "Reading this document took too long.",
        "We'll retry automatically. Large files may need to be split.",
        True,
    ),
    ErrorDefinition(
        "EXTRACT_003",
        "Extraction service rejected the document",
        "This document type can't be read.",
        "Upload a receipt image, PDF or statement export instead.",
        False,
    ),
    ErrorDefinition(
        "STORE_001",
        "Could not fetch file from storage",
        "We couldn't download this file.",
        "Try uploading the file again.",
        True,
    ),
    ErrorDefinition(
        "PROC_001",
        "Unexpected error while processing item",
        "Something went wrong while processing this file.",
        "Retry the file. Contact support if the problem persists.",
        True,
    ),
    ErrorDefinition(
        "QUEUE_001",
        "Job queue rejected the submission",
        "We couldn't schedule this file for processing.",
        "Use requeue to submit pending files again.",
        True,
    ),
    # Transactions
    ErrorDefinition(
        "TXN_001",
        "Transaction not found for owner",
        "We couldn't find this transaction.",
        "Refresh your transactions list.",
        False,
    ),
    ErrorDefinition(
        "TXN_002",
        "Transaction cannot be linked to itself",
        "A transaction can't be a duplicate of itself.",
        "Pick the original transaction this one duplicates.",
        False,
    ),
    # Database
    ErrorDefinition(
        "DB_001",
        "Database operation failed",
        "A database error occurred.",
        "Please try again later.",
        True,
    ),
    ErrorDefinition(
        "DB_002",
        "Resource already exists",
        "This record already exists.",
        "Please check if the record was already created.",
        False,
    ),
    # Rules
    ErrorDefinition(
        "RULE_001",
        "Rule pattern is invalid for its match type",
        "This rule pattern isn't valid.",
        "Check the pattern syntax. Regular expressions must compile.",
        False,
    ),
    ErrorDefinition(
        "RULE_002",
        "Rule not found for owner",
        "We couldn't find this rule.",
        "Refresh your rules list.",
        False,
    ),
    ErrorDefinition(
        "RULE_003",
        "Rule is in use; confirmation required to delete",
        "Transactions were categorized by this rule.",
        "Confirm the deletion to send those transactions back to review.",
        False,
    ),
    # Categories
    ErrorDefinition(
        "CAT_001",
        "Category not found or not visible to owner",
        "We couldn't find this category.",
        "Pick one of your categories or a built-in category.",
        False,
    ),
    ErrorDefinition(
        "CAT_002",
        "Category is in use; confirmation required to delete",
        "This category is assigned to transactions or rules.",
        "Confirm the deletion to uncategorize them and remove its rules.",
        False,
    ),
    ErrorDefinition(
        "CAT_003",
        "System categories cannot be deleted",
        "Built-in categories can't be removed.",
        "Create your own category instead.",
        False,
    ),
    ErrorDefinition(
        "CAT_004",
        "Category name already exists for owner",
        "You already have a category with this name.",
        "Choose a different name.",
        False,
    ),
    # AI
    ErrorDefinition(
        "AI_001",
        "AI categorizer request failed",
        "Automatic categorization is temporarily unavailable.",
        "The transaction was left for review.",
        True,
    ),
    # Request validation / generic
    ErrorDefinition(
        "VAL_001",
        "Request validation failed",
        "Invalid input data",
        "Please check your input and try again",
        True,
    ),
    ErrorDefinition(
        "SYS_001",
        "Internal server error",
        "An unexpected error occurred",
        "Please try again later or contact support",
        True,
    ),
]

# Error catalog for the import pipeline
ERROR_CATALOG: dict[str, dict] = {d.code: asdict(d) for d in _DEFINITIONS}


def get_error(error_code: str) -> dict:
    """Get error definition by code.

    Args:
        error_code: Error code from the catalog

    Returns:
        Dict with error details; a generic definition for unknown codes
    """
    if error_code not in ERROR_CATALOG:
        return {
            "code": "UNKNOWN",
            "message": f"Unknown error code: {error_code}",
            "user_message": "An unexpected error occurred.",
            "suggestion": "Please try again. Contact support if the problem persists.",
            "retry_allowed": True,
        }
    return ERROR_CATALOG[error_code]


def get_user_message(error_code: str) -> str:
    """Get user-friendly message for an error code."""
    return get_error(error_code)["user_message"]


def get_suggestion(error_code: str) -> str:
    """Get actionable suggestion for an error code."""
    return get_error(error_code)["suggestion"]


def is_retryable(error_code: str) -> bool:
    """Check if an error is retryable."""
    return get_error(error_code)["retry_allowed"]
