"""Custom exception classes for the import pipeline.

Each exception carries an error_code defined in errors.py and the HTTP status
the API layer should answer with.
"""

from typing import Any


class ImportPipelineError(Exception):
    """Base exception for all import pipeline errors.

    Attributes:
        error_code: Code from the error catalog (e.g., "BATCH_001")
        details: Additional context about the error (for logging)
        http_status: HTTP status code to return (default: 500)
    """

    default_status = 500

    def __init__(
        self,
        error_code: str,
        details: dict[str, Any] | None = None,
        http_status: int | None = None,
    ):
        """Initialize the exception.

        Args:
            error_code: Error code from errors.py
            details: Additional error context (not shown to users)
            http_status: HTTP status code (defaults per subclass)
        """
        self.error_code = error_code
        self.details = details or {}
        self.http_status = http_status or self.default_status
        super().__init__(error_code)


class ValidationError(ImportPipelineError):
    """Raised for malformed input before any mutation.

    Examples: an empty file list, a regex rule that does not compile, a rule
    targeting a category the owner cannot see. Never retried.
    """

    default_status = 400


class NotFoundError(ImportPipelineError):
    """Raised when a batch, item, rule, category or transaction is not owned by the caller."""

    default_status = 404


class ConflictError(ImportPipelineError):
    """Raised when a state transition is not allowed.

    Common causes:
    - Retrying an item that is not failed, or is at the retry cap
    - Deleting an in-use rule/category without confirmation
    - Cancelling a finished batch
    """

    default_status = 409


class ExtractionError(ImportPipelineError):
    """Raised when fetching or extracting a document fails.

    Treated as transient: the item may be re-enqueued until the retry cap.
    """

    default_status = 502


class PersistenceError(ImportPipelineError):
    """Raised when writing a processed item fails after extraction."""

    pass


class EnqueueError(ImportPipelineError):
    """Raised when the job queue rejects a submission."""

    default_status = 503


class CategorizerError(ImportPipelineError):
    """Raised by the AI categorizer client.

    The engine treats this as "no suggestion"; it never fails an item.
    """

    default_status = 502
