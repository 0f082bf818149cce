"""Contracts for the collaborators the pipeline depends on.

Implementations live in ``http.py`` (production) and in the test suite.
"""

from decimal import Decimal
from typing import Protocol

from batchflow.schemas.categorization import AISuggestion
from batchflow.schemas.internal import EnqueueReceipt, ExtractedTransaction, ImportJobPayload


class JobQueue(Protocol):
    """At-least-once delivery of job payloads to the item processor."""

    async def enqueue(self, payload: ImportJobPayload) -> EnqueueReceipt: ...


class ExtractionService(Protocol):
    """OCR/AI document extraction. Raises ExtractionError on failure."""

    async def extract(
        self, file_url: str, file_format: str, content: bytes | None = None
    ) -> ExtractedTransaction: ...


class AICategorizer(Protocol):
    """Returns a suggestion or None. Raises CategorizerError on provider failure."""

    async def suggest_category(
        self,
        merchant_name: str | None,
        description: str | None,
        amount: Decimal | None,
    ) -> AISuggestion | None: ...


class FileStorage(Protocol):
    """Resolves a file URL to its bytes. Raises ExtractionError on failure."""

    async def fetch(self, url: str) -> bytes: ...
