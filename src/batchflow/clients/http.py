"""httpx-based collaborator clients."""

import logging
from decimal import Decimal
from typing import Any

import httpx

from batchflow.config import settings
from batchflow.core.exceptions import CategorizerError, ExtractionError
from batchflow.schemas.categorization import AISuggestion
from batchflow.schemas.internal import ExtractedTransaction

logger = logging.getLogger(__name__)


class _HttpClient:
    """Shared request wrapper mapping transport and HTTP errors to one exception type."""

    error_class: type = ExtractionError
    error_code: str = "EXTRACT_001"
    # Code for 415/422 answers: the request itself will never succeed.
    rejected_code: str | None = None

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self.client = httpx.AsyncClient(
            base_url=(base_url or "").rstrip("/"),
            headers=headers,
            timeout=timeout or settings.http_timeout_seconds,
            transport=transport,
        )

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise self.error_class(self.error_code, {"reason": "timeout", "url": url}) from e
        except httpx.HTTPError as e:
            raise self.error_class(
                self.error_code, {"reason": type(e).__name__, "url": url}
            ) from e

        if response.is_error:
            error_code = self.error_code
            if self.rejected_code and response.status_code in (415, 422):
                error_code = self.rejected_code
            logger.warning(
                "Collaborator request failed",
                extra={"status_code": response.status_code, "error_code": error_code},
            )
            raise self.error_class(error_code, {"status_code": response.status_code, "url": url})
        return response

    async def aclose(self) -> None:
        await self.client.aclose()


class HttpFileStorage(_HttpClient):
    """Fetch uploaded files by absolute URL."""

    error_code = "STORE_001"

    async def fetch(self, url: str) -> bytes:
        response = await self._request("GET", url)
        return response.content


class HttpExtractionService(_HttpClient):
    """POST a document to the extraction service and parse its single transaction."""

    rejected_code = "EXTRACT_003"

    def __init__(self, base_url: str | None = None, api_key: str | None = None, **kwargs):
        super().__init__(
            base_url or settings.extraction_service_url,
            api_key or settings.extraction_api_key,
            **kwargs,
        )

    async def extract(
        self, file_url: str, file_format: str, content: bytes | None = None
    ) -> ExtractedTransaction:
        if content is not None:
            response = await self._request(
                "POST",
                "/extract",
                data={"file_url": file_url, "file_format": file_format},
                files={"file": (f"document.{file_format}", content)},
            )
        else:
            response = await self._request(
                "POST", "/extract", json={"file_url": file_url, "file_format": file_format}
            )

        try:
            return ExtractedTransaction.model_validate(response.json())
        except ValueError as e:
            raise ExtractionError("EXTRACT_001", {"reason": "invalid extraction payload"}) from e


class HttpAICategorizer(_HttpClient):
    """Ask the AI service for a category suggestion."""

    error_class = CategorizerError
    error_code = "AI_001"

    def __init__(self, base_url: str | None = None, api_key: str | None = None, **kwargs):
        super().__init__(
            base_url or settings.ai_categorizer_url,
            api_key or settings.ai_api_key,
            **kwargs,
        )

    async def suggest_category(
        self,
        merchant_name: str | None,
        description: str | None,
        amount: Decimal | None,
    ) -> AISuggestion | None:
        response = await self._request(
            "POST",
            "/categorize",
            json={
                "merchant_name": merchant_name,
                "description": description,
                "amount": str(amount) if amount is not None else None,
            },
        )
        try:
            data = response.json()
        except ValueError as e:
            raise CategorizerError("AI_001", {"reason": "invalid suggestion payload"}) from e

        if data is None:
            return None
        if not isinstance(data, dict):
            raise CategorizerError("AI_001", {"reason": "suggestion is not an object"})
        if not data.get("category_id"):
            return None
        try:
            return AISuggestion.model_validate(data)
        except ValueError as e:
            raise CategorizerError("AI_001", {"reason": "invalid suggestion payload"}) from e
