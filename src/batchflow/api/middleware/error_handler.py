"""Global error handling.

All exceptions are converted to one JSON shape:
``{error_code, message, user_message, suggestion, retry_allowed}``.
"""

import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from batchflow.config import settings
from batchflow.core.errors import get_error, get_suggestion, get_user_message
from batchflow.core.exceptions import ImportPipelineError

logger = logging.getLogger(__name__)


def _error_body(error_code: str, message: str | None = None) -> dict:
    info = get_error(error_code)
    return {
        "error_code": error_code,
        "message": message or info["message"],
        "user_message": get_user_message(error_code),
        "suggestion": get_suggestion(error_code),
        "retry_allowed": info["retry_allowed"],
    }


async def handle_pipeline_error(request: Request, exc: ImportPipelineError) -> JSONResponse:
    """Render an ImportPipelineError from the error catalog."""
    extra = {"error_code": exc.error_code, "path": request.url.path, "method": request.method}
    if settings.debug:
        extra["details"] = exc.details

    if exc.http_status >= 500:
        logger.error(f"Import pipeline error: {exc.error_code}", extra=extra)
    else:
        logger.info(f"Request rejected: {exc.error_code}", extra=extra)

    return JSONResponse(status_code=exc.http_status, content=_error_body(exc.error_code))


async def handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic request validation errors as 400 VAL_001."""
    error_messages = []
    for error in exc.errors():
        field = ".".join(str(x) for x in error.get("loc", []))
        msg = error.get("msg", "Invalid value")
        error_messages.append(f"{field}: {msg}")

    logger.warning(
        f"Validation error on {request.url.path}",
        extra={"path": request.url.path, "method": request.method},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body("VAL_001", " | ".join(error_messages)),
    )


async def handle_integrity_error(request: Request, exc: IntegrityError) -> JSONResponse:
    """Handle database integrity errors."""
    # str(exc) can include SQL and bound parameters.
    extra = {"path": request.url.path, "method": request.method}
    if settings.debug:
        logger.exception(f"Database integrity error on {request.url.path}", extra=extra)
    else:
        logger.error(f"Database integrity error on {request.url.path}", extra=extra)

    error_msg = str(exc).lower()
    if "unique" in error_msg or "duplicate" in error_msg:
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content=_error_body("DB_002"))
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_body("DB_001")
    )


async def handle_generic_error(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions without exposing internals."""
    extra = {
        "error_type": type(exc).__name__,
        "path": request.url.path,
        "method": request.method,
    }
    if settings.debug:
        logger.exception(f"Unexpected error on {request.url.path}", extra=extra)
    else:
        logger.error(f"Unexpected error on {request.url.path}", extra=extra)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_body("SYS_001")
    )
