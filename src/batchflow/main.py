from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError

from batchflow.api.middleware.error_handler import (
    handle_generic_error,
    handle_integrity_error,
    handle_pipeline_error,
    handle_validation_error,
)
from batchflow.api.middleware.logging import RequestLoggingMiddleware
from batchflow.api.v1 import router as v1_router
from batchflow.api.v1.health import router as health_router
from batchflow.config import settings
from batchflow.core.exceptions import ImportPipelineError
from batchflow.core.logging import configure_logging
from batchflow.db.session import AsyncSessionLocal
from batchflow.workers.jobs import build_worker


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    configure_logging()
    worker = build_worker(AsyncSessionLocal)
    app.state.job_queue = worker.queue
    app.state.ai_categorizer = worker.ai_categorizer
    yield
    # Shutdown: let in-flight jobs finish, then close HTTP clients
    await worker.queue.drain()
    await worker.extraction.aclose()
    await worker.storage.aclose()
    if worker.ai_categorizer is not None:
        await worker.ai_categorizer.aclose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Batchflow Import API",
        description="Bulk document import with transaction categorization",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers (order matters - most specific first)
    app.add_exception_handler(ImportPipelineError, handle_pipeline_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(Exception, handle_generic_error)

    # Register routers
    app.include_router(health_router)
    app.include_router(v1_router)

    return app


app = create_app()
