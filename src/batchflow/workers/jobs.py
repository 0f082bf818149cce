"""Job handler binding the item processor to a queue.

Each delivered job gets its own database session so items are isolated from
each other.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from batchflow.clients.http import HttpAICategorizer, HttpExtractionService, HttpFileStorage
from batchflow.clients.protocols import AICategorizer, ExtractionService, FileStorage, JobQueue
from batchflow.config import settings
from batchflow.schemas.internal import ImportJobPayload, JobProcessingResult
from batchflow.services.processor import ItemProcessor
from batchflow.workers.queue import InProcessJobQueue

logger = logging.getLogger(__name__)


@dataclass
class ImportWorker:
    session_factory: async_sessionmaker[AsyncSession]
    extraction: ExtractionService
    storage: FileStorage
    ai_categorizer: AICategorizer | None = None
    queue: JobQueue | None = None

    async def handle(self, payload: ImportJobPayload) -> JobProcessingResult:
        async with self.session_factory() as db:
            processor = ItemProcessor(
                db,
                extraction=self.extraction,
                storage=self.storage,
                queue=self.queue,
                ai_categorizer=self.ai_categorizer,
            )
            result = await processor.process_item(payload)

        logger.info(
            "Import job finished",
            extra={
                "batch_id": str(payload.batch_id),
                "batch_item_id": str(payload.batch_item_id),
                "status": result.status,
            },
        )
        return result


def build_worker(session_factory: async_sessionmaker[AsyncSession]) -> ImportWorker:
    """Wire the default HTTP collaborators and an in-process queue."""
    worker = ImportWorker(
        session_factory=session_factory,
        extraction=HttpExtractionService(),
        storage=HttpFileStorage(),
        ai_categorizer=HttpAICategorizer() if settings.ai_categorizer_url else None,
    )
    worker.queue = InProcessJobQueue(worker.handle)
    return worker
