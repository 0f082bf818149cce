"""In-process job queue.

Runs each job as an asyncio task in the current event loop. Suitable for a
single-process deployment and for tests; a broker-backed queue only has to
implement the same ``enqueue`` method.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable

from batchflow.core.exceptions import EnqueueError
from batchflow.schemas.internal import EnqueueReceipt, ImportJobPayload

logger = logging.getLogger(__name__)

JobHandler = Callable[[ImportJobPayload], Awaitable[object]]


class InProcessJobQueue:
    def __init__(self, handler: JobHandler | None = None):
        self.handler = handler
        self._tasks: set[asyncio.Task] = set()

    async def enqueue(self, payload: ImportJobPayload) -> EnqueueReceipt:
        if self.handler is None:
            raise EnqueueError("QUEUE_001", {"reason": "job queue has no handler"})

        event_id = str(uuid.uuid4())
        task = asyncio.create_task(self._run(event_id, payload), name=f"import-job-{event_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return EnqueueReceipt(event_id=event_id)

    async def _run(self, event_id: str, payload: ImportJobPayload) -> None:
        try:
            await self.handler(payload)
        except Exception as e:
            # Item state is recorded by the processor; anything reaching here is a crash.
            logger.error(
                "Import job crashed",
                extra={
                    "batch_id": str(payload.batch_id),
                    "batch_item_id": str(payload.batch_item_id),
                    "error_type": type(e).__name__,
                },
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until no jobs are running, including jobs enqueued by jobs."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
