"""Unit tests for the in-process job queue."""
import logging
from uuid import uuid4

import pytest

from batchflow.core.exceptions import EnqueueError
from batchflow.schemas.internal import ImportJobPayload
from batchflow.workers.queue import InProcessJobQueue


def _payload() -> ImportJobPayload:
    return ImportJobPayload(
        batch_id=uuid4(),
        batch_item_id=uuid4(),
        owner_id=uuid4(),
        file_url="s3://uploads/a.jpg",
        file_name="a.jpg",
        file_format="jpg",
        import_type="receipts",
    )


@pytest.mark.asyncio
async def test_enqueue_runs_handler():
    handled = []

    async def handler(payload):
        handled.append(payload.batch_item_id)

    queue = InProcessJobQueue(handler)
    payload = _payload()

    receipt = await queue.enqueue(payload)
    await queue.drain()

    assert receipt.event_id
    assert handled == [payload.batch_item_id]
    assert queue.pending == 0


@pytest.mark.asyncio
async def test_drain_waits_for_jobs_enqueued_by_jobs():
    handled = []
    queue = InProcessJobQueue()

    async def handler(payload):
        handled.append(payload.order)
        if payload.order < 2:
            await queue.enqueue(payload.model_copy(update={"order": payload.order + 1}))

    queue.handler = handler
    await queue.enqueue(_payload())
    await queue.drain()

    assert handled == [0, 1, 2]


@pytest.mark.asyncio
async def test_handler_crash_is_logged(caplog):
    async def handler(payload):
        raise RuntimeError("boom")

    queue = InProcessJobQueue(handler)
    with caplog.at_level(logging.ERROR, logger="batchflow.workers.queue"):
        await queue.enqueue(_payload())
        await queue.drain()

    assert "Import job crashed" in caplog.text


@pytest.mark.asyncio
async def test_enqueue_without_handler_raises():
    with pytest.raises(EnqueueError) as exc_info:
        await InProcessJobQueue().enqueue(_payload())

    assert exc_info.value.error_code == "QUEUE_001"
    assert exc_info.value.http_status == 503
