"""Integration tests for batch creation, listing and status reads."""
from unittest.mock import AsyncMock

import pytest

from batchflow.config import settings
from batchflow.core.exceptions import NotFoundError, ValidationError
from batchflow.models.batch import ImportBatch
from batchflow.repositories.batch import BatchRepository
from batchflow.schemas.batch import FileUpload
from batchflow.schemas.internal import EnqueueReceipt
from batchflow.services.batch import BatchCoordinator


def _files(*names: str) -> list[FileUpload]:
    return [FileUpload(file_name=n, file_url=f"s3://uploads/{n}") for n in names]


@pytest.fixture
def coordinator(db_session, job_queue):
    return BatchCoordinator(db_session, queue=job_queue)


@pytest.mark.asyncio
async def test_create_batch_with_items_in_order(db_session, owner_id, coordinator):
    batch, items = await coordinator.create_batch(
        owner_id, "receipts", None, _files("z.PNG", "a.pdf", "scan")
    )

    assert batch.status == "pending"
    assert batch.total_files == 3
    assert batch.processed_files == 0
    assert [i.order for i in items] == [0, 1, 2]
    assert [i.file_format for i in items] == ["png", "pdf", "jpg"]
    assert all(i.status == "pending" and i.retry_count == 0 for i in items)


@pytest.mark.asyncio
async def test_create_batch_without_files_rejected(db_session, owner_id, coordinator):
    with pytest.raises(ValidationError) as exc_info:
        await coordinator.create_batch(owner_id, "receipts", None, [])

    assert exc_info.value.error_code == "BATCH_001"
    assert await BatchRepository(db_session).list_page(owner_id, 10) == []


@pytest.mark.asyncio
async def test_create_batch_unknown_import_type_rejected(owner_id, coordinator):
    with pytest.raises(ValidationError) as exc_info:
        await coordinator.create_batch(owner_id, "photos", None, _files("a.jpg"))

    assert exc_info.value.error_code == "BATCH_004"


@pytest.mark.asyncio
async def test_enqueue_failure_leaves_items_pending(owner_id, coordinator, job_queue):
    job_queue.fail = True

    created = await coordinator.start_import(owner_id, "receipts", None, _files("a.jpg", "b.jpg"))

    assert created.enqueued == 0
    assert created.enqueue_failed == 2
    summary = await coordinator.get_batch_status_summary(created.batch_id, owner_id)
    assert summary.status == "pending"
    assert len(summary.errors) == 2
    assert summary.errors[0]["error_code"] == "QUEUE_001"
    assert summary.errors[0]["file_name"] == "a.jpg"

    job_queue.fail = False
    requeued = await coordinator.requeue_pending_items(created.batch_id, owner_id)

    assert requeued.requeued_count == 2
    assert requeued.errors == []
    assert [p.file_name for p in job_queue.payloads] == ["a.jpg", "b.jpg"]


@pytest.mark.asyncio
async def test_progress_of_fresh_batch(owner_id, coordinator):
    created = await coordinator.start_import(owner_id, "invoices", "pdf", _files("a.pdf"))

    progress = await coordinator.get_batch_progress(created.batch_id, owner_id)

    assert progress.percentage == 0
    assert progress.status == "pending"
    assert progress.remaining == 1
    assert progress.is_complete is False
    assert progress.estimated_completion_at is None


@pytest.mark.asyncio
async def test_batches_are_owner_scoped(owner_id, other_owner_id, coordinator):
    created = await coordinator.start_import(owner_id, "receipts", None, _files("a.jpg"))

    with pytest.raises(NotFoundError) as exc_info:
        await coordinator.get_batch_status_summary(created.batch_id, other_owner_id)
    assert exc_info.value.error_code == "BATCH_002"

    with pytest.raises(NotFoundError):
        await coordinator.get_batch_items_status(created.batch_id, other_owner_id)

    with pytest.raises(NotFoundError):
        await coordinator.retry_item(created.items[0].id, other_owner_id)

    listed = await coordinator.list_batches(other_owner_id)
    assert listed.batches == []


@pytest.mark.asyncio
async def test_activity_log_newest_first(owner_id, coordinator):
    created = await coordinator.start_import(owner_id, "receipts", None, _files("a.jpg"))

    entries = await coordinator.get_batch_activity(created.batch_id, owner_id)

    assert [e.activity_type for e in entries] == ["batch_created"]
    assert entries[0].details["total_files"] == 1


class TestKeysetPagination:
    @pytest.mark.asyncio
    async def test_pages_do_not_overlap_or_skip(self, owner_id, coordinator):
        ids = []
        for n in range(5):
            batch, _ = await coordinator.create_batch(owner_id, "receipts", None, _files(f"{n}.jpg"))
            ids.append(batch.id)
        newest_first = list(reversed(ids))

        first = await coordinator.list_batches(owner_id, limit=2)
        assert [b.id for b in first.batches] == newest_first[:2]
        assert first.has_more is True
        assert first.next_cursor == newest_first[1]

        # New batches created between calls must not disturb later pages.
        await coordinator.create_batch(owner_id, "receipts", None, _files("late.jpg"))

        second = await coordinator.list_batches(owner_id, limit=2, cursor=first.next_cursor)
        assert [b.id for b in second.batches] == newest_first[2:4]

        third = await coordinator.list_batches(owner_id, limit=2, cursor=second.next_cursor)
        assert [b.id for b in third.batches] == newest_first[4:]
        assert third.has_more is False
        assert third.next_cursor is None

    @pytest.mark.asyncio
    async def test_status_filter(self, db_session, owner_id, coordinator):
        kept, _ = await coordinator.create_batch(owner_id, "receipts", None, _files("a.jpg"))
        cancelled, _ = await coordinator.create_batch(owner_id, "receipts", None, _files("b.jpg"))
        await coordinator.cancel_batch(cancelled.id, owner_id)

        result = await coordinator.list_batches(owner_id, status="cancelled")

        assert [b.id for b in result.batches] == [cancelled.id]
        assert kept.id not in [b.id for b in result.batches]

    @pytest.mark.asyncio
    async def test_unknown_cursor_starts_from_top(self, owner_id, other_owner_id, coordinator):
        mine, _ = await coordinator.create_batch(owner_id, "receipts", None, _files("a.jpg"))
        theirs, _ = await coordinator.create_batch(other_owner_id, "receipts", None, _files("b.jpg"))

        result = await coordinator.list_batches(owner_id, cursor=theirs.id)

        assert [b.id for b in result.batches] == [mine.id]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1, 101])
    async def test_limit_out_of_range(self, owner_id, coordinator, limit):
        with pytest.raises(ValidationError) as exc_info:
            await coordinator.list_batches(owner_id, limit=limit)

        assert exc_info.value.error_code == "VAL_001"

    @pytest.mark.asyncio
    async def test_default_page_size_from_settings(self, owner_id, coordinator, monkeypatch):
        monkeypatch.setattr(settings, "batch_list_default_limit", 2)
        for n in range(3):
            await coordinator.create_batch(owner_id, "receipts", None, _files(f"{n}.jpg"))

        result = await coordinator.list_batches(owner_id)

        assert len(result.batches) == 2
        assert result.has_more is True


@pytest.mark.asyncio
async def test_counter_updates_are_relative(db_session, owner_id, coordinator):
    batch, _ = await coordinator.create_batch(owner_id, "receipts", None, _files("a.jpg", "b.jpg"))
    repo = BatchRepository(db_session)

    await repo.increment_counters(batch.id, processed_files=1, successful_files=1)
    await repo.increment_counters(batch.id, processed_files=1, failed_files=1)
    await db_session.commit()

    stored = await repo.get_by_id(batch.id)
    assert isinstance(stored, ImportBatch)
    assert stored.processed_files == 2
    assert stored.successful_files == 1
    assert stored.failed_files == 1

    with pytest.raises(ValueError):
        await repo.increment_counters(batch.id, total_files=1)


@pytest.mark.asyncio
async def test_enqueue_failures_are_per_item(db_session, owner_id):
    queue = AsyncMock()
    queue.enqueue.side_effect = [EnqueueReceipt(event_id="evt-1"), ConnectionError("broker down")]
    coordinator = BatchCoordinator(db_session, queue=queue)

    created = await coordinator.start_import(owner_id, "receipts", None, _files("a.jpg", "b.jpg"))

    assert queue.enqueue.await_count == 2
    assert created.enqueued == 1
    assert created.enqueue_failed == 1
    summary = await coordinator.get_batch_status_summary(created.batch_id, owner_id)
    assert [e["file_name"] for e in summary.errors] == ["b.jpg"]
    assert summary.errors[0]["message"] == "broker down"
