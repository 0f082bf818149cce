"""API tests for the batch import endpoints."""
from uuid import uuid4

import pytest
from httpx import AsyncClient

from batchflow.config import settings
from batchflow.core.security import create_access_token

BATCHES = "/api/v1/batches"


def _body(*names: str, import_type: str = "receipts") -> dict:
    return {
        "import_type": import_type,
        "files": [{"file_name": n, "file_url": f"s3://uploads/{n}"} for n in names],
    }


@pytest.mark.asyncio
async def test_requires_authentication(client: AsyncClient):
    response = await client.get(BATCHES)
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_rejects_invalid_token(client: AsyncClient):
    response = await client.get(BATCHES, headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_batch(client: AsyncClient, auth_headers, job_queue):
    response = await client.post(BATCHES, json=_body("a.jpg", "b.pdf"), headers=auth_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["enqueued"] == 2
    assert data["enqueue_failed"] == 0
    assert [i["file_format"] for i in data["items"]] == ["jpg", "pdf"]
    assert len(job_queue.payloads) == 2


@pytest.mark.asyncio
async def test_create_batch_without_files(client: AsyncClient, auth_headers):
    response = await client.post(BATCHES, json=_body(), headers=auth_headers)

    assert response.status_code == 400
    data = response.json()
    assert data["error_code"] == "BATCH_001"
    assert data["user_message"] == "Select at least one file to import."
    assert data["retry_allowed"] is False


@pytest.mark.asyncio
async def test_create_batch_invalid_import_type(client: AsyncClient, auth_headers):
    response = await client.post(
        BATCHES, json=_body("a.jpg", import_type="photos"), headers=auth_headers
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "VAL_001"


@pytest.mark.asyncio
async def test_batch_status_and_items(client: AsyncClient, auth_headers):
    created = (await client.post(BATCHES, json=_body("a.jpg"), headers=auth_headers)).json()
    batch_id = created["batch_id"]

    summary = await client.get(f"{BATCHES}/{batch_id}", headers=auth_headers)
    assert summary.status_code == 200
    assert summary.json()["status"] == "pending"
    assert summary.json()["completion_percentage"] == 0

    progress = await client.get(f"{BATCHES}/{batch_id}/progress", headers=auth_headers)
    assert progress.json()["total"] == 1
    assert progress.json()["is_complete"] is False

    items = await client.get(f"{BATCHES}/{batch_id}/items", headers=auth_headers)
    assert [i["file_name"] for i in items.json()] == ["a.jpg"]

    activity = await client.get(f"{BATCHES}/{batch_id}/activity", headers=auth_headers)
    assert [e["activity_type"] for e in activity.json()] == ["batch_created"]


@pytest.mark.asyncio
async def test_other_owner_gets_404(client: AsyncClient, auth_headers):
    created = (await client.post(BATCHES, json=_body("a.jpg"), headers=auth_headers)).json()
    stranger = {"Authorization": f"Bearer {create_access_token(uuid4())}"}

    response = await client.get(f"{BATCHES}/{created['batch_id']}", headers=stranger)

    assert response.status_code == 404
    assert response.json()["error_code"] == "BATCH_002"


@pytest.mark.asyncio
async def test_list_batches_paginates(client: AsyncClient, auth_headers):
    for n in range(3):
        await client.post(BATCHES, json=_body(f"{n}.jpg"), headers=auth_headers)

    first = (await client.get(BATCHES, params={"limit": 2}, headers=auth_headers)).json()
    assert len(first["batches"]) == 2
    assert first["has_more"] is True

    second = (
        await client.get(
            BATCHES, params={"limit": 2, "cursor": first["next_cursor"]}, headers=auth_headers
        )
    ).json()
    assert len(second["batches"]) == 1
    assert second["has_more"] is False
    seen = {b["id"] for b in first["batches"]} | {b["id"] for b in second["batches"]}
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_list_batches_default_page_size(client: AsyncClient, auth_headers, monkeypatch):
    monkeypatch.setattr(settings, "batch_list_default_limit", 1)
    for n in range(2):
        await client.post(BATCHES, json=_body(f"{n}.jpg"), headers=auth_headers)

    data = (await client.get(BATCHES, headers=auth_headers)).json()

    assert len(data["batches"]) == 1
    assert data["has_more"] is True


@pytest.mark.asyncio
async def test_list_batches_zero_limit_rejected(client: AsyncClient, auth_headers):
    response = await client.get(BATCHES, params={"limit": 0}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error_code"] == "VAL_001"


@pytest.mark.asyncio
async def test_cancel_then_cancel_again(client: AsyncClient, auth_headers):
    created = (await client.post(BATCHES, json=_body("a.jpg", "b.jpg"), headers=auth_headers)).json()
    url = f"{BATCHES}/{created['batch_id']}/cancel"

    first = await client.post(url, headers=auth_headers)
    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"
    assert first.json()["skipped_files"] == 2

    second = await client.post(url, headers=auth_headers)
    assert second.status_code == 200
    assert second.json()["skipped_files"] == 2

    requeue = await client.post(f"{BATCHES}/{created['batch_id']}/requeue", headers=auth_headers)
    assert requeue.status_code == 409
    assert requeue.json()["error_code"] == "BATCH_005"


@pytest.mark.asyncio
async def test_retry_pending_item_conflicts(client: AsyncClient, auth_headers):
    created = (await client.post(BATCHES, json=_body("a.jpg"), headers=auth_headers)).json()
    item_id = created["items"][0]["id"]

    response = await client.post(
        f"{BATCHES}/{created['batch_id']}/items/{item_id}/retry", headers=auth_headers
    )

    assert response.status_code == 409
    assert response.json()["error_code"] == "ITEM_002"


@pytest.mark.asyncio
async def test_retry_item_in_wrong_batch_not_found(client: AsyncClient, auth_headers):
    created = (await client.post(BATCHES, json=_body("a.jpg"), headers=auth_headers)).json()
    item_id = created["items"][0]["id"]

    response = await client.post(
        f"{BATCHES}/{uuid4()}/items/{item_id}/retry", headers=auth_headers
    )

    assert response.status_code == 404
    assert response.json()["error_code"] == "ITEM_001"


@pytest.mark.asyncio
async def test_end_to_end_run_through_api(
    client: AsyncClient, auth_headers, extraction, run_jobs
):
    extraction.returns("s3://uploads/a.jpg", "Starbucks")
    extraction.fails("s3://uploads/b.jpg")
    created = (await client.post(BATCHES, json=_body("a.jpg", "b.jpg"), headers=auth_headers)).json()

    await run_jobs(auto_retry=False)

    summary = (await client.get(f"{BATCHES}/{created['batch_id']}", headers=auth_headers)).json()
    assert summary["status"] == "completed"
    assert summary["successful_files"] == 1
    assert summary["failed_files"] == 1
    assert summary["completion_percentage"] == 100
    assert summary["has_retryable_items"] is True

    retry = (
        await client.post(f"{BATCHES}/{created['batch_id']}/retry-failed", headers=auth_headers)
    ).json()
    assert retry["retried_count"] == 1
    assert retry["errors"] == []
