"""Tests for the queue operator endpoints."""

from fastapi import status
from fastapi.testclient import TestClient

from mindbox_relay.models import QueueStatus
from mindbox_relay.services.queue_service import AGENT_ENTRYPOINT


def test_queue_stats(client: TestClient, make_queue_item) -> None:
    make_queue_item()
    make_queue_item(status=QueueStatus.FAILED)

    r = client.get("/api/v1/queue/stats")

    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["total"] == 2
    assert data["counts"] == {"new": 0, "retry": 1, "locked": 0, "success": 0, "failed": 1}


def test_list_items_filters_by_status(client: TestClient, make_queue_item) -> None:
    make_queue_item()
    failed_id = make_queue_item(status=QueueStatus.FAILED, error_message="bad phone")

    r = client.get("/api/v1/queue/items", params={"status": "F"})

    assert r.status_code == status.HTTP_200_OK
    items = r.json()
    assert [item["id"] for item in items] == [failed_id]
    assert items[0]["status"] == "F"
    assert items[0]["error_message"] == "bad phone"


def test_list_items_rejects_unknown_status(client: TestClient) -> None:
    r = client.get("/api/v1/queue/items", params={"status": "X"})

    assert r.status_code == 422


def test_list_items_limit_bounds(client: TestClient) -> None:
    assert client.get("/api/v1/queue/items", params={"limit": 0}).status_code == 422
    assert client.get("/api/v1/queue/items", params={"limit": 501}).status_code == 422


def test_get_item(client: TestClient, make_queue_item) -> None:
    item_id = make_queue_item(operation="Website.EditCustomer")

    r = client.get(f"/api/v1/queue/items/{item_id}")

    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["operation"] == "Website.EditCustomer"
    assert data["idempotency_token"] == "0b6c2f3e-7f0a-4c3e-9d52-1f7a0e9b8c11"
    assert data["tries"] == 1


def test_get_missing_item(client: TestClient) -> None:
    r = client.get("/api/v1/queue/items/12345")

    assert r.status_code == status.HTTP_404_NOT_FOUND
    assert r.json()["detail"] == "Queue item not found"


def test_requeue_failed_item(client: TestClient, make_queue_item) -> None:
    item_id = make_queue_item(status=QueueStatus.FAILED, next_run_at=None, tries=3)

    r = client.post(f"/api/v1/queue/items/{item_id}/requeue")

    assert r.status_code == status.HTTP_200_OK
    data = r.json()
    assert data["status"] == "R"
    assert data["tries"] == 3
    assert data["next_run_at"] is not None


def test_requeue_rejects_item_that_is_not_failed(client: TestClient, make_queue_item) -> None:
    item_id = make_queue_item(status=QueueStatus.SUCCESS)

    r = client.post(f"/api/v1/queue/items/{item_id}/requeue")

    assert r.status_code == status.HTTP_409_CONFLICT


def test_requeue_missing_item(client: TestClient) -> None:
    assert client.post("/api/v1/queue/items/999/requeue").status_code == status.HTTP_404_NOT_FOUND


def test_manual_tick(client: TestClient, make_queue_item, mock_api, store) -> None:
    item_id = make_queue_item()

    r = client.post("/api/v1/queue/tick")

    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"next": AGENT_ENTRYPOINT}
    assert len(mock_api.requests) == 1
    assert store.get(item_id).status is QueueStatus.SUCCESS
