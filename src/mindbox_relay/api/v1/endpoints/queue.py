# src/mindbox_relay/api/v1/endpoints/queue.py
"""Operator endpoints for inspecting and re-driving the retry queue."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from mindbox_relay.models import QueueStatus
from mindbox_relay.schemas.queue import QueueItemResponse, QueueStatsResponse, TickResponse
from mindbox_relay.services.integration import MindboxIntegration, get_integration

router = APIRouter(prefix="/queue", tags=["queue"])


def get_integration_dep() -> MindboxIntegration:
    """Get the process-wide integration for dependency injection."""
    return get_integration()


IntegrationDep = Annotated[MindboxIntegration, Depends(get_integration_dep)]


@router.get("/stats", response_model=QueueStatsResponse)
def queue_stats(integration: IntegrationDep) -> QueueStatsResponse:
    """Return the number of rows in each status."""
    counts = integration.service.store.count_by_status()
    return QueueStatsResponse(
        counts={item_status.name.lower(): total for item_status, total in counts.items()},
        total=sum(counts.values()),
    )


@router.get("/items", response_model=list[QueueItemResponse])
def list_queue_items(
    integration: IntegrationDep,
    item_status: Annotated[QueueStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
) -> list[QueueItemResponse]:
    """List the newest queue rows, optionally filtered by status code."""
    items = integration.service.store.list_items(item_status, limit)
    return [QueueItemResponse.model_validate(item) for item in items]


@router.get("/items/{item_id}", response_model=QueueItemResponse)
def get_queue_item(item_id: int, integration: IntegrationDep) -> QueueItemResponse:
    """Get a specific queue row by ID."""
    item = integration.service.store.get(item_id)
    if item is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Queue item not found",
        )
    return QueueItemResponse.model_validate(item)


@router.post("/items/{item_id}/requeue", response_model=QueueItemResponse)
def requeue_queue_item(item_id: int, integration: IntegrationDep) -> QueueItemResponse:
    """Send a failed row back to the retry queue."""
    store = integration.service.store
    if store.get(item_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Queue item not found",
        )
    if not integration.service.requeue_failed(item_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Only failed queue items can be requeued",
        )
    return QueueItemResponse.model_validate(store.get(item_id))


@router.post("/tick", response_model=TickResponse)
def run_queue_tick(integration: IntegrationDep) -> TickResponse:
    """Run one queue tick immediately."""
    return TickResponse(next=integration.run_agent())
