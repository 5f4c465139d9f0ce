"""Queue-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from mindbox_relay.models import QueueStatus


class QueueItemResponse(BaseModel):
    """Schema for a queue row returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: QueueStatus
    tries: int
    next_run_at: datetime | None
    locked_until: datetime | None
    mode: str
    operation: str
    payload: str
    device_id: str | None
    authorization: bool
    api_url: str
    endpoint_id: str
    timeout: float
    idempotency_token: str
    http_status: int
    response_status: str | None
    error_id: str | None
    error_message: str | None
    created_at: datetime
    updated_at: datetime
    last_error_at: datetime | None


class QueueStatsResponse(BaseModel):
    """Number of queue rows per status."""

    counts: dict[str, int] = Field(..., description="Row count keyed by status name.")
    total: int


class TickResponse(BaseModel):
    """Result of a manually triggered queue tick."""

    next: str = Field(..., description="Entry point to invoke on the next tick.")
