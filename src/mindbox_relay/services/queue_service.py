"""Send-or-queue orchestration for Mindbox operation calls.

This module provides the QueueService class which decides, for every call,
whether to deliver it now, queue it for a later retry, or give up:

- ``send_or_queue`` makes the immediate attempt in the caller's thread and
  records transient failures as ``Retry`` rows
- ``run_batch`` is one periodic pass: it claims due rows, re-sends them with
  their original idempotency token and records the outcome
"""

from __future__ import annotations

import json
import logging
import uuid
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from mindbox_relay.core.settings import Settings
from mindbox_relay.db.types import utcnow
from mindbox_relay.models import QueueItem, QueueStatus
from mindbox_relay.services.client_registry import ClientRegistry
from mindbox_relay.services.errors import ErrorKind, MindboxError
from mindbox_relay.services.queue_store import QueueStore

# Configure logger for this module
logger = logging.getLogger(__name__)

# Returned by every tick so the scheduler knows what to invoke next time.
AGENT_ENTRYPOINT = "mindbox_relay.services.integration:run_agent"


@dataclass(frozen=True)
class OperationCall:
    """Exact parameters of one logical operation call."""

    mode: str
    operation: str
    payload: Any
    device_id: str | None
    authorization: bool
    idempotency_token: str


def generate_idempotency_token() -> str:
    """Return a random UUID4 string used as the Mindbox ``transactionId``."""
    return str(uuid.uuid4())


def normalize_payload(payload: Any) -> str:
    """Return the raw JSON text stored for a payload, or '' if it cannot be encoded."""
    if isinstance(payload, str):
        return payload
    try:
        return json.dumps(payload, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""


def format_error(exc: MindboxError) -> str:
    """Render an error with its diagnostics for operator logs."""
    fields = json.dumps(exc.detail.as_log_fields(), ensure_ascii=False)
    return f"{exc} {fields}".strip()


class QueueService:
    """Orchestrates immediate delivery and periodic retries.

    Args:
        settings: Connection and queue configuration.
        store: Durable queue table.
        registry: Shared transport cache.
        clock: Source of the current time; injectable for tests.
    """

    def __init__(
        self,
        settings: Settings,
        store: QueueStore,
        registry: ClientRegistry,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings
        self.store = store
        self.registry = registry
        self._clock = clock

    # ------------------------------------------------------------------
    # Immediate path
    # ------------------------------------------------------------------

    def send_or_queue(
        self,
        mode: str,
        operation: str,
        payload: Any,
        device_id: str | None = None,
        authorization: bool = False,
        idempotency_token: str | None = None,
        *,
        settings: Settings | None = None,
    ) -> Any:
        """Deliver a call now, or queue it when the failure is transient.

        Returns:
            The decoded response, or None for an empty body, an already
            processed transaction, a queued retry, or a recorded failure.

        Raises:
            MindboxError: For non-retryable classified failures (validation,
                protocol, malformed response, configuration, encoding and
                HTTP errors outside 500/502/503/504).
        """
        config = settings or self.settings
        call = OperationCall(
            mode=mode,
            operation=operation,
            payload=payload,
            device_id=device_id,
            authorization=authorization,
            idempotency_token=idempotency_token or generate_idempotency_token(),
        )

        transport = self.registry.get(
            config.api_url,
            config.endpoint_id,
            config.secret_key_for(config.endpoint_id),
            config.timeout_seconds,
        )
        if transport is None:
            self._log_operator(config, "client initialization failed", call)
            self._store_failed(config, call, message="client initialization failed")
            return None

        try:
            return transport.execute(
                call.mode,
                call.operation,
                call.payload,
                call.device_id,
                call.authorization,
                call.idempotency_token,
            )
        except MindboxError as exc:
            if exc.kind is ErrorKind.TRANSACTION_ALREADY_PROCESSED:
                logger.info(
                    "Operation %s already processed (transactionId=%s)",
                    call.operation,
                    call.idempotency_token,
                )
                return None
            if exc.retryable:
                logger.warning(
                    "Operation %s failed transiently, queued for retry: %s",
                    call.operation,
                    exc,
                )
                self._enqueue_retry(config, call, exc)
                return None

            self._log_operator(config, format_error(exc), call)
            if exc.kind is not ErrorKind.VALIDATION:
                self._store_failed(config, call, error=exc)
            raise
        except Exception as exc:
            logger.error("Unexpected failure sending %s: %s", call.operation, exc, exc_info=True)
            self._log_operator(config, str(exc), call)
            self._store_failed(config, call, message=str(exc))
            return None

    def _enqueue_retry(self, config: Settings, call: OperationCall, error: MindboxError) -> None:
        now = self._clock()
        fields = self._row_fields(config, call, now, error=error)
        fields.update(
            status=QueueStatus.RETRY,
            next_run_at=now + timedelta(seconds=config.queue.retry_interval_seconds),
        )
        self._safe_add(config, fields)

    def _store_failed(
        self,
        config: Settings,
        call: OperationCall,
        *,
        error: MindboxError | None = None,
        message: str | None = None,
    ) -> None:
        now = self._clock()
        fields = self._row_fields(config, call, now, error=error, message=message)
        fields.update(status=QueueStatus.FAILED, next_run_at=None)
        self._safe_add(config, fields)

    @staticmethod
    def _row_fields(
        config: Settings,
        call: OperationCall,
        now: datetime,
        *,
        error: MindboxError | None = None,
        message: str | None = None,
    ) -> dict[str, Any]:
        detail = error.detail if error is not None else None
        return {
            "tries": 1,
            "mode": call.mode,
            "operation": call.operation,
            "payload": normalize_payload(call.payload),
            "device_id": call.device_id,
            "authorization": call.authorization,
            "api_url": config.api_url,
            "endpoint_id": config.endpoint_id,
            "timeout": config.timeout_seconds,
            "idempotency_token": call.idempotency_token,
            "http_status": detail.http_status if detail else 0,
            "response_status": detail.response_status if detail else None,
            "error_id": detail.error_id if detail else None,
            "error_message": detail.error_message if detail else message,
            "created_at": now,
            "updated_at": now,
            "last_error_at": now,
        }

    # ------------------------------------------------------------------
    # Periodic path
    # ------------------------------------------------------------------

    def run_batch(self) -> str:
        """Process one batch of due rows; never raises.

        Returns:
            The entry point the scheduler should invoke on the next tick.
        """
        config = self.settings
        queue = config.queue
        now = self._clock()

        try:
            rows = self.store.get_due(queue.batch_size, now)
        except Exception as exc:
            logger.error("Failed to fetch due queue rows: %s", exc, exc_info=True)
            self._log_channel(config).error("%s | operation: queue-agent", exc)
            return AGENT_ENTRYPOINT

        outcomes: Counter[str] = Counter()
        for row in rows:
            try:
                if not self._claim(config, row.id, now):
                    outcomes["skipped"] += 1
                    continue
                outcomes[self._process_row(config, row)] += 1
            except Exception as exc:
                logger.error("Queue row %s could not be processed: %s", row.id, exc, exc_info=True)
                outcomes["errored"] += 1

        if rows:
            logger.info(
                "Queue tick processed %d row(s): %s",
                len(rows),
                ", ".join(f"{name}={count}" for name, count in sorted(outcomes.items())),
            )
        return AGENT_ENTRYPOINT

    def _claim(self, config: Settings, item_id: int, now: datetime) -> bool:
        try:
            return self.store.claim(item_id, now, config.queue.lock_seconds)
        except SQLAlchemyError as exc:
            logger.warning("Could not lock queue row %s: %s", item_id, exc)
            return False

    def _process_row(self, config: Settings, row: QueueItem) -> str:
        call = OperationCall(
            mode=row.mode,
            operation=row.operation,
            payload=row.payload,
            device_id=row.device_id or None,
            authorization=bool(row.authorization),
            idempotency_token=row.idempotency_token,
        )
        try:
            transport = self.registry.get(
                row.api_url,
                row.endpoint_id,
                config.secret_key_for(row.endpoint_id),
                row.timeout,
            )
            if transport is None:
                raise RuntimeError("client initialization failed")

            transport.execute(
                call.mode,
                call.operation,
                call.payload,
                call.device_id,
                call.authorization,
                call.idempotency_token,
            )
        except MindboxError as exc:
            if exc.kind is ErrorKind.TRANSACTION_ALREADY_PROCESSED:
                self._mark_success(config, row.id)
                return "succeeded"
            if exc.retryable:
                self._schedule_retry(config, row.id, exc)
                return "retried"
            self._mark_failed(config, row.id, error=exc)
            self._log_operator(config, format_error(exc), call)
            return "failed"
        except Exception as exc:
            logger.error("Unexpected failure retrying queue row %s: %s", row.id, exc, exc_info=True)
            self._mark_failed(config, row.id, message=str(exc))
            self._log_operator(config, str(exc), call)
            return "failed"

        self._mark_success(config, row.id)
        return "succeeded"

    def _mark_success(self, config: Settings, item_id: int) -> None:
        self._safe_update(
            config,
            item_id,
            {
                "status": QueueStatus.SUCCESS,
                "locked_until": None,
                "updated_at": self._clock(),
            },
        )

    def _schedule_retry(self, config: Settings, item_id: int, error: MindboxError) -> None:
        now = self._clock()
        values = self._diagnostics(error.detail.http_status, error, None, now)
        values.update(
            status=QueueStatus.RETRY,
            tries=QueueItem.tries + 1,
            next_run_at=now + timedelta(seconds=config.queue.retry_interval_seconds),
        )
        self._safe_update(config, item_id, values)

    def _mark_failed(
        self,
        config: Settings,
        item_id: int,
        *,
        error: MindboxError | None = None,
        message: str | None = None,
    ) -> None:
        now = self._clock()
        http_status = error.detail.http_status if error is not None else 0
        values = self._diagnostics(http_status, error, message, now)
        values.update(status=QueueStatus.FAILED, tries=QueueItem.tries + 1)
        self._safe_update(config, item_id, values)

    @staticmethod
    def _diagnostics(
        http_status: int,
        error: MindboxError | None,
        message: str | None,
        now: datetime,
    ) -> dict[str, Any]:
        detail = error.detail if error is not None else None
        return {
            "http_status": http_status,
            "response_status": detail.response_status if detail else None,
            "error_id": detail.error_id if detail else None,
            "error_message": detail.error_message if detail else message,
            "locked_until": None,
            "updated_at": now,
            "last_error_at": now,
        }

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def requeue_failed(self, item_id: int) -> bool:
        """Move a ``Failed`` row back to ``Retry`` so the next tick re-sends it.

        ``tries`` and the idempotency token are kept. Returns False when the
        row does not exist or is not failed.
        """
        now = self._clock()
        requeued = self.store.update_by_id(
            item_id,
            {
                "status": QueueStatus.RETRY,
                "next_run_at": now,
                "locked_until": None,
                "updated_at": now,
            },
            only_if_status=QueueStatus.FAILED,
        )
        if requeued:
            logger.info("Queue row %s requeued by operator", item_id)
        return requeued

    # ------------------------------------------------------------------
    # Storage and logging helpers
    # ------------------------------------------------------------------

    def _safe_add(self, config: Settings, fields: Mapping[str, Any]) -> bool:
        try:
            self.store.add(fields)
            return True
        except SQLAlchemyError as exc:
            self._log_channel(config).error(
                "queue add failed: %s | operation: queue | transactionId: %s",
                exc,
                fields.get("idempotency_token"),
            )
            return False

    def _safe_update(self, config: Settings, item_id: int, values: Mapping[str, Any]) -> bool:
        try:
            return self.store.update_by_id(item_id, values)
        except SQLAlchemyError as exc:
            self._log_channel(config).error(
                "queue update failed: %s | operation: queue | row: %s", exc, item_id
            )
            return False

    @staticmethod
    def _log_channel(config: Settings) -> logging.Logger:
        return logging.getLogger(config.queue.log_channel)

    def _log_operator(self, config: Settings, message: str, call: OperationCall) -> None:
        description = f"{message} | operation: {call.operation or 'unknown'}"
        if call.idempotency_token:
            description += f" | transactionId: {call.idempotency_token}"
        description += f" | data: {normalize_payload(call.payload)}"
        self._log_channel(config).error(description)
