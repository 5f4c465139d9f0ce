"""Public facade of the Mindbox relay.

``MindboxIntegration`` wires the settings, the transport registry, the queue
store and the orchestrator together. One instance is created at startup
(:func:`init_integration`), shared by reference, and torn down with
:func:`shutdown_integration`.

Facade policy: internal faults never escape ``send``. Anything that is not a
classified, non-retryable :class:`MindboxError` is logged and turned into a
``None`` result; classified errors are re-raised only when the caller asked
for them (``raise_errors=True``, the default) so that business code can show
validation messages to the user.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from threading import Lock
from typing import Any

import httpx
from sqlalchemy.orm import Session, sessionmaker

from mindbox_relay.core.settings import Settings
from mindbox_relay.core.settings import settings as default_settings
from mindbox_relay.db.types import utcnow
from mindbox_relay.services.client_registry import ClientRegistry
from mindbox_relay.services.errors import MindboxError
from mindbox_relay.services.queue_service import AGENT_ENTRYPOINT, QueueService
from mindbox_relay.services.queue_store import QueueStore

logger = logging.getLogger(__name__)


class MindboxIntegration:
    """Entry point used by payload builders and schedulers."""

    def __init__(self, settings: Settings, service: QueueService, registry: ClientRegistry) -> None:
        self.settings = settings
        self.service = service
        self.registry = registry

    @classmethod
    def create(
        cls,
        settings: Settings | None = None,
        *,
        session_factory: sessionmaker[Session] | None = None,
        http_transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> MindboxIntegration:
        """Build an integration with its own registry and store."""
        settings = settings or default_settings
        if session_factory is None:
            from mindbox_relay.db.session import SessionLocal

            session_factory = SessionLocal

        registry = ClientRegistry(http_transport=http_transport)
        service = QueueService(settings, QueueStore(session_factory), registry, clock=clock)
        return cls(settings, service, registry)

    def send(
        self,
        mode: str,
        operation: str,
        payload: Any,
        device_id: str | None = None,
        authorization: bool = False,
        idempotency_token: str | None = None,
        config_override: Mapping[str, Any] | None = None,
        *,
        raise_errors: bool = True,
    ) -> Any:
        """Deliver or queue an operation call.

        Returns:
            The decoded response, or None when there is nothing to return
            (empty body, queued, already processed, or an internal fault).
        """
        try:
            config = self.settings.with_override(config_override)
            return self.service.send_or_queue(
                mode,
                operation,
                payload,
                device_id,
                authorization,
                idempotency_token,
                settings=config,
            )
        except MindboxError:
            if raise_errors:
                raise
            return None
        except Exception as exc:
            logger.error("Mindbox send of %s failed internally: %s", operation, exc, exc_info=True)
            return None

    def send_sync(self, operation: str, payload: Any, *args: Any, **kwargs: Any) -> Any:
        return self.send("sync", operation, payload, *args, **kwargs)

    def send_async(self, operation: str, payload: Any, *args: Any, **kwargs: Any) -> Any:
        return self.send("async", operation, payload, *args, **kwargs)

    def send_configured(
        self,
        name: str,
        payload: Any,
        device_id: str | None = None,
        idempotency_token: str | None = None,
        *,
        raise_errors: bool = True,
    ) -> Any:
        """Send a call described by the ``operations`` settings entry ``name``."""
        try:
            entry = self.settings.operation(name)
        except MindboxError:
            if raise_errors:
                raise
            logger.info("Skipping disabled operation %s", name)
            return None
        return self.send(
            entry.mode,
            entry.operation,
            payload,
            device_id,
            entry.authorization,
            idempotency_token,
            raise_errors=raise_errors,
        )

    def run_agent(self) -> str:
        """Run one queue tick and return the re-invocation entry point."""
        return self.service.run_batch()

    def close(self) -> None:
        self.registry.close()


_integration: MindboxIntegration | None = None
_integration_lock = Lock()


def init_integration(settings: Settings | None = None, **kwargs: Any) -> MindboxIntegration:
    """Create the process-wide integration, replacing any previous one."""
    global _integration
    with _integration_lock:
        if _integration is not None:
            _integration.close()
        _integration = MindboxIntegration.create(settings, **kwargs)
        return _integration


def get_integration() -> MindboxIntegration:
    """Return the process-wide integration, creating it from settings if needed."""
    global _integration
    with _integration_lock:
        if _integration is None:
            _integration = MindboxIntegration.create()
        return _integration


def shutdown_integration() -> None:
    """Close and forget the process-wide integration."""
    global _integration
    with _integration_lock:
        if _integration is not None:
            _integration.close()
            _integration = None


def run_agent() -> str:
    """Scheduler entry point: run one tick of the process-wide integration."""
    try:
        return get_integration().run_agent()
    except Exception as exc:
        logger.error("Mindbox queue agent failed: %s", exc, exc_info=True)
        return AGENT_ENTRYPOINT
