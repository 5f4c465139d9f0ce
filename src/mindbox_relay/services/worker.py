"""Background runner for the periodic queue tick.

This module provides the QueueWorker class that invokes one queue tick every
``agent_interval_seconds`` for deployments without an external scheduler
(cron, Celery beat). Ticks run in a worker thread so the event loop stays
responsive while the batch is sent sequentially.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from mindbox_relay.services.integration import MindboxIntegration

# Configure logger for this module
logger = logging.getLogger(__name__)


class QueueWorker:
    """Periodically drains due rows of the retry queue."""

    def __init__(self, integration: MindboxIntegration, interval_seconds: float | None = None) -> None:
        """Initialize the queue worker.

        Args:
            integration: Integration whose queue is processed.
            interval_seconds: Pause between ticks. Defaults to the queue's
                ``agent_interval_seconds``.
        """
        self.integration = integration
        if interval_seconds is None:
            interval_seconds = integration.settings.queue.agent_interval_seconds
        self.interval_seconds = max(0.1, float(interval_seconds))
        self.ticks = 0
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the background loop."""

        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background loop, letting an in-flight tick finish."""

        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def run_once(self) -> str:
        """Run a single tick in a worker thread."""
        token = await asyncio.to_thread(self.integration.run_agent)
        self.ticks += 1
        return token

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error("QueueWorker tick failed: %s", e, exc_info=True)

            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
