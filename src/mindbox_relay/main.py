# src/mindbox_relay/main.py
"""Main entry point for the Mindbox relay service."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from mindbox_relay.api.v1 import queue_router, system_router
from mindbox_relay.core.logging import configure_logging
from mindbox_relay.core.settings import settings
from mindbox_relay.services.integration import init_integration, shutdown_integration
from mindbox_relay.services.worker import QueueWorker


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(settings.log_level)
    integration = init_integration(settings)
    worker: QueueWorker | None = None
    if settings.worker_enabled:
        worker = QueueWorker(integration)
        await worker.start()
    app.state.queue_worker = worker
    try:
        yield
    finally:
        if worker:
            await worker.stop()
        shutdown_integration()


# Initialize FastAPI app
app = FastAPI(
    title="Mindbox Relay API",
    description="Operator API for the Mindbox delivery queue",
    version=settings.app_version,
    lifespan=lifespan,
)

# Include API routers
app.include_router(queue_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("mindbox_relay.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
