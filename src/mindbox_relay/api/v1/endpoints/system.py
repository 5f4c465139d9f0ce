"""System and configuration endpoints for the relay API."""

from __future__ import annotations

from fastapi import APIRouter

from mindbox_relay.core.settings import settings

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config() -> dict[str, object]:
    """Return a sanitized snapshot of runtime configuration.

    Excludes secret keys and connection strings.

    Returns:
        Dictionary with the API endpoint, queue tuning and enabled operations
    """
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "mindbox": {
            "api_url": settings.api_url,
            "endpoint_id": settings.endpoint_id,
            "timeout_seconds": settings.timeout_seconds,
            "endpoints_with_keys": sorted(settings.secret_keys),
        },
        "queue": settings.queue.model_dump(),
        "operations": {
            name: entry.operation
            for name, entry in settings.operations.items()
            if entry.enabled
        },
        "worker_enabled": settings.worker_enabled,
    }
