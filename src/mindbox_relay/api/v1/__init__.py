# src/mindbox_relay/api/v1/__init__.py
"""Version 1 API endpoints."""

from .endpoints import queue_router, system_router

__all__ = ["queue_router", "system_router"]
