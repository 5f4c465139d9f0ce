# src/mindbox_relay/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .queue import router as queue_router
from .system import router as system_router

__all__ = ["queue_router", "system_router"]
