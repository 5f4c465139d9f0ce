# src/mindbox_relay/models/__init__.py
"""SQLAlchemy models for the Mindbox relay."""

from .queue_item import QueueItem, QueueStatus

__all__ = ["QueueItem", "QueueStatus"]
