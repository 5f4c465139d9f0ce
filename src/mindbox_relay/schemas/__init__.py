# src/mindbox_relay/schemas/__init__.py
"""Pydantic schemas for the operator API."""

from .queue import QueueItemResponse, QueueStatsResponse, TickResponse

__all__ = ["QueueItemResponse", "QueueStatsResponse", "TickResponse"]
