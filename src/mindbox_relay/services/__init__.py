# src/mindbox_relay/services/__init__.py
"""Delivery services: transport, client registry, queue orchestration."""

from .errors import ErrorDetail, ErrorKind, MindboxError, ValidationEntry

__all__ = [
    "ErrorDetail",
    "ErrorKind",
    "MindboxError",
    "ValidationEntry",
]
