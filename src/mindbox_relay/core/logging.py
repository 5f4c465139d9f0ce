"""Logging setup shared by the app and the maintenance scripts."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a stream handler on the root logger once."""
    root = logging.getLogger()
    if not any(getattr(handler, "_mindbox_relay", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._mindbox_relay = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    root.setLevel(level.upper())
