"""Reliable delivery of operation calls to the Mindbox API."""

__version__ = "0.1.0"
