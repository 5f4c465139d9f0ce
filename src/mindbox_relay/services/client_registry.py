"""Process-wide cache of Mindbox transports."""

from __future__ import annotations

import logging
from collections.abc import Callable
from threading import Lock

import httpx

from mindbox_relay.services.transport import MindboxTransport

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception], None]
CacheKey = tuple[str, str, str | None, float]


class ClientRegistry:
    """Memoizes one :class:`MindboxTransport` per connection tuple.

    Construct one registry at startup, share it by reference and call
    :meth:`close` on shutdown. A tuple that fails validation is reported to
    the error callback and yields ``None``; it is not cached, so a corrected
    configuration is picked up on the next call.
    """

    def __init__(
        self,
        *,
        on_error: ErrorCallback | None = None,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._on_error = on_error
        self._http_transport = http_transport
        self._transports: dict[CacheKey, MindboxTransport] = {}
        self._lock = Lock()

    def get(
        self,
        api_url: str,
        endpoint_id: str,
        secret_key: str | None = None,
        timeout: float = 5.0,
        on_error: ErrorCallback | None = None,
    ) -> MindboxTransport | None:
        """Return the cached transport for the tuple, building it on first use."""
        key: CacheKey = (api_url, endpoint_id, secret_key, float(timeout))
        transport = self._transports.get(key)
        if transport is not None:
            return transport

        with self._lock:
            transport = self._transports.get(key)
            if transport is not None:
                return transport
            try:
                transport = MindboxTransport.create(
                    api_url,
                    endpoint_id,
                    secret_key,
                    timeout,
                    http_transport=self._http_transport,
                )
            except Exception as exc:
                logger.warning("Mindbox transport initialization failed: %s", exc)
                callback = on_error or self._on_error
                if callback is not None:
                    callback(exc)
                return None
            self._transports[key] = transport
            return transport

    def __len__(self) -> int:
        return len(self._transports)

    def close(self) -> None:
        """Close every cached transport and forget them."""
        with self._lock:
            transports = list(self._transports.values())
            self._transports.clear()
        for transport in transports:
            transport.close()
