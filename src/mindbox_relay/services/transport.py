"""HTTP transport for Mindbox ``/v3/operations`` calls.

This module provides the MindboxTransport class that executes one operation
call against the Mindbox API. It includes:

- Payload serialization with JSON well-formedness checks
- Request URL and header construction (endpoint, operation, device, token)
- A single timeout bounding the whole exchange
- Classification of the response into an :class:`ErrorKind`
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from mindbox_relay.services.errors import (
    RESPONSE_STATUS_KINDS,
    ErrorDetail,
    ErrorKind,
    MindboxError,
    build_error_message,
)

# Configure logger for this module
logger = logging.getLogger(__name__)

MODES = ("sync", "async")
DEFAULT_TIMEOUT_SECONDS = 5.0

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not valid JSON")


@dataclass(frozen=True)
class TransportConfig:
    """Immutable, validated connection parameters for one endpoint."""

    api_url: str
    endpoint_id: str
    secret_key: str | None
    timeout_seconds: float


def build_transport_config(
    api_url: str,
    endpoint_id: str,
    secret_key: str | None = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> TransportConfig:
    """Validate and normalize connection parameters.

    Raises:
        MindboxError: With kind ``CONFIG`` for a blank URL or endpoint, or a
            non-positive timeout.
    """
    api_url = (api_url or "").strip()
    endpoint_id = (endpoint_id or "").strip()

    if not api_url:
        raise MindboxError(ErrorKind.CONFIG, "apiUrl is required")
    if not endpoint_id:
        raise MindboxError(ErrorKind.CONFIG, "endpointId is required")
    if timeout is None or timeout <= 0:
        raise MindboxError(ErrorKind.CONFIG, "timeout must be greater than 0")

    if not _SCHEME_RE.match(api_url):
        api_url = f"https://{api_url}"

    return TransportConfig(
        api_url=api_url.rstrip("/"),
        endpoint_id=endpoint_id,
        secret_key=secret_key.strip() if secret_key is not None else None,
        timeout_seconds=float(timeout),
    )


def encode_payload(payload: Any) -> str:
    """Return the JSON request body for ``payload``.

    A string is treated as ready-made JSON and only checked for
    well-formedness; mappings and lists are encoded compactly with unicode
    left unescaped.
    """
    if isinstance(payload, str):
        text = payload.strip()
        if not text:
            raise MindboxError(ErrorKind.ENCODING, "data must be a non-empty JSON string")
        try:
            json.loads(text, parse_constant=_reject_constant)
        except ValueError as exc:
            raise MindboxError(ErrorKind.ENCODING, f"data contains invalid JSON: {exc}") from exc
        return text

    if isinstance(payload, (Mapping, list, tuple)):
        try:
            return json.dumps(
                payload,
                ensure_ascii=False,
                allow_nan=False,
                separators=(",", ":"),
            )
        except (TypeError, ValueError) as exc:
            raise MindboxError(
                ErrorKind.ENCODING, f"failed to encode data to JSON: {exc}"
            ) from exc

    raise MindboxError(ErrorKind.ENCODING, "data must be JSON string, mapping, or list")


class MindboxTransport:
    """Executes operation calls for one (URL, endpoint, key, timeout) tuple.

    Instances are immutable after construction and safe to share between
    threads; the underlying ``httpx.Client`` pools connections.
    """

    def __init__(
        self,
        config: TransportConfig,
        *,
        http_transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config
        self._client = httpx.Client(
            timeout=httpx.Timeout(config.timeout_seconds),
            transport=http_transport,
        )

    @classmethod
    def create(
        cls,
        api_url: str,
        endpoint_id: str,
        secret_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        *,
        http_transport: httpx.BaseTransport | None = None,
    ) -> MindboxTransport:
        """Validate the parameters and build a transport."""
        config = build_transport_config(api_url, endpoint_id, secret_key, timeout)
        return cls(config, http_transport=http_transport)

    def execute_sync(
        self,
        operation: str,
        payload: Any,
        device_id: str | None = None,
        authorization: bool = False,
        idempotency_token: str | None = None,
    ) -> Any:
        return self.execute("sync", operation, payload, device_id, authorization, idempotency_token)

    def execute_async(
        self,
        operation: str,
        payload: Any,
        device_id: str | None = None,
        authorization: bool = False,
        idempotency_token: str | None = None,
    ) -> Any:
        return self.execute("async", operation, payload, device_id, authorization, idempotency_token)

    def execute(
        self,
        mode: str,
        operation: str,
        payload: Any,
        device_id: str | None = None,
        authorization: bool = False,
        idempotency_token: str | None = None,
    ) -> Any:
        """Send one operation call and return the decoded response body.

        Returns:
            The decoded JSON body, or None when the response had no body.

        Raises:
            MindboxError: Classified failure of the call.
        """
        if mode not in MODES:
            raise MindboxError(ErrorKind.CONFIG, f"mode must be one of {MODES}, got {mode!r}")

        operation = (operation or "").strip()
        if not operation:
            raise MindboxError(ErrorKind.CONFIG, "operation is required")

        body = encode_payload(payload)
        headers = self.build_headers(authorization)
        url = self.build_url(mode, operation, device_id, idempotency_token)

        logger.debug("POST %s (transactionId=%s)", url, idempotency_token)
        http_status, response_body = self._send(url, body, headers)
        return self._handle_response(http_status, response_body)

    def build_url(
        self,
        mode: str,
        operation: str,
        device_id: str | None = None,
        idempotency_token: str | None = None,
    ) -> str:
        """Return the request URL with its RFC 3986 encoded query string."""
        query = {
            "endpointId": self.config.endpoint_id,
            "operation": operation,
        }
        if device_id:
            query["deviceUUID"] = device_id
        if idempotency_token:
            query["transactionId"] = idempotency_token

        query_string = urlencode(query, quote_via=quote)
        return f"{self.config.api_url}/v3/operations/{mode}?{query_string}"

    def build_headers(self, authorization: bool) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Accept": "application/json",
        }
        if authorization:
            if not self.config.secret_key:
                raise MindboxError(
                    ErrorKind.CONFIG, "secretKey is required for authorized requests"
                )
            headers["Authorization"] = f"SecretKey {self.config.secret_key}"
        return headers

    def _send(self, url: str, body: str, headers: dict[str, str]) -> tuple[int, str]:
        try:
            response = self._client.post(url, content=body.encode("utf-8"), headers=headers)
        except httpx.TimeoutException as exc:
            raise MindboxError(ErrorKind.TRANSPORT, "request timed out") from exc
        except httpx.HTTPError as exc:
            raise MindboxError(ErrorKind.TRANSPORT, f"request failed: {exc}") from exc

        return response.status_code, response.text

    def _handle_response(self, http_status: int, body: str) -> Any:
        has_body = body.strip() != ""
        decoded: Any = None
        json_error: str | None = None

        if has_body:
            try:
                decoded = json.loads(body, parse_constant=_reject_constant)
            except ValueError as exc:
                json_error = str(exc)

        if 200 <= http_status < 300:
            if json_error is not None:
                raise MindboxError(
                    ErrorKind.INVALID_RESPONSE,
                    f"invalid JSON response: {json_error}",
                    ErrorDetail(http_status=http_status, response_body=body),
                )
            if isinstance(decoded, Mapping) and decoded.get("status") is not None:
                if str(decoded["status"]) in RESPONSE_STATUS_KINDS:
                    raise self._classify(http_status, decoded, body)
            return decoded if has_body else None

        if json_error is not None:
            raise self._classify(
                http_status, None, body, f"invalid JSON error response: {json_error}"
            )
        raise self._classify(
            http_status, decoded if isinstance(decoded, Mapping) else None, body
        )

    @staticmethod
    def _classify(
        http_status: int,
        decoded: Mapping[str, Any] | None,
        body: str,
        fallback: str | None = None,
    ) -> MindboxError:
        detail = ErrorDetail.from_response(http_status, decoded, body)
        kind = RESPONSE_STATUS_KINDS.get(detail.response_status or "", ErrorKind.HTTP)
        return MindboxError(kind, build_error_message(detail, fallback), detail)

    def close(self) -> None:
        """Release pooled HTTP connections."""
        self._client.close()
