"""Error taxonomy for Mindbox operation calls.

Every failure of a call is reported as a single :class:`MindboxError` whose
``kind`` tells the caller how to react. The orchestrator only looks at
``kind`` and ``detail``; it never needs to branch on exception classes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

RETRYABLE_HTTP_STATUSES = frozenset({500, 502, 503, 504})


class ErrorKind(str, Enum):
    """Classification of a failed operation call."""

    CONFIG = "ConfigError"
    ENCODING = "EncodingError"
    TRANSPORT = "TransportError"
    INVALID_RESPONSE = "InvalidResponseError"
    TRANSACTION_ALREADY_PROCESSED = "TransactionAlreadyProcessed"
    VALIDATION = "ValidationError"
    PROTOCOL = "ProtocolError"
    INTERNAL_SERVER = "InternalServerError"
    HTTP = "HttpError"


# Values of the ``status`` field that map straight to an error kind.
RESPONSE_STATUS_KINDS: dict[str, ErrorKind] = {
    "TransactionAlreadyProcessed": ErrorKind.TRANSACTION_ALREADY_PROCESSED,
    "ValidationError": ErrorKind.VALIDATION,
    "ProtocolError": ErrorKind.PROTOCOL,
    "InternalServerError": ErrorKind.INTERNAL_SERVER,
}


@dataclass(frozen=True)
class ValidationEntry:
    """One field-level message from a ``ValidationError`` response."""

    location: str | None
    message: str | None

    @classmethod
    def from_payload(cls, item: Any) -> ValidationEntry:
        if isinstance(item, Mapping):
            location = item.get("location")
            message = item.get("message")
            return cls(
                location=str(location) if location is not None else None,
                message=str(message) if message is not None else None,
            )
        return cls(location=None, message=str(item))


@dataclass(frozen=True)
class ErrorDetail:
    """Diagnostics attached to every classified error."""

    http_status: int = 0
    response_status: str | None = None
    error_id: str | None = None
    error_message: str | None = None
    validation_messages: tuple[ValidationEntry, ...] | None = None
    response_body: str | None = None

    @classmethod
    def from_response(
        cls,
        http_status: int,
        decoded: Mapping[str, Any] | None,
        body: str | None,
    ) -> ErrorDetail:
        decoded = decoded or {}
        raw_messages = decoded.get("validationMessages")
        entries: tuple[ValidationEntry, ...] | None = None
        if isinstance(raw_messages, Sequence) and not isinstance(raw_messages, str):
            entries = tuple(ValidationEntry.from_payload(item) for item in raw_messages)
        elif raw_messages is not None:
            entries = ()
        return cls(
            http_status=http_status,
            response_status=_optional_str(decoded.get("status")),
            error_id=_optional_str(decoded.get("errorId")),
            error_message=_optional_str(decoded.get("errorMessage")),
            validation_messages=entries,
            response_body=body,
        )

    def as_log_fields(self) -> dict[str, Any]:
        """Return the fields operators need to diagnose a failure."""
        return {
            "http": self.http_status,
            "status": self.response_status,
            "errorId": self.error_id,
            "message": self.error_message,
        }


class MindboxError(RuntimeError):
    """Raised when an operation call fails.

    Attributes:
        kind: What went wrong; drives retry and propagation decisions.
        detail: HTTP status, response status, error id/message, validation
            entries and the raw body of the response, when there was one.
    """

    def __init__(self, kind: ErrorKind, message: str, detail: ErrorDetail | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.detail = detail or ErrorDetail()

    @property
    def retryable(self) -> bool:
        """Return True when a later attempt of the same call may succeed."""
        if self.kind in (ErrorKind.TRANSPORT, ErrorKind.INTERNAL_SERVER):
            return True
        return self.kind is ErrorKind.HTTP and self.detail.http_status in RETRYABLE_HTTP_STATUSES

    @property
    def http_status(self) -> int:
        return self.detail.http_status

    @property
    def validation_messages(self) -> tuple[ValidationEntry, ...]:
        return self.detail.validation_messages or ()

    def __repr__(self) -> str:
        return f"MindboxError(kind={self.kind.name}, message={str(self)!r})"


def build_error_message(detail: ErrorDetail, fallback: str | None = None) -> str:
    """Compose the human-readable message for a response-level error."""
    message = "Mindbox error"
    if detail.response_status:
        message += f": {detail.response_status}"
    if detail.error_message:
        message += f" - {detail.error_message}"
    elif detail.validation_messages is not None:
        message += " - Validation error"
    elif fallback is not None:
        message += f" - {fallback}"
    if detail.http_status > 0:
        message += f" (HTTP {detail.http_status})"
    if detail.error_id:
        message += f" [errorId {detail.error_id}]"
    return message


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
