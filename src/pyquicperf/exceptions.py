"""Exception hierarchy for the benchmark client, server, and transfer engine."""

from __future__ import annotations

import re
from typing import Any, Final

from pyquicperf.constants import ErrorCodes
from pyquicperf.types import Address, StreamId

__all__: list[str] = [
    "AlreadyActiveError",
    "ByteCountOverflowError",
    "ConfigurationError",
    "ConnectionError",
    "MalformedRequestError",
    "PerfError",
    "ProtocolAnomalyError",
    "ServerError",
    "StreamError",
    "TimeoutError",
    "TransportError",
    "WriteFailedError",
]

_FATAL_ERROR_CODES: Final[frozenset[int]] = frozenset(
    {
        ErrorCodes.INTERNAL_ERROR,
        ErrorCodes.FLOW_CONTROL_ERROR,
        ErrorCodes.STREAM_STATE_ERROR,
        ErrorCodes.FINAL_SIZE_ERROR,
        ErrorCodes.PROTOCOL_VIOLATION,
        ErrorCodes.CRYPTO_BUFFER_EXCEEDED,
    }
)
_RETRIABLE_ERROR_CODES: Final[frozenset[int]] = frozenset(
    {
        ErrorCodes.CONNECTION_REFUSED,
        ErrorCodes.APP_CONNECTION_TIMEOUT,
        ErrorCodes.APP_SERVICE_UNAVAILABLE,
    }
)
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class PerfError(Exception):
    """Base exception for all library errors."""

    _default_error_code: int = ErrorCodes.INTERNAL_ERROR

    def __init__(self, message: str, *, error_code: int | None = None, details: dict[str, Any] | None = None) -> None:
        """Initialize the error."""
        super().__init__(message)
        self.message = message
        self.error_code = error_code if error_code is not None else self._default_error_code
        self.details = details or {}

    @property
    def category(self) -> str:
        """Get the error category derived from the class name."""
        name = self.__class__.__name__
        if name.endswith("Error") and name != "Error":
            name = name[: -len("Error")]
        return _CAMEL_BOUNDARY.sub("_", name).lower()

    @property
    def is_fatal(self) -> bool:
        """Check if the error is fatal for the connection."""
        return self.error_code in _FATAL_ERROR_CODES

    @property
    def is_retriable(self) -> bool:
        """Check if the operation that raised the error may be retried."""
        return self.error_code in _RETRIABLE_ERROR_CODES

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a dictionary."""
        data: dict[str, Any] = {
            "type": self.__class__.__name__,
            "category": self.category,
            "message": self.message,
            "error_code": self.error_code,
            "is_fatal": self.is_fatal,
            "is_retriable": self.is_retriable,
            "details": self.details,
        }
        data.update(self._extra_attributes())
        return data

    def _extra_attributes(self) -> dict[str, Any]:
        """Get subclass-specific attributes."""
        return {
            key: value
            for key, value in vars(self).items()
            if key not in ("message", "error_code", "details") and not key.startswith("_")
        }

    def __repr__(self) -> str:
        """Provide a developer-friendly representation."""
        parts = [f"message={self.message!r}", f"error_code={hex(self.error_code)}"]
        if self.details:
            parts.append(f"details={self.details!r}")
        parts.extend(f"{key}={value!r}" for key, value in self._extra_attributes().items() if value is not None)
        return f"{self.__class__.__name__}({', '.join(parts)})"

    def __str__(self) -> str:
        """Format the error for display."""
        return f"[{hex(self.error_code)}] {self.message}"


class ConfigurationError(PerfError):
    """Raised for invalid configuration values."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the configuration error."""
        super().__init__(message, error_code=error_code, details=details)
        self.config_key = config_key


class ConnectionError(PerfError):
    """Raised for connection-level failures."""

    def __init__(
        self,
        message: str,
        *,
        remote_address: Address | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the connection error."""
        super().__init__(message, error_code=error_code, details=details)
        self.remote_address = remote_address


class ServerError(PerfError):
    """Raised for server lifecycle failures."""

    def __init__(
        self,
        message: str,
        *,
        bind_address: Address | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the server error."""
        super().__init__(message, error_code=error_code, details=details)
        self.bind_address = bind_address


class TimeoutError(PerfError):
    """Raised when an operation does not finish in time."""

    _default_error_code = ErrorCodes.APP_CONNECTION_TIMEOUT

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the timeout error."""
        super().__init__(message, error_code=error_code, details=details)
        self.operation = operation


class TransportError(PerfError):
    """Raised by the transport when it cannot carry out an operation."""

    def __init__(
        self,
        message: str,
        *,
        stream_id: StreamId | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the transport error."""
        super().__init__(message, error_code=error_code, details=details)
        self.stream_id = stream_id


class StreamError(PerfError):
    """Base class for errors scoped to a single stream."""

    _default_error_code = ErrorCodes.STREAM_STATE_ERROR

    def __init__(
        self,
        message: str,
        *,
        stream_id: StreamId | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the stream error."""
        super().__init__(message, error_code=error_code, details=details)
        self.stream_id = stream_id

    def __str__(self) -> str:
        """Format the error for display with its stream ID."""
        base = super().__str__()
        if self.stream_id is None:
            return base
        return f"{base} (stream_id={self.stream_id})"


class AlreadyActiveError(StreamError):
    """Raised when a write job is started on a stream that already has one."""

    _default_error_code = ErrorCodes.APP_WRITE_ALREADY_ACTIVE


class MalformedRequestError(StreamError):
    """Raised when a byte-count request is not a valid decimal number."""

    _default_error_code = ErrorCodes.APP_MALFORMED_REQUEST

    def __init__(
        self,
        message: str,
        *,
        payload: bytes | None = None,
        stream_id: StreamId | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the malformed request error."""
        super().__init__(message, stream_id=stream_id, error_code=error_code, details=details)
        self.payload = payload


class ByteCountOverflowError(StreamError):
    """Raised when a byte-count request exceeds the supported range."""

    _default_error_code = ErrorCodes.APP_BYTE_COUNT_OVERFLOW

    def __init__(
        self,
        message: str,
        *,
        limit: int | None = None,
        stream_id: StreamId | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the overflow error."""
        super().__init__(message, stream_id=stream_id, error_code=error_code, details=details)
        self.limit = limit


class ProtocolAnomalyError(StreamError):
    """Describes bytes received on a stream whose transfer already completed."""

    _default_error_code = ErrorCodes.APP_PROTOCOL_ANOMALY

    def __init__(
        self,
        message: str,
        *,
        extra_bytes: int = 0,
        stream_id: StreamId | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the protocol anomaly."""
        super().__init__(message, stream_id=stream_id, error_code=error_code, details=details)
        self.extra_bytes = extra_bytes


class WriteFailedError(StreamError):
    """Raised when the transport rejects a write and the job is aborted."""

    _default_error_code = ErrorCodes.APP_WRITE_FAILED

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        stream_id: StreamId | None = None,
        error_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the write failure."""
        super().__init__(message, stream_id=stream_id, error_code=error_code, details=details)
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        """Convert the error to a dictionary with a printable cause."""
        data = super().to_dict()
        data["cause"] = str(self.cause) if self.cause is not None else None
        return data
