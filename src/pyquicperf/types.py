"""Core data types and interface protocols for the library."""

from __future__ import annotations

from enum import StrEnum
from typing import Protocol, TypeAlias, runtime_checkable

__all__: list[str] = [
    "Address",
    "Buffer",
    "ConnectionId",
    "ConnectionState",
    "ErrorCode",
    "ReceiveMode",
    "ReliabilityMode",
    "RunState",
    "StreamId",
    "Timestamp",
    "TransportProtocol",
]


Address: TypeAlias = tuple[str, int]
Buffer: TypeAlias = bytes | bytearray | memoryview
ConnectionId: TypeAlias = str
ErrorCode: TypeAlias = int
StreamId: TypeAlias = int
Timestamp: TypeAlias = float


@runtime_checkable
class TransportProtocol(Protocol):
    """A protocol for the stream transport consumed by the transfer engine."""

    def notify_pending_write(self, *, stream_id: StreamId) -> None:
        """Request a single writable notification for a stream."""
        ...

    def open_stream(self) -> StreamId:
        """Open a new bidirectional stream."""
        ...

    def write(self, *, stream_id: StreamId, data: bytes, end_stream: bool = False) -> bytes:
        """Offer data to a stream and return the unaccepted suffix."""
        ...


class ConnectionState(StrEnum):
    """Enumeration of connection states."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


class ReceiveMode(StrEnum):
    """Enumeration of receive-side completion modes."""

    REQUEST = "request"
    REPLY = "reply"


class ReliabilityMode(StrEnum):
    """Enumeration of stream reliability modes."""

    RELIABLE = "reliable"
    PARTIAL = "partial"


class RunState(StrEnum):
    """Enumeration of client benchmark run states."""

    CONNECTING = "connecting"
    STREAM_OPENING = "stream_opening"
    REQUESTING = "requesting"
    AWAITING_REPLY = "awaiting_reply"
    COMPLETED = "completed"
    FAILED = "failed"
