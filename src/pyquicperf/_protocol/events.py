"""Internal events and effects for the transfer engine."""

from __future__ import annotations

from dataclasses import dataclass

from pyquicperf.exceptions import StreamError, WriteFailedError
from pyquicperf.types import ErrorCode, StreamId, Timestamp

__all__: list[str] = []


class ProtocolEvent:
    """Base class for all events processed by a session processor."""


@dataclass(kw_only=True)
class TransportConnectionEnded(ProtocolEvent):
    """Event indicating the connection was closed without an error."""

    reason_phrase: str = ""


@dataclass(kw_only=True)
class TransportConnectionErrored(ProtocolEvent):
    """Event indicating the connection was terminated by an error."""

    error_code: ErrorCode
    reason_phrase: str


@dataclass(kw_only=True)
class TransportHandshakeCompleted(ProtocolEvent):
    """Event signaling the QUIC handshake has completed."""

    alpn_protocol: str | None = None


@dataclass(kw_only=True)
class TransportQuicTimerFired(ProtocolEvent):
    """Event signaling the QUIC loss-recovery timer has fired."""


@dataclass(kw_only=True)
class TransportStreamDataReceived(ProtocolEvent):
    """Event for a fragment of stream data received from the peer."""

    data: bytes
    end_stream: bool
    stream_id: StreamId


@dataclass(kw_only=True)
class TransportStreamOpened(ProtocolEvent):
    """Event for a stream first seen on the connection."""

    stream_id: StreamId


@dataclass(kw_only=True)
class TransportStreamReset(ProtocolEvent):
    """Event for a stream reset or stop-sending received from the peer."""

    error_code: ErrorCode
    stream_id: StreamId


@dataclass(kw_only=True)
class TransportStreamWritable(ProtocolEvent):
    """Event signaling a stream can accept more data."""

    max_bytes: int
    stream_id: StreamId


class Effect:
    """Base class for all outcomes reported by the transfer components."""


@dataclass(kw_only=True)
class ReceiveCompleted(Effect):
    """Effect reporting a reply transfer reached its byte target."""

    stream_id: StreamId
    bytes_received: int
    start_time: Timestamp
    completed_at: Timestamp


@dataclass(kw_only=True)
class ReceiveTruncated(Effect):
    """Effect reporting a reply stream ended before its byte target."""

    stream_id: StreamId
    bytes_received: int
    target_bytes: int


@dataclass(kw_only=True)
class RequestReceived(Effect):
    """Effect reporting a fully received and decoded byte-count request."""

    stream_id: StreamId
    byte_count: int


@dataclass(kw_only=True)
class RequestRejected(Effect):
    """Effect reporting a request that could not be decoded."""

    stream_id: StreamId
    error: StreamError


@dataclass(kw_only=True)
class WriteAborted(Effect):
    """Effect reporting a write job that was aborted."""

    stream_id: StreamId
    error: WriteFailedError


@dataclass(kw_only=True)
class WriteCompleted(Effect):
    """Effect reporting a write job whose bytes were all accepted."""

    stream_id: StreamId
    total_bytes: int
