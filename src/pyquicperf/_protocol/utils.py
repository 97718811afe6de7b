"""QUIC stream ID helpers for the transfer engine."""

from __future__ import annotations

from typing import Any

from pyquicperf.constants import MAX_STREAM_ID
from pyquicperf.types import StreamId

__all__: list[str] = []


def can_send_data_on_stream(*, stream_id: StreamId, is_client: bool) -> bool:
    """Check if the local endpoint can send data on a given stream."""
    if is_bidirectional_stream(stream_id=stream_id):
        return True
    return is_locally_initiated_stream(stream_id=stream_id, is_client=is_client)


def is_bidirectional_stream(*, stream_id: StreamId) -> bool:
    """Check if a stream is bidirectional."""
    return (stream_id & 0x2) == 0


def is_locally_initiated_stream(*, stream_id: StreamId, is_client: bool) -> bool:
    """Check if a stream was opened by the local endpoint."""
    return _is_client_initiated_stream(stream_id=stream_id) == is_client


def validate_stream_id(*, stream_id: Any) -> None:
    """Validate a QUIC stream ID."""
    if not isinstance(stream_id, int) or isinstance(stream_id, bool):
        raise TypeError("Stream ID must be an integer")
    if not (0 <= stream_id <= MAX_STREAM_ID):
        raise ValueError(f"Stream ID {stream_id} out of valid range")


def _is_client_initiated_stream(*, stream_id: StreamId) -> bool:
    """Check if a stream was initiated by the client (stream IDs are even)."""
    return (stream_id & 0x1) == 0
