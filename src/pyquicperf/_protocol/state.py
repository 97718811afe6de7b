"""Internal state dataclasses for the transfer engine."""

from __future__ import annotations

from dataclasses import dataclass, field

from pyquicperf.types import ReceiveMode, StreamId, Timestamp

__all__: list[str] = []


@dataclass(kw_only=True)
class WriteJob:
    """Represent the progress of one logical send on a stream."""

    stream_id: StreamId
    total_bytes: int
    chunk_size: int
    payload: bytes | None = None
    end_stream: bool = True

    sent_bytes: int = 0
    accepted_bytes: int = 0
    pending: bytes = b""
    offers: int = 0

    awaiting_writable: bool = False
    finished: bool = False
    failed: bool = False

    @property
    def remaining_bytes(self) -> int:
        """Get the number of bytes not yet handed to the transport."""
        return self.total_bytes - self.sent_bytes

    def next_chunk(self) -> bytes:
        """Build the next chunk of at most chunk_size bytes."""
        size = min(self.chunk_size, self.remaining_bytes)
        if self.payload is None:
            return bytes(size)
        return self.payload[self.sent_bytes : self.sent_bytes + size]


@dataclass(kw_only=True)
class ReceiveState:
    """Represent the inbound progress of one stream."""

    stream_id: StreamId
    mode: ReceiveMode
    start_time: Timestamp
    target_bytes: int | None = None

    bytes_received: int = 0
    buffer: bytearray = field(default_factory=bytearray)
    buffer_truncated: bool = False
    anomalous_bytes: int = 0

    end_of_input: bool = False
    complete: bool = False
    completed_at: Timestamp | None = None


@dataclass(kw_only=True)
class SessionStateData:
    """Represent the per-connection transfer state owned by a session processor."""

    is_client: bool
    write_jobs: dict[StreamId, WriteJob] = field(default_factory=dict)
    receive_states: dict[StreamId, ReceiveState] = field(default_factory=dict)
    dropped_streams: set[StreamId] = field(default_factory=set)

    requests_received: int = 0
    requests_rejected: int = 0
    transfers_completed: int = 0
    transfers_aborted: int = 0
    bytes_sent: int = 0

    ended: bool = False
    failed: bool = False
    closed_at: Timestamp | None = None

    @property
    def is_terminated(self) -> bool:
        """Check if the connection has ended or failed."""
        return self.ended or self.failed
