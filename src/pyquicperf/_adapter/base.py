"""Shared aioquic protocol adapter for both benchmark roles."""

from __future__ import annotations

import asyncio

from aioquic.asyncio.protocol import QuicConnectionProtocol, QuicStreamHandler
from aioquic.quic.connection import QuicConnection
from aioquic.quic.events import (
    ConnectionTerminated,
    HandshakeCompleted,
    QuicEvent,
    StopSendingReceived,
    StreamDataReceived,
    StreamReset,
)

from pyquicperf._protocol.events import (
    ProtocolEvent,
    TransportConnectionEnded,
    TransportConnectionErrored,
    TransportHandshakeCompleted,
    TransportQuicTimerFired,
    TransportStreamDataReceived,
    TransportStreamOpened,
    TransportStreamReset,
    TransportStreamWritable,
)
from pyquicperf._protocol.utils import is_locally_initiated_stream
from pyquicperf.constants import DEFAULT_MAX_EVENT_QUEUE_SIZE, DEFAULT_MAX_STREAM_WRITE_BUFFER, ErrorCodes
from pyquicperf.exceptions import TransportError
from pyquicperf.types import StreamId
from pyquicperf.utils import get_logger

__all__: list[str] = []

logger = get_logger(name=__name__)


class PerfCommonProtocol(QuicConnectionProtocol):
    """Adapt aioquic events and actions for a session processor.

    Implements the stream transport consumed by the transfer engine. Each stream
    holds at most `max_stream_write_buffer` unacknowledged bytes; a write beyond
    that accepts a prefix and hands back the remainder, and a writable event is
    queued once acknowledgements free the buffer again.
    """

    def __init__(
        self,
        quic: QuicConnection,
        stream_handler: QuicStreamHandler | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        max_event_queue_size: int = DEFAULT_MAX_EVENT_QUEUE_SIZE,
        max_stream_write_buffer: int = DEFAULT_MAX_STREAM_WRITE_BUFFER,
    ) -> None:
        """Initialize the protocol adapter."""
        super().__init__(quic, stream_handler)
        if loop is not None:
            self._loop = loop
        self._engine_queue: asyncio.Queue[ProtocolEvent] | None = None
        self._pending_events: list[ProtocolEvent] = []
        self._max_event_queue_size = max_event_queue_size
        self._max_stream_write_buffer = max_stream_write_buffer
        self._timer_handle: asyncio.TimerHandle | None = None
        self._timer_at: float | None = None
        self._handshake_done = False
        self._terminated = False
        self._known_streams: set[StreamId] = set()
        self._writable_waiters: set[StreamId] = set()

    @property
    def is_client(self) -> bool:
        """Check if this adapter drives the client side of the connection."""
        return bool(self._quic.configuration.is_client)

    @property
    def is_closing(self) -> bool:
        """Check if the QUIC connection is closing or closed."""
        return self._quic._close_event is not None

    def close_connection(self, *, error_code: int, reason_phrase: str | None = None) -> None:
        """Close the QUIC connection."""
        if self._quic._close_event is not None:
            return

        self._quic.close(error_code=error_code, reason_phrase=reason_phrase or "")
        self.transmit()

    def connection_lost(self, exc: Exception | None) -> None:
        """Handle loss of the underlying datagram transport."""
        self._cancel_timer()

        if not self._terminated and self._quic._close_event is None:
            if exc is not None:
                code = getattr(exc, "error_code", ErrorCodes.INTERNAL_ERROR)
                self._emit_termination(error_code=code, reason_phrase=str(exc))
            else:
                self._emit_termination(error_code=ErrorCodes.NO_ERROR, reason_phrase="Connection closed")

        super().connection_lost(exc)

    def get_buffered_bytes(self, *, stream_id: StreamId) -> int:
        """Get the number of sent bytes on a stream not yet acknowledged by the peer."""
        stream = self._quic._streams.get(stream_id)
        if stream is None:
            return 0
        sender = stream.sender
        return sender._buffer_stop - sender._buffer_start

    def get_next_available_stream_id(self, *, is_unidirectional: bool) -> int:
        """Get the next available stream ID from the QUIC connection."""
        return self._quic.get_next_available_stream_id(is_unidirectional=is_unidirectional)

    def handle_timer_now(self) -> None:
        """Handle the QUIC timer expiry."""
        self._quic.handle_timer(now=self._loop.time())
        self._process_events()
        self.transmit()

    def notify_pending_write(self, *, stream_id: StreamId) -> None:
        """Queue one writable event for a stream once its send buffer has room."""
        self._writable_waiters.add(stream_id)
        self._check_writable_streams()

    def open_stream(self) -> StreamId:
        """Reserve a new bidirectional stream for the local endpoint."""
        if self._quic._close_event is not None or self._terminated:
            raise TransportError("Connection is closing", error_code=ErrorCodes.APP_SERVICE_UNAVAILABLE)
        if not self._handshake_done:
            raise TransportError("Handshake has not completed", error_code=ErrorCodes.APP_SERVICE_UNAVAILABLE)

        stream_id = self.get_next_available_stream_id(is_unidirectional=False)
        self._known_streams.add(stream_id)
        return stream_id

    def quic_event_received(self, event: QuicEvent) -> None:
        """Translate aioquic events into internal ProtocolEvents."""
        match event:
            case HandshakeCompleted(alpn_protocol=alpn_protocol):
                logger.debug("QUIC HandshakeCompleted event received.")
                self._handshake_done = True
                self._push_event_to_engine(event=TransportHandshakeCompleted(alpn_protocol=alpn_protocol))
            case ConnectionTerminated(error_code=error_code, reason_phrase=reason_phrase):
                logger.debug(
                    "QUIC ConnectionTerminated event received: code=%#x reason='%s'", error_code, reason_phrase
                )
                self._emit_termination(error_code=error_code, reason_phrase=reason_phrase)
            case StreamDataReceived(data=data, end_stream=end_stream, stream_id=stream_id):
                if stream_id not in self._known_streams:
                    self._known_streams.add(stream_id)
                    if not is_locally_initiated_stream(stream_id=stream_id, is_client=self.is_client):
                        self._push_event_to_engine(event=TransportStreamOpened(stream_id=stream_id))
                self._push_event_to_engine(
                    event=TransportStreamDataReceived(data=data, end_stream=end_stream, stream_id=stream_id)
                )
            case StreamReset(error_code=error_code, stream_id=stream_id):
                self._writable_waiters.discard(stream_id)
                self._push_event_to_engine(event=TransportStreamReset(error_code=error_code, stream_id=stream_id))
            case StopSendingReceived(error_code=error_code, stream_id=stream_id):
                self._writable_waiters.discard(stream_id)
                self._push_event_to_engine(event=TransportStreamReset(error_code=error_code, stream_id=stream_id))
            case _:
                pass

    def schedule_timer_now(self) -> None:
        """Schedule the next QUIC timer callback if its deadline changed."""
        timer_at = self._quic.get_timer()
        if self._timer_handle is not None and timer_at == self._timer_at:
            return

        self._cancel_timer()
        if timer_at is not None:
            self._timer_handle = self._loop.call_at(timer_at, self._handle_timer)
            self._timer_at = timer_at

    def set_engine_queue(self, *, engine_queue: asyncio.Queue[ProtocolEvent]) -> None:
        """Provide the queue for sending events to the engine."""
        self._engine_queue = engine_queue

        if self._pending_events:
            logger.debug("Flushing %d buffered early events to engine.", len(self._pending_events))
            for event in self._pending_events:
                self._engine_queue.put_nowait(event)
            self._pending_events.clear()

        self.schedule_timer_now()

    def transmit(self) -> None:
        """Transmit pending QUIC packets, re-arm the timer, and wake writers with free buffer space."""
        transport = self._transport
        if transport is not None and not transport.is_closing():
            for data, addr in self._quic.datagrams_to_send(now=self._loop.time()):
                try:
                    transport.sendto(data, addr)
                except OSError as e:
                    logger.debug("Failed to send UDP packet: %s", e)
                except Exception as e:
                    logger.error("Unexpected error during transmit: %s", e, exc_info=True)

        self.schedule_timer_now()
        self._check_writable_streams()

    def write(self, *, stream_id: StreamId, data: bytes, end_stream: bool = False) -> bytes:
        """Offer data to a stream and return the suffix the send buffer could not take."""
        if self._quic._close_event is not None or self._terminated:
            raise TransportError("Connection is closing", stream_id=stream_id)

        if data:
            capacity = self._max_stream_write_buffer - self.get_buffered_bytes(stream_id=stream_id)
            if capacity <= 0:
                return data
            accepted, suffix = data[:capacity], data[capacity:]
        else:
            if not end_stream:
                return b""
            accepted, suffix = b"", b""

        try:
            self._quic.send_stream_data(stream_id=stream_id, data=accepted, end_stream=end_stream and not suffix)
        except (AssertionError, ValueError) as e:
            raise TransportError(
                f"Stream {stream_id} rejected write: {e}", stream_id=stream_id, error_code=ErrorCodes.STREAM_STATE_ERROR
            ) from e

        self._known_streams.add(stream_id)
        self.transmit()
        return suffix

    def _cancel_timer(self) -> None:
        """Cancel the scheduled QUIC timer callback."""
        if self._timer_handle is not None:
            self._timer_handle.cancel()
            self._timer_handle = None
        self._timer_at = None

    def _check_writable_streams(self) -> None:
        """Queue writable events for waiting streams whose send buffer has room."""
        if not self._writable_waiters or self._quic._close_event is not None:
            return

        for stream_id in list(self._writable_waiters):
            capacity = self._max_stream_write_buffer - self.get_buffered_bytes(stream_id=stream_id)
            if capacity > 0:
                self._writable_waiters.discard(stream_id)
                self._push_event_to_engine(event=TransportStreamWritable(max_bytes=capacity, stream_id=stream_id))

    def _emit_termination(self, *, error_code: int, reason_phrase: str) -> None:
        """Queue the terminal connection event at most once."""
        if self._terminated:
            return

        self._terminated = True
        self._writable_waiters.clear()
        event: ProtocolEvent
        if error_code == ErrorCodes.NO_ERROR:
            event = TransportConnectionEnded(reason_phrase=reason_phrase)
        else:
            event = TransportConnectionErrored(error_code=error_code, reason_phrase=reason_phrase)
        self._push_event_to_engine(event=event)

    def _handle_timer(self) -> None:
        """Handle the QUIC timer expiry by injecting an event."""
        self._timer_handle = None
        self._timer_at = None
        if self._engine_queue is not None:
            self._push_event_to_engine(event=TransportQuicTimerFired())
        else:
            self.handle_timer_now()

    def _push_event_to_engine(self, *, event: ProtocolEvent) -> None:
        """Deliver an event to the engine queue, buffering it until the queue exists."""
        if self._engine_queue is None:
            if len(self._pending_events) >= self._max_event_queue_size:
                logger.error("Early event buffer full, closing connection.")
                self.close_connection(error_code=ErrorCodes.INTERNAL_ERROR, reason_phrase="Event buffer overflow")
                return
            self._pending_events.append(event)
            return

        try:
            self._engine_queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.error("Engine queue full, dropping %s and closing connection.", type(event).__name__)
            self.close_connection(error_code=ErrorCodes.INTERNAL_ERROR, reason_phrase="Engine queue overflow")

