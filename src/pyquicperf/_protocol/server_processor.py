"""Server-side session driver answering byte-count requests on one connection."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Any

from pyquicperf._protocol.accumulator import ReceiveAccumulator
from pyquicperf._protocol.events import (
    Effect,
    ProtocolEvent,
    ReceiveCompleted,
    ReceiveTruncated,
    RequestReceived,
    RequestRejected,
    TransportConnectionEnded,
    TransportConnectionErrored,
    TransportHandshakeCompleted,
    TransportStreamDataReceived,
    TransportStreamOpened,
    TransportStreamReset,
    TransportStreamWritable,
    WriteAborted,
    WriteCompleted,
)
from pyquicperf._protocol.state import SessionStateData
from pyquicperf._protocol.utils import can_send_data_on_stream, is_locally_initiated_stream
from pyquicperf._protocol.writer import ChunkedWriter
from pyquicperf.constants import MAX_BYTE_COUNT
from pyquicperf.exceptions import ByteCountOverflowError, ConnectionError, TransportError
from pyquicperf.types import ConnectionId, ReliabilityMode, StreamId, TransportProtocol
from pyquicperf.utils import get_logger, get_timestamp

if TYPE_CHECKING:
    from pyquicperf.config import ServerConfig


__all__: list[str] = []

logger = get_logger(name=__name__)


class ServerSessionProcessor:
    """Answer every byte-count request on a connection with an amplified reply."""

    def __init__(self, *, config: ServerConfig, transport: TransportProtocol, connection_id: ConnectionId) -> None:
        """Initialize the server session processor."""
        self._config = config
        self._transport = transport
        self._connection_id = connection_id
        self._state = SessionStateData(is_client=False)
        self._writer = ChunkedWriter(transport=transport, jobs=self._state.write_jobs)
        self._accumulator = ReceiveAccumulator(states=self._state.receive_states)

    @property
    def connection_id(self) -> ConnectionId:
        """Get the ID of the connection this processor serves."""
        return self._connection_id

    @property
    def state(self) -> SessionStateData:
        """Get the per-connection transfer state."""
        return self._state

    def get_stats(self) -> dict[str, Any]:
        """Get transfer counters for this connection."""
        return {
            "connection_id": self._connection_id,
            "requests_received": self._state.requests_received,
            "requests_rejected": self._state.requests_rejected,
            "transfers_completed": self._state.transfers_completed,
            "transfers_aborted": self._state.transfers_aborted,
            "bytes_sent": self._state.bytes_sent,
            "active_transfers": len(self._state.write_jobs),
            "dropped_streams": len(self._state.dropped_streams),
        }

    def handle_event(self, *, event: ProtocolEvent) -> None:
        """Handle a single transport event."""
        if self._state.is_terminated:
            logger.debug("[%s] Ignoring %s after connection closed", self._connection_id, type(event).__name__)
            return

        effects: list[Effect] = []
        match event:
            case TransportHandshakeCompleted():
                logger.info("[%s] Connection established (alpn=%s)", self._connection_id, event.alpn_protocol)
                if self._config.reliability_mode is ReliabilityMode.PARTIAL:
                    logger.warning("[%s] Partial reliability is not supported; replying reliably", self._connection_id)
            case TransportStreamOpened():
                self._open_stream(stream_id=event.stream_id)
            case TransportStreamDataReceived():
                effects = self._handle_stream_data(event=event)
            case TransportStreamWritable():
                effects = self._writer.on_writable(stream_id=event.stream_id)
            case TransportStreamReset():
                effects = self._handle_stream_reset(event=event)
            case TransportConnectionEnded():
                self._state.ended = True
                effects = self._handle_connection_lost(reason=event.reason_phrase or "connection ended")
            case TransportConnectionErrored():
                self._state.failed = True
                effects = self._handle_connection_lost(
                    reason=f"connection error {hex(event.error_code)}: {event.reason_phrase}"
                )
            case _:
                logger.warning("[%s] Unhandled event type: %s", self._connection_id, type(event).__name__)

        self._process_effects(effects=effects)

    def _handle_connection_lost(self, *, reason: str) -> list[Effect]:
        """Abort outstanding replies and freeze request accumulators."""
        self._state.closed_at = get_timestamp()
        effects = self._writer.abort(error=ConnectionError(f"Connection lost: {reason}"))
        for receive_state in self._accumulator.freeze():
            logger.debug(
                "[%s] Stream %d closed with incomplete request (%d bytes)",
                self._connection_id,
                receive_state.stream_id,
                receive_state.bytes_received,
            )
        logger.info("[%s] Connection closed: %s", self._connection_id, reason)
        return effects

    def _handle_request_received(self, *, effect: RequestReceived) -> list[Effect]:
        """Start the amplified reply for a decoded request."""
        stream_id = effect.stream_id
        reply_bytes = effect.byte_count * self._config.amplification_factor

        if reply_bytes > MAX_BYTE_COUNT:
            error = ByteCountOverflowError(
                f"Reply of {effect.byte_count} x {self._config.amplification_factor} bytes exceeds supported range",
                limit=MAX_BYTE_COUNT,
                stream_id=stream_id,
            )
            return [RequestRejected(stream_id=stream_id, error=error)]

        self._state.requests_received += 1

        if not can_send_data_on_stream(stream_id=stream_id, is_client=False):
            logger.warning(
                "[%s] Dropping request for %d bytes on unidirectional stream %d: cannot reply",
                self._connection_id,
                effect.byte_count,
                stream_id,
            )
            self._state.dropped_streams.add(stream_id)
            self._accumulator.discard(stream_id=stream_id)
            return []

        logger.info(
            "[%s] Stream %d requested %d bytes, replying with %d",
            self._connection_id,
            stream_id,
            effect.byte_count,
            reply_bytes,
        )
        return self._writer.start(
            stream_id=stream_id, total_bytes=reply_bytes, chunk_size=self._config.chunk_size, end_stream=True
        )

    def _handle_stream_data(self, *, event: TransportStreamDataReceived) -> list[Effect]:
        """Feed request bytes into the accumulator."""
        stream_id = event.stream_id
        if stream_id in self._state.dropped_streams:
            logger.debug(
                "[%s] Discarding %d bytes on dropped stream %d", self._connection_id, len(event.data), stream_id
            )
            return []
        if stream_id not in self._state.receive_states:
            self._open_stream(stream_id=stream_id)
        return self._accumulator.on_bytes(stream_id=stream_id, data=event.data, end_stream=event.end_stream)

    def _handle_stream_reset(self, *, event: TransportStreamReset) -> list[Effect]:
        """Abort the reply and forget the request of a stream reset by the peer."""
        stream_id = event.stream_id
        logger.warning(
            "[%s] Stream %d reset by peer with code %s", self._connection_id, stream_id, hex(event.error_code)
        )
        error = TransportError(
            f"Stream reset by peer with code {hex(event.error_code)}", stream_id=stream_id, error_code=event.error_code
        )
        effects = self._writer.abort(error=error, stream_id=stream_id)
        self._accumulator.discard(stream_id=stream_id)
        self._state.dropped_streams.add(stream_id)
        return effects

    def _open_stream(self, *, stream_id: StreamId) -> None:
        """Register read interest for a peer-initiated stream."""
        if is_locally_initiated_stream(stream_id=stream_id, is_client=False):
            logger.debug("[%s] Ignoring locally initiated stream %d", self._connection_id, stream_id)
            return
        if stream_id in self._state.receive_states or stream_id in self._state.dropped_streams:
            return

        logger.debug("[%s] New stream %d", self._connection_id, stream_id)
        self._accumulator.open_request(stream_id=stream_id, start_time=get_timestamp())

    def _process_effects(self, *, effects: list[Effect]) -> None:
        """Apply effects, including any follow-up effects they produce."""
        pending = deque(effects)
        while pending:
            effect = pending.popleft()
            match effect:
                case RequestReceived():
                    pending.extend(self._handle_request_received(effect=effect))
                case RequestRejected():
                    self._state.requests_rejected += 1
                    self._state.dropped_streams.add(effect.stream_id)
                    self._accumulator.discard(stream_id=effect.stream_id)
                    logger.warning("[%s] Dropping stream %d: %s", self._connection_id, effect.stream_id, effect.error)
                case WriteCompleted():
                    self._state.transfers_completed += 1
                    self._state.bytes_sent += effect.total_bytes
                    logger.debug(
                        "[%s] Reply of %d bytes on stream %d handed to transport",
                        self._connection_id,
                        effect.total_bytes,
                        effect.stream_id,
                    )
                case WriteAborted():
                    self._state.transfers_aborted += 1
                case ReceiveCompleted() | ReceiveTruncated():
                    logger.debug("[%s] Ignoring reply-side effect on stream %d", self._connection_id, effect.stream_id)
                case _:
                    logger.warning("[%s] Unhandled effect type: %s", self._connection_id, type(effect).__name__)
