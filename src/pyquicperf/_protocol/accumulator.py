"""Per-stream inbound byte accounting and completion detection."""

from __future__ import annotations

from pyquicperf._protocol.codec import decode_request
from pyquicperf._protocol.events import Effect, ReceiveCompleted, ReceiveTruncated, RequestReceived, RequestRejected
from pyquicperf._protocol.state import ReceiveState
from pyquicperf.constants import MAX_REQUEST_BUFFER_SIZE
from pyquicperf.exceptions import ByteCountOverflowError, ProtocolAnomalyError, StreamError
from pyquicperf.types import ReceiveMode, StreamId, Timestamp
from pyquicperf.utils import get_logger, get_timestamp

__all__: list[str] = []

logger = get_logger(name=__name__)


class ReceiveAccumulator:
    """Count inbound bytes per stream and decide when a logical transfer is complete.

    Request-side streams complete on end-of-input and hand their buffered bytes
    to the request decoder. Reply-side streams complete when the byte count
    reaches a target known in advance. Once complete, a stream is inert.
    """

    def __init__(self, *, states: dict[StreamId, ReceiveState]) -> None:
        """Initialize the accumulator over a state table owned by the session."""
        self._states = states

    def discard(self, *, stream_id: StreamId) -> None:
        """Forget all receive state for a stream."""
        self._states.pop(stream_id, None)

    def expect_reply(self, *, stream_id: StreamId, target_bytes: int, start_time: Timestamp) -> ReceiveState:
        """Track a reply-side stream with a known byte target."""
        if target_bytes < 0:
            raise ValueError(f"target_bytes must be non-negative, got {target_bytes}")

        state = ReceiveState(
            stream_id=stream_id, mode=ReceiveMode.REPLY, start_time=start_time, target_bytes=target_bytes
        )
        self._states[stream_id] = state
        return state

    def freeze(self) -> list[ReceiveState]:
        """Make every tracked stream inert and return those that never completed."""
        incomplete: list[ReceiveState] = []
        for state in self._states.values():
            if not state.complete:
                incomplete.append(state)
            state.end_of_input = True
        return incomplete

    def get_state(self, *, stream_id: StreamId) -> ReceiveState | None:
        """Get the receive state for a stream."""
        return self._states.get(stream_id)

    def on_bytes(self, *, stream_id: StreamId, data: bytes, end_stream: bool = False) -> list[Effect]:
        """Account for one received fragment."""
        state = self._states.get(stream_id)
        if state is None:
            logger.warning("Received %d bytes for untracked stream %d", len(data), stream_id)
            return []

        if state.complete or state.end_of_input:
            if data:
                state.anomalous_bytes += len(data)
                anomaly = ProtocolAnomalyError(
                    f"Discarding {len(data)} bytes received after transfer completed",
                    extra_bytes=len(data),
                    stream_id=stream_id,
                )
                logger.warning("%s", anomaly)
            return []

        state.bytes_received += len(data)
        match state.mode:
            case ReceiveMode.REQUEST:
                self._buffer_request(state=state, data=data)
                if end_stream:
                    return self.on_end_of_input(stream_id=stream_id)
                return []
            case ReceiveMode.REPLY:
                return self._check_reply(state=state, end_stream=end_stream)

    def on_end_of_input(self, *, stream_id: StreamId) -> list[Effect]:
        """Decode a fully received request once its direction has been closed."""
        state = self._states.get(stream_id)
        if state is None or state.complete or state.end_of_input:
            return []

        if state.mode is ReceiveMode.REPLY:
            return self._check_reply(state=state, end_stream=True)

        state.end_of_input = True
        try:
            if state.buffer_truncated:
                decode_request(data=state.buffer)
                raise ByteCountOverflowError(
                    f"Byte-count request has more than {MAX_REQUEST_BUFFER_SIZE} significant digits",
                    limit=MAX_REQUEST_BUFFER_SIZE,
                )
            byte_count = decode_request(data=state.buffer)
        except StreamError as e:
            e.stream_id = stream_id
            state.buffer.clear()
            return [RequestRejected(stream_id=stream_id, error=e)]

        state.target_bytes = byte_count
        state.complete = True
        state.completed_at = get_timestamp()
        state.buffer.clear()
        return [RequestReceived(stream_id=stream_id, byte_count=byte_count)]

    def open_request(self, *, stream_id: StreamId, start_time: Timestamp) -> ReceiveState:
        """Track a request-side stream whose length is unknown until end-of-input."""
        state = self._states.get(stream_id)
        if state is None:
            state = ReceiveState(stream_id=stream_id, mode=ReceiveMode.REQUEST, start_time=start_time)
            self._states[stream_id] = state
        return state

    def _buffer_request(self, *, state: ReceiveState, data: bytes) -> None:
        """Buffer request bytes, collapsing leading zeros so padding never counts against the cap."""
        if data and not state.buffer.strip(b"0"):
            data = (bytes(state.buffer) + data).lstrip(b"0") or b"0"
            state.buffer.clear()

        room = MAX_REQUEST_BUFFER_SIZE - len(state.buffer)
        if len(data) > room:
            state.buffer_truncated = True
        if room > 0:
            state.buffer.extend(data[:room])

    def _check_reply(self, *, state: ReceiveState, end_stream: bool) -> list[Effect]:
        """Complete a reply stream on reaching its target, or flag it truncated on early end-of-input."""
        target = state.target_bytes if state.target_bytes is not None else 0
        if end_stream:
            state.end_of_input = True

        if state.bytes_received >= target and (target > 0 or end_stream):
            state.complete = True
            state.completed_at = get_timestamp()
            if state.bytes_received > target:
                logger.warning(
                    "Stream %d delivered %d bytes beyond target %d",
                    state.stream_id,
                    state.bytes_received - target,
                    target,
                )
            return [
                ReceiveCompleted(
                    stream_id=state.stream_id,
                    bytes_received=state.bytes_received,
                    start_time=state.start_time,
                    completed_at=state.completed_at,
                )
            ]

        if end_stream:
            return [
                ReceiveTruncated(stream_id=state.stream_id, bytes_received=state.bytes_received, target_bytes=target)
            ]
        return []
