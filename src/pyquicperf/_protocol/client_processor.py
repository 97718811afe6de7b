"""Client-side session driver for a single benchmark run."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from pyquicperf._protocol.accumulator import ReceiveAccumulator
from pyquicperf._protocol.codec import encode_request
from pyquicperf._protocol.events import (
    Effect,
    ProtocolEvent,
    ReceiveCompleted,
    ReceiveTruncated,
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
from pyquicperf._protocol.writer import ChunkedWriter
from pyquicperf.exceptions import ConnectionError, PerfError, TransportError
from pyquicperf.report import ThroughputRecord, ThroughputReporter
from pyquicperf.types import ReliabilityMode, RunState, StreamId, TransportProtocol
from pyquicperf.utils import get_logger, get_timestamp

if TYPE_CHECKING:
    from pyquicperf.config import ClientConfig


__all__: list[str] = []

logger = get_logger(name=__name__)


class ClientSessionProcessor:
    """Drive one request/reply run over a connection and publish its throughput record."""

    def __init__(
        self,
        *,
        config: ClientConfig,
        transport: TransportProtocol,
        completion: asyncio.Future[ThroughputRecord],
        reporter: ThroughputReporter | None = None,
    ) -> None:
        """Initialize the client session processor."""
        self._config = config
        self._transport = transport
        self._completion = completion
        self._reporter = reporter or ThroughputReporter(
            latency_label=config.latency_label, loss_label=config.loss_label
        )
        self._state = SessionStateData(is_client=True)
        self._writer = ChunkedWriter(transport=transport, jobs=self._state.write_jobs)
        self._accumulator = ReceiveAccumulator(states=self._state.receive_states)
        self._run_state = RunState.CONNECTING
        self._stream_id: StreamId | None = None

    @property
    def run_state(self) -> RunState:
        """Get the current state of the run."""
        return self._run_state

    @property
    def state(self) -> SessionStateData:
        """Get the per-connection transfer state."""
        return self._state

    @property
    def stream_id(self) -> StreamId | None:
        """Get the ID of the benchmark stream once opened."""
        return self._stream_id

    def fail(self, *, error: BaseException) -> None:
        """Abort the run from outside the event flow, e.g. on a timeout."""
        if self._is_finished:
            return

        logger.error("Benchmark run failed: %s", error)
        self._writer.abort(error=error)
        self._accumulator.freeze()
        self._finish(state=RunState.FAILED, record=self._unmeasured(reason=str(error)))

    def handle_event(self, *, event: ProtocolEvent) -> None:
        """Handle a single transport event."""
        if self._is_finished:
            logger.debug("Ignoring %s after run finished", type(event).__name__)
            return

        effects: list[Effect] = []
        match event:
            case TransportHandshakeCompleted():
                effects = self._handle_handshake_completed(event=event)
            case TransportStreamDataReceived():
                effects = self._accumulator.on_bytes(
                    stream_id=event.stream_id, data=event.data, end_stream=event.end_stream
                )
            case TransportStreamWritable():
                effects = self._writer.on_writable(stream_id=event.stream_id)
            case TransportStreamReset():
                effects = self._handle_stream_reset(event=event)
            case TransportConnectionEnded():
                self._handle_connection_lost(reason=event.reason_phrase or "connection ended", failed=False)
            case TransportConnectionErrored():
                self._handle_connection_lost(
                    reason=f"connection error {hex(event.error_code)}: {event.reason_phrase}", failed=True
                )
            case TransportStreamOpened():
                logger.debug("Ignoring server-initiated stream %d", event.stream_id)
            case _:
                logger.warning("Unhandled event type: %s", type(event).__name__)

        for effect in effects:
            self._apply_effect(effect=effect)

    @property
    def _is_finished(self) -> bool:
        """Check if the run has reached a terminal state."""
        return self._run_state in (RunState.COMPLETED, RunState.FAILED)

    def _apply_effect(self, *, effect: Effect) -> None:
        """Apply an effect produced by the writer or accumulator."""
        if self._is_finished:
            return

        match effect:
            case WriteCompleted():
                logger.debug("Request of %d bytes sent on stream %d", effect.total_bytes, effect.stream_id)
                self._run_state = RunState.AWAITING_REPLY
            case WriteAborted():
                self._accumulator.freeze()
                self._finish(state=RunState.FAILED, record=self._unmeasured(reason=str(effect.error)))
            case ReceiveCompleted():
                record = self._reporter.report(
                    stream_id=effect.stream_id,
                    start_time=effect.start_time,
                    end_time=effect.completed_at,
                    total_bytes=effect.bytes_received,
                )
                self._finish(state=RunState.COMPLETED, record=record)
            case ReceiveTruncated():
                logger.warning(
                    "Stream %d ended after %d of %d expected bytes",
                    effect.stream_id,
                    effect.bytes_received,
                    effect.target_bytes,
                )
                self._finish(
                    state=RunState.FAILED,
                    record=self._unmeasured(reason=f"reply truncated at {effect.bytes_received}/{effect.target_bytes}"),
                )
            case _:
                logger.warning("Unhandled effect type: %s", type(effect).__name__)

    def _finish(self, *, state: RunState, record: ThroughputRecord) -> None:
        """Move to a terminal state and resolve the completion future exactly once."""
        self._run_state = state
        if self._state.closed_at is None:
            self._state.closed_at = get_timestamp()
        if not self._completion.done():
            self._completion.set_result(record)
        logger.info("%s", record.format_line())

    def _handle_connection_lost(self, *, reason: str, failed: bool) -> None:
        """Tear down the run when the connection ends or errors before completion."""
        if failed:
            self._state.failed = True
        else:
            self._state.ended = True

        error = ConnectionError(f"Connection lost before transfer completed: {reason}")
        self._writer.abort(error=error)
        incomplete = self._accumulator.freeze()
        for receive_state in incomplete:
            logger.warning(
                "Stream %d incomplete at %s/%s bytes",
                receive_state.stream_id,
                receive_state.bytes_received,
                receive_state.target_bytes,
            )

        self._finish(
            state=RunState.FAILED if failed else RunState.COMPLETED,
            record=self._unmeasured(reason=reason),
        )

    def _handle_handshake_completed(self, *, event: TransportHandshakeCompleted) -> list[Effect]:
        """Open the benchmark stream and send the byte-count request."""
        logger.info("Connection established (alpn=%s)", event.alpn_protocol)
        if self._config.reliability_mode is ReliabilityMode.PARTIAL:
            logger.warning("Partial reliability is not supported by this transport; running reliably")

        self._run_state = RunState.STREAM_OPENING
        try:
            stream_id = self._transport.open_stream()
        except TransportError as e:
            self.fail(error=e)
            return []

        self._stream_id = stream_id
        start_time = get_timestamp()
        self._accumulator.expect_reply(
            stream_id=stream_id, target_bytes=self._config.expected_reply_bytes, start_time=start_time
        )

        payload = encode_request(byte_count=self._config.request_bytes)
        self._run_state = RunState.REQUESTING
        logger.info(
            "Requesting %d bytes on stream %d, expecting %d in reply",
            self._config.request_bytes,
            stream_id,
            self._config.expected_reply_bytes,
        )
        try:
            return self._writer.start(
                stream_id=stream_id,
                total_bytes=len(payload),
                chunk_size=self._config.chunk_size,
                payload=payload,
                end_stream=True,
            )
        except PerfError as e:
            self.fail(error=e)
            return []

    def _handle_stream_reset(self, *, event: TransportStreamReset) -> list[Effect]:
        """Abort the run if the peer resets the benchmark stream."""
        logger.warning("Stream %d reset by peer with code %s", event.stream_id, hex(event.error_code))
        if event.stream_id != self._stream_id:
            return []

        error = TransportError(
            f"Stream reset by peer with code {hex(event.error_code)}",
            stream_id=event.stream_id,
            error_code=event.error_code,
        )
        self.fail(error=error)
        return []

    def _unmeasured(self, *, reason: str) -> ThroughputRecord:
        """Build an unmeasured record for the benchmark stream."""
        receive_state = (
            self._accumulator.get_state(stream_id=self._stream_id) if self._stream_id is not None else None
        )
        total_bytes = receive_state.bytes_received if receive_state is not None else 0
        return self._reporter.unmeasured(stream_id=self._stream_id, total_bytes=total_bytes, reason=reason)
