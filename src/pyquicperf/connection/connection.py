"""A QUIC connection driven by a single engine task."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from types import TracebackType
from typing import TYPE_CHECKING, Self

from pyquicperf._protocol.events import (
    ProtocolEvent,
    TransportConnectionEnded,
    TransportConnectionErrored,
    TransportHandshakeCompleted,
    TransportQuicTimerFired,
)
from pyquicperf.constants import DEFAULT_CLOSE_TIMEOUT, DEFAULT_MAX_EVENT_QUEUE_SIZE, ErrorCodes
from pyquicperf.types import ConnectionId, ConnectionState, Timestamp
from pyquicperf.utils import generate_connection_id, get_logger, get_timestamp

if TYPE_CHECKING:
    from pyquicperf._adapter.base import PerfCommonProtocol
    from pyquicperf._protocol.client_processor import ClientSessionProcessor
    from pyquicperf._protocol.server_processor import ServerSessionProcessor

    SessionProcessor = ClientSessionProcessor | ServerSessionProcessor


__all__: list[str] = ["ConnectionDiagnostics", "PerfConnection"]

logger = get_logger(name=__name__)


@dataclass(frozen=True, kw_only=True)
class ConnectionDiagnostics:
    """A snapshot of connection state and transfer counters."""

    connection_id: ConnectionId
    state: ConnectionState
    is_client: bool
    connected_at: Timestamp | None
    closed_at: Timestamp | None
    active_transfers: int
    tracked_streams: int
    pending_events: int


class PerfConnection:
    """Serialize all transport events of one QUIC connection onto a session processor."""

    def __init__(
        self,
        *,
        protocol: PerfCommonProtocol,
        transport: asyncio.BaseTransport,
        processor: SessionProcessor,
        is_client: bool,
        connection_id: ConnectionId | None = None,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ) -> None:
        """Initialize the connection."""
        self._protocol = protocol
        self._transport = transport
        self._processor = processor
        self._is_client = is_client
        self._connection_id = connection_id or generate_connection_id()
        self._close_timeout = close_timeout
        self._state = ConnectionState.IDLE
        self._engine_queue: asyncio.Queue[ProtocolEvent] | None = None
        self._engine_task: asyncio.Task[None] | None = None
        self._connected_at: Timestamp | None = None
        self._closed_at: Timestamp | None = None
        self._close_started = False
        self._closed_event: asyncio.Event | None = None

    @property
    def connection_id(self) -> ConnectionId:
        """Get the unique ID of the connection."""
        return self._connection_id

    @property
    def is_client(self) -> bool:
        """Check if this is the client side of the connection."""
        return self._is_client

    @property
    def is_closed(self) -> bool:
        """Check if the connection has reached a terminal state."""
        return self._state in (ConnectionState.CLOSED, ConnectionState.FAILED)

    @property
    def processor(self) -> SessionProcessor:
        """Get the session processor driven by this connection."""
        return self._processor

    @property
    def protocol(self) -> PerfCommonProtocol:
        """Get the aioquic protocol adapter."""
        return self._protocol

    @property
    def state(self) -> ConnectionState:
        """Get the current connection state."""
        return self._state

    async def close(self, *, error_code: int = ErrorCodes.NO_ERROR, reason: str = "") -> None:
        """Close the connection and stop its engine task."""
        if self._close_started:
            return

        self._close_started = True
        was_terminated = self.is_closed
        if not was_terminated:
            self._state = ConnectionState.CLOSING
        logger.debug("Closing connection %s (code=%#x, reason='%s')", self._connection_id, error_code, reason)
        self._protocol.close_connection(error_code=error_code, reason_phrase=reason)

        if self._engine_task is not None and not self._engine_task.done():
            try:
                async with asyncio.timeout(self._close_timeout):
                    await asyncio.shield(self._engine_task)
            except asyncio.TimeoutError:
                logger.debug("Connection %s did not drain within %.1fs", self._connection_id, self._close_timeout)
            finally:
                await self._stop_engine()

        if self._is_client and not self._transport.is_closing():
            self._transport.close()

        if not was_terminated:
            self._state = ConnectionState.CLOSED
        if self._closed_at is None:
            self._closed_at = get_timestamp()
        if self._closed_event is not None:
            self._closed_event.set()

    def diagnostics(self) -> ConnectionDiagnostics:
        """Get a snapshot of the connection state."""
        session_state = self._processor.state
        return ConnectionDiagnostics(
            connection_id=self._connection_id,
            state=self._state,
            is_client=self._is_client,
            connected_at=self._connected_at,
            closed_at=self._closed_at,
            active_transfers=len(session_state.write_jobs),
            tracked_streams=len(session_state.receive_states),
            pending_events=self._engine_queue.qsize() if self._engine_queue is not None else 0,
        )

    async def initialize(self) -> None:
        """Attach the engine queue to the protocol and start the engine task."""
        if self._engine_task is not None:
            logger.warning("Connection %s is already initialized.", self._connection_id)
            return

        self._engine_queue = asyncio.Queue(maxsize=DEFAULT_MAX_EVENT_QUEUE_SIZE)
        self._closed_event = asyncio.Event()
        self._state = ConnectionState.CONNECTING
        self._protocol.set_engine_queue(engine_queue=self._engine_queue)
        self._engine_task = asyncio.create_task(self._run_engine())
        logger.debug("Connection %s engine started.", self._connection_id)

    async def wait_closed(self) -> None:
        """Wait until the connection has terminated or been closed locally."""
        if self._closed_event is not None:
            await self._closed_event.wait()

    async def _run_engine(self) -> None:
        """Feed queued transport events to the session processor until the connection ends."""
        if self._engine_queue is None:
            return

        while True:
            event = await self._engine_queue.get()
            match event:
                case TransportQuicTimerFired():
                    self._protocol.handle_timer_now()
                    continue
                case TransportHandshakeCompleted():
                    self._state = ConnectionState.CONNECTED
                    self._connected_at = get_timestamp()

            try:
                self._processor.handle_event(event=event)
            except Exception as e:
                logger.error(
                    "Error processing %s on connection %s: %s",
                    type(event).__name__,
                    self._connection_id,
                    e,
                    exc_info=True,
                )

            match event:
                case TransportConnectionEnded():
                    self._mark_terminated(state=ConnectionState.CLOSED)
                    return
                case TransportConnectionErrored():
                    self._mark_terminated(state=ConnectionState.FAILED)
                    return

    def _mark_terminated(self, *, state: ConnectionState) -> None:
        """Record the terminal connection state."""
        if self._state != ConnectionState.CLOSING:
            self._state = state
        self._closed_at = get_timestamp()
        if self._closed_event is not None:
            self._closed_event.set()
        logger.debug("Connection %s terminated (%s).", self._connection_id, state)

    async def _stop_engine(self) -> None:
        """Cancel the engine task if it is still running."""
        task = self._engine_task
        if task is None or task.done():
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def __aenter__(self) -> Self:
        """Enter the async context."""
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        """Exit the async context, closing the connection."""
        await self.close()

    def __repr__(self) -> str:
        """Provide a developer-friendly representation."""
        return f"PerfConnection(id={self._connection_id}, state={self._state}, is_client={self._is_client})"
