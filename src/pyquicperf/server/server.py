"""Core server implementation answering benchmark requests."""

from __future__ import annotations

import asyncio
from asyncio import BaseTransport
from collections import Counter
from dataclasses import asdict, dataclass
from pathlib import Path
from types import TracebackType
from typing import Any, Self, cast

from aioquic.asyncio.server import QuicServer

from pyquicperf._adapter.server import PerfServerProtocol, create_server
from pyquicperf._protocol.server_processor import ServerSessionProcessor
from pyquicperf.config import ServerConfig
from pyquicperf.connection.connection import PerfConnection
from pyquicperf.constants import ErrorCodes
from pyquicperf.exceptions import ServerError
from pyquicperf.manager.connection import ConnectionManager
from pyquicperf.types import Address, ConnectionState
from pyquicperf.utils import generate_connection_id, get_logger, get_timestamp

__all__: list[str] = ["PerfServer", "ServerDiagnostics", "ServerStats"]

logger = get_logger(name=__name__)


@dataclass(frozen=True, kw_only=True)
class ServerDiagnostics:
    """A structured, immutable snapshot of a server's health."""

    stats: ServerStats
    connection_states: dict[ConnectionState, int]
    is_serving: bool
    certfile_path: str
    keyfile_path: str
    max_connections: int

    @property
    def issues(self) -> list[str]:
        """Get a list of potential issues based on the current diagnostics."""
        issues: list[str] = []
        stats_dict = self.stats.to_dict()

        if not self.is_serving:
            issues.append("Server is not currently serving.")

        total_attempts = stats_dict.get("total_connections_attempted", 0)
        success_rate = stats_dict.get("success_rate", 1.0)
        connections_rejected = stats_dict.get("connections_rejected", 0)
        if total_attempts > 20 and success_rate < 0.9:
            issues.append(f"High connection rejection rate: {connections_rejected}/{total_attempts}")

        requests_received = stats_dict.get("requests_received", 0)
        requests_rejected = stats_dict.get("requests_rejected", 0)
        if requests_rejected > 0 and requests_rejected >= requests_received:
            total_requests = requests_received + requests_rejected
            issues.append(f"Most requests were rejected: {requests_rejected} of {total_requests}")

        active_connections = self.connection_states.get(ConnectionState.CONNECTED, 0)
        if self.max_connections > 0 and (active_connections / self.max_connections) > 0.9:
            issues.append(f"High connection usage: {active_connections / self.max_connections:.1%}")

        if not self.certfile_path or not Path(self.certfile_path).exists():
            issues.append(f"Certificate file not found: {self.certfile_path}")
        if not self.keyfile_path or not Path(self.keyfile_path).exists():
            issues.append(f"Key file not found: {self.keyfile_path}")

        return issues


@dataclass(kw_only=True)
class ServerStats:
    """Represent statistics for the server, folded in as connections close."""

    start_time: float | None = None
    connections_accepted: int = 0
    connections_rejected: int = 0
    connection_errors: int = 0
    requests_received: int = 0
    requests_rejected: int = 0
    transfers_completed: int = 0
    transfers_aborted: int = 0
    bytes_sent: int = 0

    @property
    def total_connections_attempted(self) -> int:
        """Get the total number of connections attempted."""
        return self.connections_accepted + self.connections_rejected

    @property
    def success_rate(self) -> float:
        """Get the connection success rate."""
        total = self.total_connections_attempted
        if total == 0:
            return 1.0
        return self.connections_accepted / total

    def to_dict(self) -> dict[str, Any]:
        """Convert statistics to a dictionary."""
        data = asdict(obj=self)
        data["total_connections_attempted"] = self.total_connections_attempted
        data["success_rate"] = self.success_rate
        data["uptime"] = (get_timestamp() - self.start_time) if self.start_time else 0.0
        return data


class PerfServer:
    """Accept benchmark connections and reply to each byte-count request."""

    def __init__(self, *, config: ServerConfig | None = None) -> None:
        """Initialize the benchmark server."""
        self._config = config or ServerConfig()
        self._config.validate()
        self._serving, self._closing = False, False
        self._server: QuicServer | None = None
        self._connection_manager = ConnectionManager(
            max_connections=self._config.max_connections, on_connection_closed=self._on_connection_closed
        )
        self._background_tasks: set[asyncio.Task[None]] = set()
        self._stats = ServerStats()
        self._shutdown_event: asyncio.Event | None = None
        logger.info("Benchmark server initialized.")

    @property
    def config(self) -> ServerConfig:
        """Get the server's configuration object."""
        return self._config

    @property
    def connection_manager(self) -> ConnectionManager:
        """Get the server's connection manager instance."""
        return self._connection_manager

    @property
    def is_serving(self) -> bool:
        """Check if the server is currently serving."""
        return self._serving

    @property
    def local_address(self) -> Address | None:
        """Get the local address the server is bound to."""
        if self._server and self._server._transport:
            try:
                return cast(Address | None, self._server._transport.get_extra_info("sockname"))
            except OSError:
                return None
        return None

    @property
    def stats(self) -> ServerStats:
        """Get the aggregated server statistics."""
        return self._stats

    async def __aenter__(self) -> Self:
        """Enter the async context for the server."""
        await self._connection_manager.__aenter__()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        """Exit the async context and close the server."""
        await self.close()

    async def close(self) -> None:
        """Gracefully shut down the server and release every connection."""
        if not self._serving:
            return

        logger.info("Closing benchmark server...")
        self._serving = False
        self._closing = True

        if self._shutdown_event:
            self._shutdown_event.set()

        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)

        await self._connection_manager.shutdown()

        if self._server:
            self._server.close()

        self._closing = False
        logger.info("Benchmark server closed: %s", self._stats.to_dict())

    async def diagnostics(self) -> ServerDiagnostics:
        """Get a snapshot of the server's diagnostics and statistics."""
        connections = await self._connection_manager.get_all_resources()
        connection_states = Counter(conn.state for conn in connections)

        return ServerDiagnostics(
            stats=self._stats,
            connection_states=dict(connection_states),
            is_serving=self.is_serving,
            certfile_path=self._config.certfile or "",
            keyfile_path=self._config.keyfile or "",
            max_connections=self._config.max_connections,
        )

    async def listen(self, *, host: str | None = None, port: int | None = None) -> None:
        """Start the server and begin listening for connections."""
        if self._serving:
            raise ServerError("Server is already serving")

        bind_host = host or self._config.bind_host
        bind_port = port if port is not None else self._config.bind_port
        logger.info("Starting benchmark server on %s:%s", bind_host, bind_port)

        self._shutdown_event = asyncio.Event()

        try:
            self._server = await create_server(
                host=bind_host, port=bind_port, config=self._config, connection_creator=self._create_connection_callback
            )
        except FileNotFoundError as e:
            logger.critical("Certificate/Key file error: %s", e)
            raise ServerError(f"Certificate/Key file error: {e}", bind_address=(bind_host, bind_port)) from e
        except ServerError:
            raise
        except Exception as e:
            logger.critical("Failed to start server: %s", e, exc_info=True)
            raise ServerError(f"Failed to start server: {e}", bind_address=(bind_host, bind_port)) from e

        self._serving = True
        self._stats.start_time = get_timestamp()
        logger.info("Benchmark server listening on %s", self.local_address)

    async def serve_forever(self) -> None:
        """Run the server until it is closed or the task is cancelled."""
        if not self._serving or not self._server:
            raise ServerError("Server is not listening")

        logger.info("Server is running. Press Ctrl+C to stop.")
        try:
            if self._shutdown_event:
                await self._shutdown_event.wait()
        finally:
            logger.info("serve_forever loop finished.")

    def _create_connection_callback(
        self, protocol: PerfServerProtocol, transport: BaseTransport
    ) -> PerfConnection | None:
        """Create a connection and its session processor for a new peer."""
        if self._closing or not self._serving:
            logger.warning("Refusing connection while the server is shutting down.")
            self._stats.connections_rejected += 1
            protocol.close_connection(error_code=ErrorCodes.CONNECTION_REFUSED, reason_phrase="Server shutting down")
            return None

        connection_id = generate_connection_id()
        processor = ServerSessionProcessor(config=self._config, transport=protocol, connection_id=connection_id)
        connection = PerfConnection(
            protocol=protocol,
            transport=transport,
            processor=processor,
            is_client=False,
            connection_id=connection_id,
            close_timeout=self._config.close_timeout,
        )
        task = asyncio.create_task(self._initialize_and_register_connection(connection=connection))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return connection

    async def _initialize_and_register_connection(self, *, connection: PerfConnection) -> None:
        """Start the connection engine and register it with the manager."""
        try:
            await connection.initialize()
            await self._connection_manager.add_connection(connection=connection)
            self._stats.connections_accepted += 1
            logger.info("New connection registered: %s", connection.connection_id)
        except Exception as e:
            self._stats.connections_rejected += 1
            self._stats.connection_errors += 1
            logger.error("Failed to initialize/register new connection: %s", e)
            if not connection.is_closed:
                await connection.close()

    def _on_connection_closed(self, connection: PerfConnection) -> None:
        """Fold the transfer counters of a closed connection into the server stats."""
        state = connection.processor.state
        self._stats.requests_received += state.requests_received
        self._stats.requests_rejected += state.requests_rejected
        self._stats.transfers_completed += state.transfers_completed
        self._stats.transfers_aborted += state.transfers_aborted
        self._stats.bytes_sent += state.bytes_sent
        if connection.state is ConnectionState.FAILED:
            self._stats.connection_errors += 1
        logger.info(
            "Connection %s closed (%s): %d requests, %d bytes sent",
            connection.connection_id,
            connection.state,
            state.requests_received,
            state.bytes_sent,
        )

    def __str__(self) -> str:
        """Format a concise summary of server information for logging."""
        status = "serving" if self.is_serving else "stopped"
        address_info = self.local_address
        address_str = f"{address_info[0]}:{address_info[1]}" if address_info else "unknown"
        return (
            f"PerfServer(status={status}, "
            f"address={address_str}, "
            f"connections={len(self._connection_manager)}, "
            f"bytes_sent={self._stats.bytes_sent})"
        )
