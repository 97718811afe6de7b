"""Manager for handling numerous concurrent connection lifecycles."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Callable
from types import TracebackType
from typing import Any, Self

from pyquicperf.connection.connection import PerfConnection
from pyquicperf.types import ConnectionId
from pyquicperf.utils import get_logger

__all__: list[str] = ["ConnectionManager"]

logger = get_logger(name=__name__)


class ConnectionManager:
    """Track live connections and release them when they close or on shutdown."""

    def __init__(
        self, *, max_connections: int, on_connection_closed: Callable[[PerfConnection], None] | None = None
    ) -> None:
        """Initialize the connection manager."""
        self._max_connections = max_connections
        self._on_connection_closed = on_connection_closed
        self._lock: asyncio.Lock | None = None
        self._connections: dict[ConnectionId, PerfConnection] = {}
        self._watchers: dict[ConnectionId, asyncio.Task[None]] = {}
        self._stats = {"total_created": 0, "total_closed": 0, "current_count": 0, "max_concurrent": 0}
        self._is_shutting_down = False

    async def __aenter__(self) -> Self:
        """Enter async context and initialize resources."""
        self._lock = asyncio.Lock()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        """Exit async context and shut down the manager."""
        await self.shutdown()

    async def add_connection(self, *, connection: PerfConnection) -> ConnectionId:
        """Add a new connection and watch for its closure."""
        if self._lock is None:
            raise RuntimeError(f"{self.__class__.__name__} is not activated. Use 'async with'.")
        if self._is_shutting_down:
            logger.warning("Attempted to add connection to shutting down manager.")
            await connection.close()
            raise RuntimeError(f"{self.__class__.__name__} is shutting down.")

        connection_id = connection.connection_id
        async with self._lock:
            if connection_id in self._connections:
                logger.debug("Connection %s already managed.", connection_id)
                return connection_id
            if len(self._connections) >= self._max_connections > 0:
                logger.error(
                    "Maximum connection limit (%d) reached. Cannot add %s.", self._max_connections, connection_id
                )
                await connection.close()
                raise RuntimeError("Maximum connection limit reached")

            self._connections[connection_id] = connection
            self._stats["total_created"] += 1
            self._update_stats_unsafe()
            self._watchers[connection_id] = asyncio.create_task(self._watch_connection(connection=connection))
            logger.debug("Added connection %s (total: %d)", connection_id, self._stats["current_count"])

        return connection_id

    async def get_all_resources(self) -> list[PerfConnection]:
        """Retrieve a list of all current connections."""
        if self._lock is None:
            return []
        async with self._lock:
            return list(self._connections.values())

    async def get_connection(self, *, connection_id: ConnectionId) -> PerfConnection | None:
        """Retrieve a connection by its ID."""
        if self._lock is None:
            return None
        async with self._lock:
            return self._connections.get(connection_id)

    async def get_stats(self) -> dict[str, Any]:
        """Get detailed statistics about the managed connections."""
        if self._lock is None:
            return {}
        async with self._lock:
            stats: dict[str, Any] = self._stats.copy()
            stats["current_count"] = len(self._connections)
            stats["max_connections"] = self._max_connections
            states: defaultdict[str, int] = defaultdict(int)
            for conn in self._connections.values():
                states[conn.state.value] += 1
            stats["states"] = dict(states)
            return stats

    async def shutdown(self) -> None:
        """Close every managed connection and wait for their release."""
        if self._is_shutting_down:
            return

        self._is_shutting_down = True
        logger.info("Shutting down connection manager")

        connections = list(self._connections.values())
        if connections:
            logger.info("Closing %d managed connections", len(connections))
            try:
                async with asyncio.TaskGroup() as tg:
                    for connection in connections:
                        tg.create_task(connection.close())
            except* Exception as eg:
                logger.error("Errors occurred while closing managed connections: %s", eg.exceptions, exc_info=eg)

        watchers = list(self._watchers.values())
        if watchers:
            await asyncio.gather(*watchers, return_exceptions=True)
        logger.info("Connection manager shutdown complete")

    async def _handle_connection_closed(self, *, connection: PerfConnection) -> None:
        """Release a closed connection and report it to the owner."""
        if self._lock is None:
            return

        async with self._lock:
            removed = self._connections.pop(connection.connection_id, None)
            self._watchers.pop(connection.connection_id, None)
            if removed is None:
                return
            self._stats["total_closed"] += 1
            self._update_stats_unsafe()
            logger.debug(
                "Removed closed connection %s (total: %d)", connection.connection_id, self._stats["current_count"]
            )

        if self._on_connection_closed is not None:
            try:
                self._on_connection_closed(connection)
            except Exception as e:
                logger.error("Connection closed hook failed for %s: %s", connection.connection_id, e, exc_info=True)

    async def _watch_connection(self, *, connection: PerfConnection) -> None:
        """Wait for a connection to close, then release it."""
        await connection.wait_closed()
        await self._handle_connection_closed(connection=connection)

    def _update_stats_unsafe(self) -> None:
        """Update internal statistics (must be called within a lock)."""
        current_count = len(self._connections)
        self._stats["current_count"] = current_count
        self._stats["max_concurrent"] = max(self._stats["max_concurrent"], current_count)

    def __len__(self) -> int:
        """Return the current number of managed connections."""
        return len(self._connections)
