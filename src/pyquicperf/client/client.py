"""Benchmark client running a single request/reply throughput measurement."""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import Any

from pyquicperf._adapter.base import PerfCommonProtocol
from pyquicperf._adapter.client import create_connection
from pyquicperf._protocol.client_processor import ClientSessionProcessor
from pyquicperf.config import ClientConfig
from pyquicperf.connection.connection import PerfConnection
from pyquicperf.exceptions import ConnectionError, TimeoutError
from pyquicperf.report import ThroughputRecord, ThroughputReporter
from pyquicperf.types import RunState
from pyquicperf.utils import Timer, format_duration, get_logger

__all__: list[str] = ["ClientStats", "PerfClient"]

logger = get_logger(name=__name__)


@dataclass(kw_only=True)
class ClientStats:
    """Represent statistics for the runs of a client."""

    runs_started: int = 0
    runs_measured: int = 0
    runs_unmeasured: int = 0
    connect_failures: int = 0
    total_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert statistics to a dictionary."""
        return asdict(obj=self)


class PerfClient:
    """Connect to a benchmark server, request a reply, and measure its throughput."""

    def __init__(self, *, config: ClientConfig | None = None) -> None:
        """Initialize the benchmark client."""
        self._config = config or ClientConfig()
        self._config.validate()
        self._stats = ClientStats()
        self._last_run_state: RunState | None = None

    @property
    def config(self) -> ClientConfig:
        """Get the client's configuration object."""
        return self._config

    @property
    def last_run_state(self) -> RunState | None:
        """Get the final state of the most recent run."""
        return self._last_run_state

    @property
    def stats(self) -> ClientStats:
        """Get the client statistics."""
        return self._stats

    async def run(self) -> ThroughputRecord:
        """Run one benchmark transfer and return its throughput record.

        Failures never raise: a run that cannot connect, times out, or loses its
        connection yields an unmeasured record.
        """
        loop = asyncio.get_running_loop()
        completion: asyncio.Future[ThroughputRecord] = loop.create_future()
        reporter = ThroughputReporter(latency_label=self._config.latency_label, loss_label=self._config.loss_label)
        processor: ClientSessionProcessor | None = None
        connection: PerfConnection | None = None

        def processor_factory(protocol: PerfCommonProtocol) -> ClientSessionProcessor:
            nonlocal processor
            processor = ClientSessionProcessor(
                config=self._config, transport=protocol, completion=completion, reporter=reporter
            )
            return processor

        self._stats.runs_started += 1
        timer = Timer(name="benchmark run")
        timer.start()
        logger.info(
            "Connecting to %s:%d (request=%d bytes, factor=%d)",
            self._config.host,
            self._config.port,
            self._config.request_bytes,
            self._config.amplification_factor,
        )

        try:
            try:
                async with asyncio.timeout(self._config.connect_timeout):
                    connection = await create_connection(
                        host=self._config.host,
                        port=self._config.port,
                        config=self._config,
                        loop=loop,
                        processor_factory=processor_factory,
                    )
                    await connection.protocol.wait_connected()
            except (asyncio.TimeoutError, ConnectionError, OSError) as e:
                self._stats.connect_failures += 1
                if completion.done():
                    return self._finish(record=completion.result(), processor=processor, timer=timer)
                target = f"{self._config.host}:{self._config.port}"
                reason = f"Connection to {target} failed: {str(e) or type(e).__name__}"
                if processor is not None:
                    processor.fail(error=ConnectionError(reason, remote_address=(self._config.host, self._config.port)))
                    return self._finish(record=completion.result(), processor=processor, timer=timer)
                logger.error("%s", reason)
                return self._finish(record=reporter.unmeasured(reason=reason), processor=None, timer=timer)

            logger.info("Connected to %s:%d", self._config.host, self._config.port)
            try:
                async with asyncio.timeout(self._config.transfer_timeout):
                    record = await asyncio.shield(completion)
            except asyncio.TimeoutError:
                if processor is not None:
                    processor.fail(
                        error=TimeoutError(
                            f"Transfer did not complete within {self._config.transfer_timeout}s", operation="transfer"
                        )
                    )
                record = completion.result()
            return self._finish(record=record, processor=processor, timer=timer)
        finally:
            if connection is not None:
                await connection.close()

    def _finish(
        self, *, record: ThroughputRecord, processor: ClientSessionProcessor | None, timer: Timer
    ) -> ThroughputRecord:
        """Record the outcome of a run."""
        elapsed = timer.stop()
        self._stats.total_time += elapsed
        self._last_run_state = processor.run_state if processor is not None else RunState.FAILED
        if record.is_measured:
            self._stats.runs_measured += 1
        else:
            self._stats.runs_unmeasured += 1
        logger.info("Run finished in %s (%s)", format_duration(seconds=elapsed), self._last_run_state)
        return record

    def __str__(self) -> str:
        """Format a concise summary of client information for logging."""
        return (
            f"PerfClient(target={self._config.host}:{self._config.port}, "
            f"runs={self._stats.runs_started}, "
            f"measured={self._stats.runs_measured})"
        )
