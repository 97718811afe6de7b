"""Throughput measurement records and their computation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from pyquicperf.constants import BITS_PER_BYTE, BITS_PER_MEGABIT, MILLISECONDS_PER_SECOND, UNMEASURED_FIELD
from pyquicperf.types import StreamId, Timestamp
from pyquicperf.utils import get_logger

__all__: list[str] = ["ThroughputRecord", "ThroughputReporter"]

logger = get_logger(name=__name__)


@dataclass(frozen=True, kw_only=True)
class ThroughputRecord:
    """The outcome of one benchmark transfer.

    A record whose `rate_mbps` is None is unmeasured: the transfer never reached
    its target, or no time elapsed between its start and end.
    """

    stream_id: StreamId | None
    total_bytes: int
    start_time: Timestamp | None = None
    end_time: Timestamp | None = None
    elapsed_ms: float | None = None
    rate_mbps: float | None = None
    latency_label: str = "-"
    loss_label: str = "-"
    reason: str = ""

    @property
    def is_measured(self) -> bool:
        """Check if the record carries a numeric rate."""
        return self.rate_mbps is not None

    def format_line(self) -> str:
        """Format the record as a single tab-separated log line."""
        if self.is_measured:
            start = f"{self.start_time * MILLISECONDS_PER_SECOND:.3f}"
            stop = f"{self.end_time * MILLISECONDS_PER_SECOND:.3f}"
            total = str(self.total_bytes)
            rate = f"{self.rate_mbps:.3f}"
        else:
            start = stop = total = rate = str(UNMEASURED_FIELD)
        return (
            f"latency: {self.latency_label}\tloss_percentage: {self.loss_label}\t "
            f"start: {start}\t stop: {stop}\t bytes: {total}\t rate: {rate}"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert the record to a dictionary."""
        data = asdict(self)
        data["is_measured"] = self.is_measured
        return data


class ThroughputReporter:
    """Compute throughput records in megabits per second (10^6 bits, 10^3 milliseconds)."""

    def __init__(self, *, latency_label: str = "-", loss_label: str = "-") -> None:
        """Initialize the reporter with the labels attached to every record."""
        self._latency_label = latency_label
        self._loss_label = loss_label

    def report(
        self, *, stream_id: StreamId | None, start_time: Timestamp, end_time: Timestamp | None, total_bytes: int
    ) -> ThroughputRecord:
        """Compute elapsed time and rate for a completed transfer."""
        if end_time is None:
            return self.unmeasured(stream_id=stream_id, total_bytes=total_bytes, reason="transfer did not complete")

        elapsed_ms = (end_time - start_time) * MILLISECONDS_PER_SECOND
        if elapsed_ms <= 0:
            return self.unmeasured(stream_id=stream_id, total_bytes=total_bytes, reason="no measurable elapsed time")

        rate_mbps = self.compute_rate(total_bytes=total_bytes, elapsed_ms=elapsed_ms)
        return ThroughputRecord(
            stream_id=stream_id,
            total_bytes=total_bytes,
            start_time=start_time,
            end_time=end_time,
            elapsed_ms=elapsed_ms,
            rate_mbps=rate_mbps,
            latency_label=self._latency_label,
            loss_label=self._loss_label,
        )

    def unmeasured(
        self, *, stream_id: StreamId | None = None, total_bytes: int = 0, reason: str = ""
    ) -> ThroughputRecord:
        """Build a record that carries no rate."""
        if reason:
            logger.debug("Unmeasured transfer on stream %s: %s", stream_id, reason)
        return ThroughputRecord(
            stream_id=stream_id,
            total_bytes=total_bytes,
            latency_label=self._latency_label,
            loss_label=self._loss_label,
            reason=reason,
        )

    @staticmethod
    def compute_rate(*, total_bytes: int, elapsed_ms: float) -> float:
        """Convert a byte count over an elapsed time into megabits per second."""
        if elapsed_ms <= 0:
            raise ValueError(f"elapsed_ms must be positive, got {elapsed_ms}")
        bits = total_bytes * BITS_PER_BYTE
        return bits / BITS_PER_MEGABIT / (elapsed_ms / MILLISECONDS_PER_SECOND)
