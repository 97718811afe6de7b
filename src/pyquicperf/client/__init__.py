"""Benchmark client measuring request/reply throughput."""

from .client import ClientStats, PerfClient

__all__: list[str] = ["ClientStats", "PerfClient"]
