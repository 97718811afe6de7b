"""Benchmark server accepting connections and answering byte-count requests."""

from .server import PerfServer, ServerDiagnostics, ServerStats

__all__: list[str] = ["PerfServer", "ServerDiagnostics", "ServerStats"]
