"""Abstractions for the underlying QUIC connection."""

from .connection import ConnectionDiagnostics, PerfConnection

__all__: list[str] = ["ConnectionDiagnostics", "PerfConnection"]
