"""Lifecycle management for concurrent server connections."""

from .connection import ConnectionManager

__all__: list[str] = ["ConnectionManager"]
