"""Structured configuration objects for the benchmark client and server."""

from __future__ import annotations

import copy
import ssl
from dataclasses import dataclass, field, fields
from typing import Any, Self

from pyquicperf.constants import (
    AMPLIFICATION_FACTOR,
    DEFAULT_ALPN_PROTOCOLS,
    DEFAULT_BIND_HOST,
    DEFAULT_CERTFILE,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_CLIENT_VERIFY_MODE,
    DEFAULT_CLOSE_TIMEOUT,
    DEFAULT_CONGESTION_CONTROL_ALGORITHM,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_CONNECTION_IDLE_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_KEYFILE,
    DEFAULT_LOG_LEVEL,
    DEFAULT_MAX_DATAGRAM_SIZE,
    DEFAULT_MAX_STREAM_WRITE_BUFFER,
    DEFAULT_PORT,
    DEFAULT_REQUEST_BYTES,
    DEFAULT_SERVER_MAX_CONNECTIONS,
    DEFAULT_SERVER_VERIFY_MODE,
    DEFAULT_TRANSFER_TIMEOUT,
    MAX_BYTE_COUNT,
    SUPPORTED_CONGESTION_CONTROL_ALGORITHMS,
)
from pyquicperf.exceptions import ConfigurationError
from pyquicperf.types import ReliabilityMode

__all__: list[str] = ["ClientConfig", "ServerConfig"]

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(kw_only=True)
class _BaseConfig:
    """Settings shared by both benchmark roles."""

    alpn_protocols: list[str] = field(default_factory=lambda: list(DEFAULT_ALPN_PROTOCOLS))
    amplification_factor: int = AMPLIFICATION_FACTOR
    ca_certs: str | None = None
    certfile: str | None = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    close_timeout: float = DEFAULT_CLOSE_TIMEOUT
    congestion_control_algorithm: str = DEFAULT_CONGESTION_CONTROL_ALGORITHM
    connection_idle_timeout: float = DEFAULT_CONNECTION_IDLE_TIMEOUT
    keyfile: str | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    max_datagram_size: int = DEFAULT_MAX_DATAGRAM_SIZE
    max_stream_write_buffer: int = DEFAULT_MAX_STREAM_WRITE_BUFFER
    reliability_mode: ReliabilityMode = ReliabilityMode.RELIABLE
    verify_mode: ssl.VerifyMode | None = None

    def __post_init__(self) -> None:
        """Normalize values and validate the configuration."""
        if isinstance(self.verify_mode, str):
            self.verify_mode = _parse_verify_mode(value=self.verify_mode)
        if isinstance(self.reliability_mode, str) and not isinstance(self.reliability_mode, ReliabilityMode):
            try:
                self.reliability_mode = ReliabilityMode(self.reliability_mode)
            except ValueError as e:
                raise ConfigurationError(
                    f"reliability_mode must be one of {[m.value for m in ReliabilityMode]}",
                    config_key="reliability_mode",
                ) from e
        self.log_level = str(self.log_level).upper()
        self.validate()

    @classmethod
    def from_dict(cls, *, config_dict: dict[str, Any]) -> Self:
        """Create a configuration from a dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        filtered = {key: value for key, value in config_dict.items() if key in known}
        for port_key in ("port", "bind_port"):
            if port_key in filtered:
                filtered[port_key] = _coerce_port(value=filtered[port_key])
        return cls(**filtered)

    def copy(self) -> Self:
        """Create a deep copy of the configuration."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Convert the configuration to a dictionary."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            match value:
                case ssl.VerifyMode():
                    data[f.name] = value.name
                case ReliabilityMode():
                    data[f.name] = value.value
                case list():
                    data[f.name] = list(value)
                case _:
                    data[f.name] = value
        return data

    def update(self, **kwargs: Any) -> Self:
        """Return a new configuration with updated values."""
        known = {f.name for f in fields(self)}
        for key in kwargs:
            if key not in known:
                raise ConfigurationError(f"Unknown configuration key: '{key}'", config_key=key)

        new_config = self.copy()
        for key, value in kwargs.items():
            setattr(new_config, key, value)
        new_config.__post_init__()
        return new_config

    def validate(self) -> None:
        """Validate the shared configuration values."""
        if not self.alpn_protocols:
            raise ConfigurationError("alpn_protocols cannot be empty", config_key="alpn_protocols")
        if bool(self.certfile) != bool(self.keyfile):
            raise ConfigurationError("certfile and keyfile must be provided together", config_key="certfile")
        if self.congestion_control_algorithm not in SUPPORTED_CONGESTION_CONTROL_ALGORITHMS:
            raise ConfigurationError(
                f"congestion_control_algorithm must be one of {SUPPORTED_CONGESTION_CONTROL_ALGORITHMS}",
                config_key="congestion_control_algorithm",
            )
        if self.log_level not in _LOG_LEVELS:
            raise ConfigurationError(f"log_level must be one of {_LOG_LEVELS}", config_key="log_level")

        _validate_timeout(name="close_timeout", value=self.close_timeout)
        _validate_timeout(name="connection_idle_timeout", value=self.connection_idle_timeout)
        _validate_positive_int(name="amplification_factor", value=self.amplification_factor)
        _validate_positive_int(name="chunk_size", value=self.chunk_size)
        _validate_positive_int(name="max_stream_write_buffer", value=self.max_stream_write_buffer)

        if not (1 <= self.max_datagram_size <= 65535):
            raise ConfigurationError("max_datagram_size must be between 1 and 65535", config_key="max_datagram_size")


@dataclass(kw_only=True)
class ClientConfig(_BaseConfig):
    """Configuration for the benchmark client."""

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    host: str = DEFAULT_HOST
    latency_label: str = "-"
    loss_label: str = "-"
    port: int = DEFAULT_PORT
    request_bytes: int = DEFAULT_REQUEST_BYTES
    transfer_timeout: float | None = DEFAULT_TRANSFER_TIMEOUT
    verify_mode: ssl.VerifyMode | None = DEFAULT_CLIENT_VERIFY_MODE

    @property
    def expected_reply_bytes(self) -> int:
        """Get the number of reply bytes the server will send."""
        return self.request_bytes * self.amplification_factor

    def validate(self) -> None:
        """Validate the client configuration values."""
        super().validate()
        if not self.host:
            raise ConfigurationError("host cannot be empty", config_key="host")
        _validate_port(name="port", value=self.port)
        _validate_timeout(name="connect_timeout", value=self.connect_timeout)
        if self.transfer_timeout is not None:
            _validate_timeout(name="transfer_timeout", value=self.transfer_timeout)
        if not isinstance(self.request_bytes, int) or self.request_bytes < 0:
            raise ConfigurationError("request_bytes must be non-negative", config_key="request_bytes")
        if self.expected_reply_bytes > MAX_BYTE_COUNT:
            raise ConfigurationError(
                f"request_bytes * amplification_factor must not exceed {MAX_BYTE_COUNT}", config_key="request_bytes"
            )


@dataclass(kw_only=True)
class ServerConfig(_BaseConfig):
    """Configuration for the benchmark server."""

    bind_host: str = DEFAULT_BIND_HOST
    bind_port: int = DEFAULT_PORT
    certfile: str | None = DEFAULT_CERTFILE
    keyfile: str | None = DEFAULT_KEYFILE
    max_connections: int = DEFAULT_SERVER_MAX_CONNECTIONS
    verify_mode: ssl.VerifyMode | None = DEFAULT_SERVER_VERIFY_MODE

    def validate(self) -> None:
        """Validate the server configuration values."""
        super().validate()
        if not self.bind_host:
            raise ConfigurationError("bind_host cannot be empty", config_key="bind_host")
        if not self.certfile or not self.keyfile:
            raise ConfigurationError("Server requires both certfile and keyfile", config_key="certfile")
        _validate_port(name="bind_port", value=self.bind_port)
        _validate_positive_int(name="max_connections", value=self.max_connections)


def _coerce_port(*, value: Any) -> int:
    """Coerce a port value into an integer."""
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Port must be an integer, got {value!r}", config_key="port") from e


def _parse_verify_mode(*, value: str) -> ssl.VerifyMode:
    """Parse an SSL verify mode from its name."""
    try:
        return ssl.VerifyMode[value.upper()]
    except KeyError as e:
        raise ConfigurationError(f"unknown SSL verify mode: {value}", config_key="verify_mode") from e


def _validate_port(*, name: str, value: Any) -> None:
    """Validate a UDP port number."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigurationError(f"Port must be an integer, got {value!r}", config_key=name)
    if not (0 <= value <= 65535):
        raise ConfigurationError(f"Port must be between 0 and 65535, got {value}", config_key=name)


def _validate_positive_int(*, name: str, value: Any) -> None:
    """Validate that a value is a positive integer."""
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigurationError(f"{name} must be positive", config_key=name)


def _validate_timeout(*, name: str, value: Any) -> None:
    """Validate a timeout value in seconds."""
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ConfigurationError(f"Timeout must be a number, got {value!r}", config_key=name)
    if value <= 0:
        raise ConfigurationError(f"Timeout must be positive, got {value}", config_key=name)
