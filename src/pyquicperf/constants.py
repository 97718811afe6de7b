"""Protocol-level constants and default configuration values."""

from __future__ import annotations

import ssl
from enum import IntEnum
from typing import Any, Final

__all__: list[str] = [
    "AMPLIFICATION_FACTOR",
    "BITS_PER_BYTE",
    "BITS_PER_MEGABIT",
    "DEFAULT_ALPN_PROTOCOLS",
    "DEFAULT_BIND_HOST",
    "DEFAULT_CERTFILE",
    "DEFAULT_CHUNK_SIZE",
    "DEFAULT_CLIENT_VERIFY_MODE",
    "DEFAULT_CLOSE_TIMEOUT",
    "DEFAULT_CONGESTION_CONTROL_ALGORITHM",
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_CONNECTION_IDLE_TIMEOUT",
    "DEFAULT_HOST",
    "DEFAULT_KEYFILE",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MAX_DATAGRAM_SIZE",
    "DEFAULT_MAX_EVENT_QUEUE_SIZE",
    "DEFAULT_MAX_STREAM_WRITE_BUFFER",
    "DEFAULT_PORT",
    "DEFAULT_REQUEST_BYTES",
    "DEFAULT_SERVER_MAX_CONNECTIONS",
    "DEFAULT_SERVER_VERIFY_MODE",
    "DEFAULT_TRANSFER_TIMEOUT",
    "DEFAULT_UDP_READ_BUFFER_SIZE",
    "MILLISECONDS_PER_SECOND",
    "MAX_BYTE_COUNT",
    "MAX_REQUEST_BUFFER_SIZE",
    "MAX_REQUEST_DIGITS",
    "MAX_STREAM_ID",
    "SUPPORTED_CONGESTION_CONTROL_ALGORITHMS",
    "UNMEASURED_FIELD",
    "ErrorCodes",
    "get_default_client_config",
    "get_default_server_config",
]

AMPLIFICATION_FACTOR: Final[int] = 10
BITS_PER_BYTE: Final[int] = 8
BITS_PER_MEGABIT: Final[int] = 1_000_000
DEFAULT_ALPN_PROTOCOLS: Final[tuple[str, ...]] = ("perf",)
DEFAULT_CONGESTION_CONTROL_ALGORITHM: Final[str] = "cubic"
DEFAULT_LOG_LEVEL: Final[str] = "INFO"
MAX_BYTE_COUNT: Final[int] = 2**64 - 1
MAX_REQUEST_DIGITS: Final[int] = len(str(MAX_BYTE_COUNT))
MAX_REQUEST_BUFFER_SIZE: Final[int] = 256
MAX_STREAM_ID: Final[int] = 2**62 - 1
MILLISECONDS_PER_SECOND: Final[int] = 1000
SUPPORTED_CONGESTION_CONTROL_ALGORITHMS: Final[tuple[str, ...]] = ("reno", "cubic")
UNMEASURED_FIELD: Final[int] = -1

DEFAULT_BIND_HOST: Final[str] = "::1"
DEFAULT_CERTFILE: Final[str | None] = None
DEFAULT_CLIENT_VERIFY_MODE: Final[ssl.VerifyMode] = ssl.CERT_REQUIRED
DEFAULT_CLOSE_TIMEOUT: Final[float] = 5.0
DEFAULT_CONNECT_TIMEOUT: Final[float] = 30.0
DEFAULT_CONNECTION_IDLE_TIMEOUT: Final[float] = 60.0
DEFAULT_HOST: Final[str] = "::1"
DEFAULT_KEYFILE: Final[str | None] = None
DEFAULT_MAX_DATAGRAM_SIZE: Final[int] = 1200
DEFAULT_MAX_EVENT_QUEUE_SIZE: Final[int] = 65536
DEFAULT_MAX_STREAM_WRITE_BUFFER: Final[int] = 1024 * 1024
DEFAULT_PORT: Final[int] = 6668
DEFAULT_REQUEST_BYTES: Final[int] = 1024 * 1024
DEFAULT_SERVER_MAX_CONNECTIONS: Final[int] = 3000
DEFAULT_SERVER_VERIFY_MODE: Final[ssl.VerifyMode] = ssl.CERT_NONE
DEFAULT_TRANSFER_TIMEOUT: Final[float] = 300.0
DEFAULT_UDP_READ_BUFFER_SIZE: Final[int] = 1500
DEFAULT_CHUNK_SIZE: Final[int] = 4 * DEFAULT_UDP_READ_BUFFER_SIZE


class ErrorCodes(IntEnum):
    """QUIC transport and application-level error codes."""

    NO_ERROR = 0x0
    INTERNAL_ERROR = 0x1
    CONNECTION_REFUSED = 0x2
    FLOW_CONTROL_ERROR = 0x3
    STREAM_LIMIT_ERROR = 0x4
    STREAM_STATE_ERROR = 0x5
    FINAL_SIZE_ERROR = 0x6
    FRAME_ENCODING_ERROR = 0x7
    TRANSPORT_PARAMETER_ERROR = 0x8
    CONNECTION_ID_LIMIT_ERROR = 0x9
    PROTOCOL_VIOLATION = 0xA
    INVALID_TOKEN = 0xB
    APPLICATION_ERROR = 0xC
    CRYPTO_BUFFER_EXCEEDED = 0xD
    KEY_UPDATE_ERROR = 0xE
    AEAD_LIMIT_REACHED = 0xF
    NO_VIABLE_PATH = 0x10

    APP_CONNECTION_TIMEOUT = 0x1000
    APP_INVALID_REQUEST = 0x1004
    APP_SERVICE_UNAVAILABLE = 0x1005
    APP_MALFORMED_REQUEST = 0x1010
    APP_BYTE_COUNT_OVERFLOW = 0x1011
    APP_WRITE_FAILED = 0x1012
    APP_WRITE_ALREADY_ACTIVE = 0x1013
    APP_PROTOCOL_ANOMALY = 0x1014
    APP_TRANSFER_INCOMPLETE = 0x1015


_DEFAULT_CLIENT_CONFIG: Final[dict[str, Any]] = {
    "alpn_protocols": list(DEFAULT_ALPN_PROTOCOLS),
    "amplification_factor": AMPLIFICATION_FACTOR,
    "ca_certs": None,
    "certfile": None,
    "chunk_size": DEFAULT_CHUNK_SIZE,
    "close_timeout": DEFAULT_CLOSE_TIMEOUT,
    "congestion_control_algorithm": DEFAULT_CONGESTION_CONTROL_ALGORITHM,
    "connect_timeout": DEFAULT_CONNECT_TIMEOUT,
    "connection_idle_timeout": DEFAULT_CONNECTION_IDLE_TIMEOUT,
    "host": DEFAULT_HOST,
    "keyfile": None,
    "latency_label": "-",
    "log_level": DEFAULT_LOG_LEVEL,
    "loss_label": "-",
    "max_datagram_size": DEFAULT_MAX_DATAGRAM_SIZE,
    "max_stream_write_buffer": DEFAULT_MAX_STREAM_WRITE_BUFFER,
    "port": DEFAULT_PORT,
    "reliability_mode": "reliable",
    "request_bytes": DEFAULT_REQUEST_BYTES,
    "transfer_timeout": DEFAULT_TRANSFER_TIMEOUT,
    "verify_mode": DEFAULT_CLIENT_VERIFY_MODE,
}

_DEFAULT_SERVER_CONFIG: Final[dict[str, Any]] = {
    "alpn_protocols": list(DEFAULT_ALPN_PROTOCOLS),
    "amplification_factor": AMPLIFICATION_FACTOR,
    "bind_host": DEFAULT_BIND_HOST,
    "bind_port": DEFAULT_PORT,
    "ca_certs": None,
    "certfile": DEFAULT_CERTFILE,
    "chunk_size": DEFAULT_CHUNK_SIZE,
    "close_timeout": DEFAULT_CLOSE_TIMEOUT,
    "congestion_control_algorithm": DEFAULT_CONGESTION_CONTROL_ALGORITHM,
    "connection_idle_timeout": DEFAULT_CONNECTION_IDLE_TIMEOUT,
    "keyfile": DEFAULT_KEYFILE,
    "log_level": DEFAULT_LOG_LEVEL,
    "max_connections": DEFAULT_SERVER_MAX_CONNECTIONS,
    "max_datagram_size": DEFAULT_MAX_DATAGRAM_SIZE,
    "max_stream_write_buffer": DEFAULT_MAX_STREAM_WRITE_BUFFER,
    "reliability_mode": "reliable",
    "verify_mode": DEFAULT_SERVER_VERIFY_MODE,
}


def get_default_client_config() -> dict[str, Any]:
    """Return a copy of the default client configuration."""
    config = _DEFAULT_CLIENT_CONFIG.copy()
    config["alpn_protocols"] = list(DEFAULT_ALPN_PROTOCOLS)
    return config


def get_default_server_config() -> dict[str, Any]:
    """Return a copy of the default server configuration."""
    config = _DEFAULT_SERVER_CONFIG.copy()
    config["alpn_protocols"] = list(DEFAULT_ALPN_PROTOCOLS)
    return config
