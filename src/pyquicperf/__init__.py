"""A QUIC bulk-transfer throughput benchmark built on aioquic."""

from .client import PerfClient
from .config import ClientConfig, ServerConfig
from .constants import ErrorCodes
from .exceptions import (
    AlreadyActiveError,
    ByteCountOverflowError,
    ConfigurationError,
    ConnectionError,
    MalformedRequestError,
    PerfError,
    ProtocolAnomalyError,
    ServerError,
    StreamError,
    TimeoutError,
    TransportError,
    WriteFailedError,
)
from .report import ThroughputRecord, ThroughputReporter
from .server import PerfServer
from .types import ReliabilityMode, RunState
from .version import __version__

__all__: list[str] = [
    "AlreadyActiveError",
    "ByteCountOverflowError",
    "ClientConfig",
    "ConfigurationError",
    "ConnectionError",
    "ErrorCodes",
    "MalformedRequestError",
    "PerfClient",
    "PerfError",
    "PerfServer",
    "ProtocolAnomalyError",
    "ReliabilityMode",
    "RunState",
    "ServerConfig",
    "ServerError",
    "StreamError",
    "ThroughputRecord",
    "ThroughputReporter",
    "TimeoutError",
    "TransportError",
    "WriteFailedError",
    "__version__",
]
