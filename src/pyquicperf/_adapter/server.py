"""Internal aioquic protocol adapter and factory for the server-side."""

from __future__ import annotations

from asyncio import BaseTransport
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from aioquic.asyncio.server import QuicServer
from aioquic.asyncio.server import serve as quic_serve

from pyquicperf._adapter.base import PerfCommonProtocol
from pyquicperf.config import ServerConfig
from pyquicperf.exceptions import ServerError
from pyquicperf.utils import create_quic_configuration, get_logger

if TYPE_CHECKING:
    from pyquicperf.connection.connection import PerfConnection

    ConnectionCreator = Callable[["PerfServerProtocol", BaseTransport], PerfConnection | None]

__all__: list[str] = ["PerfServerProtocol", "create_server"]

logger = get_logger(name=__name__)


class PerfServerProtocol(PerfCommonProtocol):
    """Adapt aioquic server events and actions for a server session processor."""

    _server_config: ServerConfig
    _connection_creator: ConnectionCreator

    def __init__(
        self, *args: Any, server_config: ServerConfig, connection_creator: ConnectionCreator, **kwargs: Any
    ) -> None:
        """Initialize the server protocol adapter."""
        super().__init__(*args, max_stream_write_buffer=server_config.max_stream_write_buffer, **kwargs)
        self._server_config = server_config
        self._connection_creator = connection_creator

    def connection_made(self, transport: BaseTransport) -> None:
        """Handle a new peer connection and hand it to the connection creator."""
        super().connection_made(transport)
        logger.debug("Adapter connection_made, calling connection creator.")
        self._connection_creator(self, transport)


async def create_server(
    *, host: str, port: int, config: ServerConfig, connection_creator: ConnectionCreator
) -> QuicServer:
    """Start an aioquic server with the given configuration."""
    certfile_path_str = config.certfile
    keyfile_path_str = config.keyfile
    if not certfile_path_str or not keyfile_path_str:
        raise ServerError("Certificate or key file not configured", bind_address=(host, port))

    certfile_path = Path(certfile_path_str)
    keyfile_path = Path(keyfile_path_str)
    if not certfile_path.exists():
        raise FileNotFoundError(f"Certificate file not found: {certfile_path}")
    if not keyfile_path.exists():
        raise FileNotFoundError(f"Key file not found: {keyfile_path}")
    if config.ca_certs and not Path(config.ca_certs).exists():
        raise FileNotFoundError(f"CA certs file not found: {config.ca_certs}")

    quic_config = create_quic_configuration(
        alpn_protocols=config.alpn_protocols,
        congestion_control_algorithm=config.congestion_control_algorithm,
        idle_timeout=config.connection_idle_timeout,
        is_client=False,
        max_datagram_size=config.max_datagram_size,
        ca_certs=config.ca_certs,
        certfile=str(certfile_path),
        keyfile=str(keyfile_path),
        verify_mode=config.verify_mode,
    )

    def protocol_factory(*args: Any, **kwargs: Any) -> PerfServerProtocol:
        return PerfServerProtocol(*args, server_config=config, connection_creator=connection_creator, **kwargs)

    return await quic_serve(host=host, port=port, configuration=quic_config, create_protocol=protocol_factory)
