"""Internal aioquic protocol adapter and connection factory for the client-side."""

from __future__ import annotations

import asyncio
import socket
from collections.abc import Callable
from typing import TYPE_CHECKING

from aioquic.quic.configuration import QuicConfiguration
from aioquic.quic.connection import QuicConnection

from pyquicperf._adapter.base import PerfCommonProtocol
from pyquicperf.config import ClientConfig
from pyquicperf.connection.connection import PerfConnection
from pyquicperf.exceptions import ConnectionError
from pyquicperf.utils import create_quic_configuration, get_logger

if TYPE_CHECKING:
    from pyquicperf._protocol.client_processor import ClientSessionProcessor

    ProcessorFactory = Callable[[PerfCommonProtocol], ClientSessionProcessor]

__all__: list[str] = []

logger = get_logger(name=__name__)


class PerfClientProtocol(PerfCommonProtocol):
    """Adapt aioquic client events and actions for the client session processor."""

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        """Handle creation of the datagram endpoint."""
        super().connection_made(transport)
        logger.debug("Client datagram endpoint ready.")


async def create_connection(
    *,
    host: str,
    port: int,
    config: ClientConfig,
    loop: asyncio.AbstractEventLoop,
    processor_factory: ProcessorFactory,
) -> PerfConnection:
    """Establish the underlying QUIC connection and start its engine."""
    quic_config: QuicConfiguration = create_quic_configuration(
        alpn_protocols=config.alpn_protocols,
        congestion_control_algorithm=config.congestion_control_algorithm,
        idle_timeout=config.connection_idle_timeout,
        is_client=True,
        max_datagram_size=config.max_datagram_size,
        ca_certs=config.ca_certs,
        certfile=config.certfile,
        keyfile=config.keyfile,
        server_name=host,
        verify_mode=config.verify_mode,
    )

    try:
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_DGRAM)
    except OSError as e:
        raise ConnectionError(f"Cannot resolve {host}:{port}: {e}", remote_address=(host, port)) from e
    if not infos:
        raise ConnectionError(f"No address found for {host}:{port}", remote_address=(host, port))
    family, _, _, _, remote_addr = infos[0]

    quic_connection = QuicConnection(configuration=quic_config)

    def protocol_factory() -> PerfClientProtocol:
        return PerfClientProtocol(
            quic_connection, loop=loop, max_stream_write_buffer=config.max_stream_write_buffer
        )

    logger.debug("Creating datagram endpoint to %s:%d (%s)", host, port, remote_addr[0])
    transport, protocol = await loop.create_datagram_endpoint(
        protocol_factory, remote_addr=remote_addr, family=family
    )

    connection = PerfConnection(
        protocol=protocol,
        transport=transport,
        processor=processor_factory(protocol),
        is_client=True,
        close_timeout=config.close_timeout,
    )
    protocol._quic.connect(addr=remote_addr, now=loop.time())
    protocol.transmit()
    await connection.initialize()

    return connection
