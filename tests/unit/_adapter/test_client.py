"""Unit tests for the pyquicperf._adapter.client module."""

import asyncio
import socket
import ssl
from typing import Any, cast
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from pyquicperf import ClientConfig, ConnectionError
from pyquicperf._adapter.client import PerfClientProtocol, create_connection

_REMOTE_ADDR = ("::1", 6668, 0, 0)


@pytest.mark.asyncio
class TestCreateConnection:

    @pytest.fixture
    def client_config(self) -> ClientConfig:
        return ClientConfig()

    @pytest.fixture
    def mock_create_quic_config(self, mocker: MockerFixture) -> MagicMock:
        return cast(MagicMock, mocker.patch("pyquicperf._adapter.client.create_quic_configuration"))

    @pytest.fixture
    def mock_loop(self, mocker: MockerFixture) -> MagicMock:
        loop = mocker.Mock(spec=asyncio.AbstractEventLoop)
        loop.time.return_value = 1000.0
        loop.getaddrinfo = mocker.AsyncMock(
            return_value=[(socket.AF_INET6, socket.SOCK_DGRAM, socket.IPPROTO_UDP, "", _REMOTE_ADDR)]
        )

        async def side_effect(*args: Any, **kwargs: Any) -> tuple[MagicMock, PerfClientProtocol]:
            factory = kwargs.get("protocol_factory")
            if not factory and args:
                factory = args[0]
            if not factory:
                raise ValueError("protocol_factory not found in arguments")

            protocol = factory()
            transport = mocker.Mock(spec=asyncio.DatagramTransport)
            return transport, protocol

        loop.create_datagram_endpoint = mocker.AsyncMock(side_effect=side_effect)
        return cast(MagicMock, loop)

    @pytest.fixture
    def mock_perf_connection(self, mocker: MockerFixture) -> MagicMock:
        return cast(MagicMock, mocker.patch("pyquicperf._adapter.client.PerfConnection", autospec=True))

    @pytest.fixture
    def mock_quic_connection_class(self, mocker: MockerFixture) -> MagicMock:
        return cast(MagicMock, mocker.patch("pyquicperf._adapter.client.QuicConnection", autospec=True))

    @pytest.fixture
    def processor_factory(self, mocker: MockerFixture) -> MagicMock:
        return cast(MagicMock, mocker.Mock())

    async def test_create_connection_success(
        self,
        client_config: ClientConfig,
        mock_loop: MagicMock,
        mock_create_quic_config: MagicMock,
        mock_perf_connection: MagicMock,
        mock_quic_connection_class: MagicMock,
        processor_factory: MagicMock,
    ) -> None:
        mock_quic_instance = mock_quic_connection_class.return_value

        connection = await create_connection(
            host="localhost", port=6668, config=client_config, loop=mock_loop, processor_factory=processor_factory
        )

        mock_create_quic_config.assert_called_once_with(
            alpn_protocols=client_config.alpn_protocols,
            congestion_control_algorithm=client_config.congestion_control_algorithm,
            idle_timeout=client_config.connection_idle_timeout,
            is_client=True,
            max_datagram_size=client_config.max_datagram_size,
            ca_certs=None,
            certfile=None,
            keyfile=None,
            server_name="localhost",
            verify_mode=client_config.verify_mode,
        )
        mock_quic_connection_class.assert_called_once_with(configuration=mock_create_quic_config.return_value)
        mock_loop.getaddrinfo.assert_awaited_once_with("localhost", 6668, type=socket.SOCK_DGRAM)
        assert mock_loop.create_datagram_endpoint.call_args.kwargs["remote_addr"] == _REMOTE_ADDR
        assert mock_loop.create_datagram_endpoint.call_args.kwargs["family"] == socket.AF_INET6

        protocol = processor_factory.call_args.args[0]
        assert isinstance(protocol, PerfClientProtocol)
        assert protocol._max_stream_write_buffer == client_config.max_stream_write_buffer
        mock_perf_connection.assert_called_once_with(
            protocol=protocol,
            transport=mock_perf_connection.call_args.kwargs["transport"],
            processor=processor_factory.return_value,
            is_client=True,
            close_timeout=client_config.close_timeout,
        )
        connection_instance = mock_perf_connection.return_value
        connection_instance.initialize.assert_awaited_once()
        mock_quic_instance.connect.assert_called_once_with(addr=_REMOTE_ADDR, now=1000.0)
        assert connection == connection_instance

    async def test_create_connection_connects_before_engine_start(
        self,
        client_config: ClientConfig,
        mock_loop: MagicMock,
        mock_create_quic_config: MagicMock,
        mock_perf_connection: MagicMock,
        mock_quic_connection_class: MagicMock,
        processor_factory: MagicMock,
    ) -> None:
        calls: list[str] = []
        mock_quic_instance = mock_quic_connection_class.return_value
        mock_quic_instance.connect.side_effect = lambda **kwargs: calls.append("connect")
        mock_perf_connection.return_value.initialize.side_effect = lambda: calls.append("initialize")

        await create_connection(
            host="localhost", port=6668, config=client_config, loop=mock_loop, processor_factory=processor_factory
        )

        assert calls == ["connect", "initialize"]

    async def test_create_connection_with_ca_certs_and_verify_mode(
        self,
        client_config: ClientConfig,
        mock_loop: MagicMock,
        mock_create_quic_config: MagicMock,
        mock_perf_connection: MagicMock,
        mock_quic_connection_class: MagicMock,
        processor_factory: MagicMock,
    ) -> None:
        client_config.ca_certs = "/path/to/ca.pem"
        client_config.verify_mode = ssl.CERT_NONE

        await create_connection(
            host="localhost", port=6668, config=client_config, loop=mock_loop, processor_factory=processor_factory
        )

        assert mock_create_quic_config.call_args.kwargs["ca_certs"] == "/path/to/ca.pem"
        assert mock_create_quic_config.call_args.kwargs["verify_mode"] == ssl.CERT_NONE

    async def test_create_connection_with_client_cert(
        self,
        client_config: ClientConfig,
        mock_loop: MagicMock,
        mock_create_quic_config: MagicMock,
        mock_perf_connection: MagicMock,
        mock_quic_connection_class: MagicMock,
        processor_factory: MagicMock,
    ) -> None:
        client_config.certfile = "/path/to/cert.pem"
        client_config.keyfile = "/path/to/key.pem"

        await create_connection(
            host="localhost", port=6668, config=client_config, loop=mock_loop, processor_factory=processor_factory
        )

        assert mock_create_quic_config.call_args.kwargs["certfile"] == "/path/to/cert.pem"
        assert mock_create_quic_config.call_args.kwargs["keyfile"] == "/path/to/key.pem"

    async def test_resolution_failure(
        self,
        client_config: ClientConfig,
        mock_loop: MagicMock,
        mock_create_quic_config: MagicMock,
        mock_perf_connection: MagicMock,
        processor_factory: MagicMock,
    ) -> None:
        mock_loop.getaddrinfo.side_effect = socket.gaierror("Name or service not known")

        with pytest.raises(ConnectionError, match="Cannot resolve nowhere.invalid:6668") as exc_info:
            await create_connection(
                host="nowhere.invalid",
                port=6668,
                config=client_config,
                loop=mock_loop,
                processor_factory=processor_factory,
            )

        assert exc_info.value.remote_address == ("nowhere.invalid", 6668)
        mock_loop.create_datagram_endpoint.assert_not_awaited()
        mock_perf_connection.assert_not_called()

    async def test_resolution_empty(
        self,
        client_config: ClientConfig,
        mock_loop: MagicMock,
        mock_create_quic_config: MagicMock,
        processor_factory: MagicMock,
    ) -> None:
        mock_loop.getaddrinfo.return_value = []

        with pytest.raises(ConnectionError, match="No address found"):
            await create_connection(
                host="localhost", port=6668, config=client_config, loop=mock_loop, processor_factory=processor_factory
            )
