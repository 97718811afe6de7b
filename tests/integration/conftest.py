"""
Configuration and fixtures for pyquicperf integration tests.
"""

import socket
import ssl
from collections.abc import AsyncGenerator
from pathlib import Path
from typing import cast

import pytest
import pytest_asyncio

from pyquicperf import ClientConfig, PerfServer, ServerConfig
from pyquicperf.utils import generate_self_signed_cert

LOOPBACK_HOST = "127.0.0.1"


def find_free_port() -> int:
    """Find and return an available UDP port."""
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind((LOOPBACK_HOST, 0))
        return cast(int, s.getsockname()[1])


@pytest.fixture(scope="session")
def certificates_dir(tmp_path_factory: pytest.TempPathFactory) -> Path:
    """Generate self-signed certificates in a temporary directory for the session."""
    cert_dir = tmp_path_factory.mktemp("certs")
    generate_self_signed_cert(hostname="localhost", output_dir=str(cert_dir))
    return cert_dir


@pytest.fixture
def free_port() -> int:
    """Provide a UDP port with nothing bound to it."""
    return find_free_port()


@pytest.fixture
def server_config(request: pytest.FixtureRequest, certificates_dir: Path) -> ServerConfig:
    """Provide a ServerConfig with the test certificates, supporting indirect overrides."""
    config = ServerConfig(
        certfile=str(certificates_dir / "localhost.crt"),
        keyfile=str(certificates_dir / "localhost.key"),
        max_connections=10,
        connection_idle_timeout=5.0,
        close_timeout=1.0,
    )
    config_overrides = getattr(request, "param", {})
    if config_overrides and isinstance(config_overrides, dict):
        return config.update(**config_overrides)
    return config


@pytest.fixture
def client_config() -> ClientConfig:
    """Provide a ClientConfig that skips verification of the self-signed certificate."""
    return ClientConfig(
        host=LOOPBACK_HOST,
        verify_mode=ssl.CERT_NONE,
        connect_timeout=5.0,
        transfer_timeout=10.0,
        close_timeout=1.0,
    )


@pytest_asyncio.fixture
async def server(server_config: ServerConfig, free_port: int) -> AsyncGenerator[tuple[PerfServer, int], None]:
    """Start a benchmark server on a free loopback port for a test."""
    async with PerfServer(config=server_config) as perf_server:
        await perf_server.listen(host=LOOPBACK_HOST, port=free_port)
        yield perf_server, free_port
