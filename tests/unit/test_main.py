"""Unit tests for the pyquicperf.__main__ module."""

import ssl
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, cast
from unittest.mock import MagicMock

import pytest
from pytest_mock import MockerFixture

from pyquicperf import ConfigurationError, ServerError
from pyquicperf.__main__ import build_client_config, build_parser, build_server_config, main
from pyquicperf.report import ThroughputRecord
from pyquicperf.types import ReliabilityMode


@pytest.fixture(autouse=True)
def mock_setup_logging(mocker: MockerFixture) -> MagicMock:
    return cast(MagicMock, mocker.patch("pyquicperf.__main__.setup_logging"))


class TestBuildParser:

    def test_defaults(self) -> None:
        args = build_parser().parse_args([])

        assert args.mode == "server"
        assert args.host == "::1"
        assert args.port == 6668
        assert args.latency == "-"
        assert args.loss == "-"
        assert args.bytes is None
        assert args.log_level == "INFO"

    def test_positionals(self) -> None:
        args = build_parser().parse_args(["--mode", "client", "20ms", "1", "5000"])

        assert args.latency == "20ms"
        assert args.loss == "1"
        assert args.bytes == "5000"

    def test_log_level_is_case_insensitive(self) -> None:
        assert build_parser().parse_args(["--log-level", "debug"]).log_level == "DEBUG"

    def test_version(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.startswith("pyquicperf ")


class TestBuildClientConfig:

    def test_positional_bytes_override_option(self) -> None:
        args = build_parser().parse_args(["--mode", "client", "--bytes", "10", "5ms", "0", "25"])

        config = build_client_config(args=args)

        assert config.request_bytes == 25
        assert config.latency_label == "5ms"
        assert config.loss_label == "0"

    def test_options(self) -> None:
        args = build_parser().parse_args(
            ["--mode", "client", "--host", "localhost", "--port", "4433", "--bytes", "10", "--factor", "3", "--pr"]
        )

        config = build_client_config(args=args)

        assert config.host == "localhost"
        assert config.port == 4433
        assert config.request_bytes == 10
        assert config.expected_reply_bytes == 30
        assert config.reliability_mode is ReliabilityMode.PARTIAL
        assert config.verify_mode == ssl.CERT_REQUIRED

    def test_insecure(self) -> None:
        args = build_parser().parse_args(["--mode", "client", "--insecure"])

        assert build_client_config(args=args).verify_mode == ssl.CERT_NONE

    def test_non_integer_bytes(self) -> None:
        args = build_parser().parse_args(["--mode", "client", "-", "-", "lots"])

        with pytest.raises(ConfigurationError, match="bytes must be an integer") as exc_info:
            build_client_config(args=args)

        assert exc_info.value.config_key == "bytes"


class TestBuildServerConfig:

    def test_certificates(self) -> None:
        args = build_parser().parse_args(["--certfile", "cert.pem", "--keyfile", "key.pem", "--port", "9000"])

        config = build_server_config(args=args)

        assert config.certfile == "cert.pem"
        assert config.keyfile == "key.pem"
        assert config.bind_port == 9000

    def test_generate_cert(self, mocker: MockerFixture, tmp_path: Path) -> None:
        mock_generate = mocker.patch(
            "pyquicperf.__main__.generate_self_signed_cert", return_value=("gen.crt", "gen.key")
        )
        args = build_parser().parse_args(["--generate-cert", str(tmp_path)])

        config = build_server_config(args=args)

        mock_generate.assert_called_once_with(hostname="localhost", output_dir=str(tmp_path))
        assert config.certfile == "gen.crt"
        assert config.keyfile == "gen.key"

    def test_missing_certificates(self) -> None:
        with pytest.raises(ConfigurationError):
            build_server_config(args=build_parser().parse_args([]))


class TestMain:

    @pytest.fixture
    def mock_client_cls(self, mocker: MockerFixture) -> MagicMock:
        mock_cls = mocker.patch("pyquicperf.__main__.PerfClient")
        mock_cls.return_value.run = mocker.AsyncMock()
        return cast(MagicMock, mock_cls)

    @pytest.fixture
    def mock_server_cls(self, mocker: MockerFixture) -> MagicMock:
        mock_cls = mocker.patch("pyquicperf.__main__.PerfServer")
        server = mock_cls.return_value
        server.__aenter__.return_value = server
        server.listen = mocker.AsyncMock()
        server.serve_forever = mocker.AsyncMock()
        return cast(MagicMock, mock_cls)

    def test_client_measured(self, mock_client_cls: MagicMock, mock_setup_logging: MagicMock) -> None:
        mock_client_cls.return_value.run.return_value = ThroughputRecord(stream_id=0, total_bytes=10, rate_mbps=1.0)

        assert main(["--mode", "client", "--log-level", "warning"]) == 0
        mock_setup_logging.assert_called_once_with(level="WARNING")
        mock_client_cls.return_value.run.assert_awaited_once()

    def test_client_unmeasured(self, mock_client_cls: MagicMock) -> None:
        mock_client_cls.return_value.run.return_value = ThroughputRecord(stream_id=None, total_bytes=0)

        assert main(["--mode", "client"]) == 1

    def test_configuration_error(self, mock_client_cls: MagicMock) -> None:
        assert main(["--mode", "client", "--chunk-size", "0"]) == 2
        mock_client_cls.assert_not_called()

    def test_server(self, mock_server_cls: MagicMock) -> None:
        server = mock_server_cls.return_value

        assert main(["--certfile", "cert.pem", "--keyfile", "key.pem"]) == 0
        server.listen.assert_awaited_once_with()
        server.serve_forever.assert_awaited_once_with()

    def test_server_error(self, mock_server_cls: MagicMock) -> None:
        server = mock_server_cls.return_value
        server.listen.side_effect = ServerError("Failed to start server: Address already in use")

        assert main(["--certfile", "cert.pem", "--keyfile", "key.pem"]) == 1

    def test_keyboard_interrupt(self, mocker: MockerFixture, mock_server_cls: MagicMock) -> None:
        def interrupt(coro: Coroutine[Any, Any, int]) -> int:
            coro.close()
            raise KeyboardInterrupt

        mocker.patch("pyquicperf.__main__.asyncio.run", side_effect=interrupt)

        assert main(["--certfile", "cert.pem", "--keyfile", "key.pem"]) == 0
