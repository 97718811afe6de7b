"""Command-line entry point for running the benchmark client or server."""

from __future__ import annotations

import argparse
import asyncio
import ssl
import sys
from collections.abc import Sequence
from typing import Any

from pyquicperf.client import PerfClient
from pyquicperf.config import ClientConfig, ServerConfig
from pyquicperf.constants import AMPLIFICATION_FACTOR, DEFAULT_CHUNK_SIZE, DEFAULT_HOST, DEFAULT_PORT
from pyquicperf.exceptions import ConfigurationError, ServerError
from pyquicperf.server import PerfServer
from pyquicperf.types import ReliabilityMode
from pyquicperf.utils import generate_self_signed_cert, get_logger, setup_logging
from pyquicperf.version import __version__

__all__: list[str] = ["build_parser", "main"]

EXIT_MEASURED = 0
EXIT_UNMEASURED = 1
EXIT_CONFIG_ERROR = 2

logger = get_logger(name=__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the benchmark CLI."""
    parser = argparse.ArgumentParser(
        prog="pyquicperf", description="Measure QUIC bulk-transfer throughput between a client and a server."
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--mode", choices=("client", "server"), default="server", help="Mode to run in")
    parser.add_argument("--host", default=DEFAULT_HOST, help="Server hostname/IP")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Server port")
    parser.add_argument("--pr", action="store_true", help="Request partially reliable streams")
    parser.add_argument("--bytes", dest="request_bytes", type=int, default=None, help="Bytes to request")
    parser.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, help="Maximum bytes per write")
    parser.add_argument(
        "--factor", type=int, default=AMPLIFICATION_FACTOR, help="Reply bytes sent per requested byte"
    )
    parser.add_argument("--certfile", default=None, help="TLS certificate file")
    parser.add_argument("--keyfile", default=None, help="TLS private key file")
    parser.add_argument("--ca-certs", default=None, help="CA bundle used to verify the server")
    parser.add_argument("--insecure", action="store_true", help="Skip server certificate verification")
    parser.add_argument(
        "--generate-cert", metavar="DIR", default=None, help="Generate a self-signed certificate for the server in DIR"
    )
    parser.add_argument(
        "--log-level", default="INFO", choices=("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"), type=str.upper
    )
    parser.add_argument("latency", nargs="?", default="-", help="Latency label echoed in the result line")
    parser.add_argument("loss", nargs="?", default="-", help="Loss-percentage label echoed in the result line")
    parser.add_argument("bytes", nargs="?", default=None, help="Bytes to request (overrides --bytes)")
    return parser


def build_client_config(*, args: argparse.Namespace) -> ClientConfig:
    """Build the client configuration from parsed arguments."""
    options: dict[str, Any] = {
        "amplification_factor": args.factor,
        "ca_certs": args.ca_certs,
        "certfile": args.certfile,
        "chunk_size": args.chunk_size,
        "host": args.host,
        "keyfile": args.keyfile,
        "latency_label": args.latency,
        "log_level": args.log_level,
        "loss_label": args.loss,
        "port": args.port,
        "reliability_mode": ReliabilityMode.PARTIAL if args.pr else ReliabilityMode.RELIABLE,
    }
    request_bytes = args.bytes if args.bytes is not None else args.request_bytes
    if request_bytes is not None:
        try:
            options["request_bytes"] = int(request_bytes)
        except ValueError as e:
            raise ConfigurationError(f"bytes must be an integer, got {request_bytes!r}", config_key="bytes") from e
    if args.insecure:
        options["verify_mode"] = ssl.CERT_NONE
    return ClientConfig.from_dict(config_dict=options)


def build_server_config(*, args: argparse.Namespace) -> ServerConfig:
    """Build the server configuration from parsed arguments."""
    certfile, keyfile = args.certfile, args.keyfile
    if args.generate_cert is not None:
        certfile, keyfile = generate_self_signed_cert(hostname="localhost", output_dir=args.generate_cert)
        logger.info("Generated self-signed certificate %s", certfile)

    return ServerConfig.from_dict(
        config_dict={
            "amplification_factor": args.factor,
            "bind_host": args.host,
            "bind_port": args.port,
            "ca_certs": args.ca_certs,
            "certfile": certfile,
            "chunk_size": args.chunk_size,
            "keyfile": keyfile,
            "log_level": args.log_level,
            "reliability_mode": ReliabilityMode.PARTIAL if args.pr else ReliabilityMode.RELIABLE,
        }
    )


async def run_client(*, config: ClientConfig) -> int:
    """Run one benchmark transfer and map its outcome to an exit code."""
    client = PerfClient(config=config)
    record = await client.run()
    return EXIT_MEASURED if record.is_measured else EXIT_UNMEASURED


async def run_server(*, config: ServerConfig) -> int:
    """Serve benchmark requests until interrupted."""
    async with PerfServer(config=config) as server:
        await server.listen()
        try:
            await server.serve_forever()
        finally:
            logger.info("%s", server)
    return EXIT_MEASURED


def main(argv: Sequence[str] | None = None) -> int:
    """Parse arguments and run the selected mode."""
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level)

    try:
        if args.mode == "client":
            return asyncio.run(run_client(config=build_client_config(args=args)))
        return asyncio.run(run_server(config=build_server_config(args=args)))
    except ConfigurationError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR
    except ServerError as e:
        logger.error("Server failed: %s", e)
        return EXIT_UNMEASURED
    except KeyboardInterrupt:
        logger.info("Interrupted.")
        return EXIT_MEASURED


if __name__ == "__main__":
    sys.exit(main())
