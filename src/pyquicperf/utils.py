"""Shared helpers for logging, timing, certificates, and QUIC setup."""

from __future__ import annotations

import datetime
import logging
import os
import secrets
import ssl
import time
from pathlib import Path
from types import TracebackType
from typing import Self

from aioquic.quic.configuration import QuicConfiguration
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

__all__: list[str] = [
    "Timer",
    "create_quic_configuration",
    "format_duration",
    "generate_connection_id",
    "generate_self_signed_cert",
    "get_logger",
    "get_timestamp",
    "setup_logging",
]

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def create_quic_configuration(
    *,
    alpn_protocols: list[str],
    congestion_control_algorithm: str,
    idle_timeout: float,
    is_client: bool,
    max_datagram_size: int,
    ca_certs: str | None = None,
    certfile: str | None = None,
    keyfile: str | None = None,
    server_name: str | None = None,
    verify_mode: ssl.VerifyMode | None = None,
) -> QuicConfiguration:
    """Create an aioquic configuration for a benchmark endpoint."""
    config = QuicConfiguration(
        alpn_protocols=list(alpn_protocols),
        congestion_control_algorithm=congestion_control_algorithm,
        idle_timeout=idle_timeout,
        is_client=is_client,
        max_datagram_size=max_datagram_size,
    )
    if server_name is not None:
        config.server_name = server_name
    if ca_certs:
        config.load_verify_locations(cafile=ca_certs)
    if certfile and keyfile:
        config.load_cert_chain(certfile=certfile, keyfile=keyfile)
    if verify_mode is not None:
        config.verify_mode = verify_mode
    return config


def format_duration(*, seconds: float) -> str:
    """Format a duration in seconds into a human-readable string."""
    if seconds < 1e-6:
        return f"{seconds * 1e9:.0f}ns"
    if seconds < 1e-3:
        return f"{seconds * 1e6:.1f}µs"
    if seconds < 1:
        return f"{seconds * 1e3:.1f}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, secs = divmod(seconds, 60)
    if minutes < 60:
        return f"{int(minutes)}m{secs:.1f}s"

    hours, minutes = divmod(minutes, 60)
    return f"{int(hours)}h{int(minutes)}m{secs:.1f}s"


def generate_connection_id() -> str:
    """Generate a random ID used to correlate log lines of one connection."""
    return secrets.token_hex(8)


def generate_self_signed_cert(*, hostname: str, output_dir: str = ".", days_valid: int = 365) -> tuple[str, str]:
    """Generate a self-signed certificate and key for local benchmarking."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)])
    now = datetime.datetime.now(datetime.timezone.utc)

    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=days_valid))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(hostname)]), critical=False)
        .sign(private_key, hashes.SHA256())
    )

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    cert_file = output_path / f"{hostname}.crt"
    key_file = output_path / f"{hostname}.key"

    with open(cert_file, "wb") as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
    with open(key_file, "wb") as f:
        f.write(
            private_key.private_bytes(
                encoding=serialization.Encoding.PEM,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        )
    os.chmod(key_file, 0o600)

    return str(cert_file), str(key_file)


def get_logger(*, name: str) -> logging.Logger:
    """Get a logger instance with a specific name."""
    return logging.getLogger(name)


def get_timestamp() -> float:
    """Get the current monotonic timestamp in seconds."""
    return time.perf_counter()


def setup_logging(*, level: str = "INFO") -> None:
    """Configure the root logger for command-line use."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric_level, format=_LOG_FORMAT, force=True)
    logging.getLogger("quic").setLevel(max(numeric_level, logging.WARNING))


class Timer:
    """A simple context manager for timing operations."""

    def __init__(self, *, name: str = "timer") -> None:
        """Initialize the timer."""
        self.name = name
        self.start_time: float | None = None
        self.end_time: float | None = None

    @property
    def elapsed(self) -> float:
        """Get the elapsed time in seconds."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time

    def start(self) -> None:
        """Start the timer."""
        self.start_time = time.perf_counter()
        self.end_time = None

    def stop(self) -> float:
        """Stop the timer and return the elapsed time."""
        if self.start_time is None:
            raise RuntimeError("Timer not started")
        self.end_time = time.perf_counter()
        return self.elapsed

    def __enter__(self) -> Self:
        """Start timing on entering the context."""
        self.start()
        return self

    def __exit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        """Stop timing on exiting the context and log the duration."""
        elapsed = self.stop()
        get_logger(name=__name__).debug("%s took %s", self.name, format_duration(seconds=elapsed))
