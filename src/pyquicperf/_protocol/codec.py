"""Encoding and decoding of the textual byte-count request."""

from __future__ import annotations

from pyquicperf.constants import MAX_BYTE_COUNT, MAX_REQUEST_DIGITS
from pyquicperf.exceptions import ByteCountOverflowError, MalformedRequestError
from pyquicperf.types import Buffer

__all__: list[str] = []

_ASCII_DIGITS = frozenset(b"0123456789")


def decode_request(*, data: Buffer) -> int:
    """Parse a complete decimal-ASCII request into a byte count."""
    raw = bytes(data)
    if not raw:
        raise MalformedRequestError("Empty byte-count request", payload=raw)
    if not _ASCII_DIGITS.issuperset(raw):
        raise MalformedRequestError(f"Byte-count request is not a decimal number: {raw[:32]!r}", payload=raw[:32])

    digits = raw.lstrip(b"0")
    if len(digits) > MAX_REQUEST_DIGITS:
        raise ByteCountOverflowError(
            f"Byte-count request has {len(digits)} digits, exceeds supported range", limit=MAX_BYTE_COUNT
        )

    value = int(raw)
    if value > MAX_BYTE_COUNT:
        raise ByteCountOverflowError(f"Byte count {value} exceeds supported range", limit=MAX_BYTE_COUNT)
    return value


def encode_request(*, byte_count: int) -> bytes:
    """Encode a byte count as decimal ASCII with no terminator."""
    if not isinstance(byte_count, int) or isinstance(byte_count, bool):
        raise TypeError("Byte count must be an integer")
    if byte_count < 0:
        raise ValueError(f"Byte count must be non-negative, got {byte_count}")
    if byte_count > MAX_BYTE_COUNT:
        raise ByteCountOverflowError(f"Byte count {byte_count} exceeds supported range", limit=MAX_BYTE_COUNT)
    return str(byte_count).encode("ascii")
