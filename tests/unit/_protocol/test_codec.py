"""Unit tests for the pyquicperf._protocol.codec module."""

import pytest

from pyquicperf._protocol.codec import decode_request, encode_request
from pyquicperf.constants import MAX_BYTE_COUNT
from pyquicperf.exceptions import ByteCountOverflowError, MalformedRequestError


class TestDecodeRequest:

    @pytest.mark.parametrize(
        "data, expected",
        [
            (b"0", 0),
            (b"100", 100),
            (b"007", 7),
            (bytearray(b"1048576"), 1048576),
            (memoryview(b"42"), 42),
            (str(MAX_BYTE_COUNT).encode(), MAX_BYTE_COUNT),
        ],
    )
    def test_decode_valid(self, data: bytes, expected: int) -> None:
        assert decode_request(data=data) == expected

    def test_decode_leading_zeros_beyond_digit_limit(self) -> None:
        data = b"0" * 40 + b"5"

        assert decode_request(data=data) == 5

    @pytest.mark.parametrize("data", [b"", b"12a", b"-1", b" 12", b"12\n", b"1.5", b"\xff"])
    def test_decode_malformed(self, data: bytes) -> None:
        with pytest.raises(MalformedRequestError) as exc_info:
            decode_request(data=data)

        assert exc_info.value.payload == data[:32]

    def test_decode_overflow_by_value(self) -> None:
        with pytest.raises(ByteCountOverflowError) as exc_info:
            decode_request(data=str(MAX_BYTE_COUNT + 1).encode())

        assert exc_info.value.limit == MAX_BYTE_COUNT

    def test_decode_overflow_by_length(self) -> None:
        with pytest.raises(ByteCountOverflowError):
            decode_request(data=b"9" * 30)


class TestEncodeRequest:

    @pytest.mark.parametrize("value", [0, 1, 100, 1048576, MAX_BYTE_COUNT])
    def test_round_trip(self, value: int) -> None:
        encoded = encode_request(byte_count=value)

        assert encoded.isdigit()
        assert decode_request(data=encoded) == value

    def test_encode_has_no_terminator(self) -> None:
        assert encode_request(byte_count=100) == b"100"

    def test_encode_negative(self) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            encode_request(byte_count=-1)

    def test_encode_overflow(self) -> None:
        with pytest.raises(ByteCountOverflowError):
            encode_request(byte_count=MAX_BYTE_COUNT + 1)

    @pytest.mark.parametrize("value", [True, 1.0, "10"])
    def test_encode_wrong_type(self, value: object) -> None:
        with pytest.raises(TypeError):
            encode_request(byte_count=value)  # type: ignore[arg-type]
