"""Unit tests for the pyquicperf.exceptions module."""

from typing import Any

import pytest

from pyquicperf.constants import ErrorCodes
from pyquicperf.exceptions import (
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


class TestPerfError:

    def test_default_initialization(self) -> None:
        exc = PerfError("boom")

        assert exc.message == "boom"
        assert exc.error_code == ErrorCodes.INTERNAL_ERROR
        assert exc.details == {}
        assert exc.category == "perf"
        assert exc.is_fatal
        assert not exc.is_retriable

    def test_repr_includes_details(self) -> None:
        exc = PerfError("boom", error_code=0x2, details={"peer": "a"})

        assert repr(exc) == "PerfError(message='boom', error_code=0x2, details={'peer': 'a'})"

    def test_str(self) -> None:
        exc = PerfError("boom", error_code=ErrorCodes.APP_WRITE_FAILED)

        assert str(exc) == "[0x1012] boom"

    def test_to_dict(self) -> None:
        exc = PerfError("boom", error_code=ErrorCodes.CONNECTION_REFUSED, details={"k": 1})

        assert exc.to_dict() == {
            "type": "PerfError",
            "category": "perf",
            "message": "boom",
            "error_code": ErrorCodes.CONNECTION_REFUSED,
            "is_fatal": False,
            "is_retriable": True,
            "details": {"k": 1},
        }


class TestSubclassExceptions:

    @pytest.mark.parametrize(
        "exc_class, kwargs, expected_category",
        [
            (ConfigurationError, {"config_key": "port"}, "configuration"),
            (ConnectionError, {"remote_address": ("::1", 6668)}, "connection"),
            (ServerError, {"bind_address": ("::1", 6668)}, "server"),
            (TimeoutError, {"operation": "connect"}, "timeout"),
            (TransportError, {"stream_id": 4}, "transport"),
            (StreamError, {"stream_id": 4}, "stream"),
            (AlreadyActiveError, {"stream_id": 4}, "already_active"),
            (MalformedRequestError, {"payload": b"12a"}, "malformed_request"),
            (ByteCountOverflowError, {"limit": 2**64 - 1}, "byte_count_overflow"),
            (ProtocolAnomalyError, {"extra_bytes": 3}, "protocol_anomaly"),
            (WriteFailedError, {"cause": RuntimeError("closed")}, "write_failed"),
        ],
    )
    def test_category_and_attributes(
        self, exc_class: type[PerfError], kwargs: dict[str, Any], expected_category: str
    ) -> None:
        exc = exc_class("message", **kwargs)

        assert isinstance(exc, PerfError)
        assert exc.category == expected_category
        for key, value in kwargs.items():
            assert getattr(exc, key) == value or getattr(exc, key) is value

    @pytest.mark.parametrize(
        "exc_class, expected_code",
        [
            (AlreadyActiveError, ErrorCodes.APP_WRITE_ALREADY_ACTIVE),
            (ByteCountOverflowError, ErrorCodes.APP_BYTE_COUNT_OVERFLOW),
            (MalformedRequestError, ErrorCodes.APP_MALFORMED_REQUEST),
            (ProtocolAnomalyError, ErrorCodes.APP_PROTOCOL_ANOMALY),
            (StreamError, ErrorCodes.STREAM_STATE_ERROR),
            (TimeoutError, ErrorCodes.APP_CONNECTION_TIMEOUT),
            (WriteFailedError, ErrorCodes.APP_WRITE_FAILED),
        ],
    )
    def test_default_error_codes(self, exc_class: type[PerfError], expected_code: int) -> None:
        assert exc_class("message").error_code == expected_code

    def test_error_code_override(self) -> None:
        exc = TimeoutError("slow", error_code=ErrorCodes.APP_SERVICE_UNAVAILABLE)

        assert exc.error_code == ErrorCodes.APP_SERVICE_UNAVAILABLE
        assert exc.is_retriable

    def test_extra_attributes_in_to_dict(self) -> None:
        exc = ConfigurationError("bad", config_key="chunk_size")

        data = exc.to_dict()

        assert data["config_key"] == "chunk_size"
        assert data["category"] == "configuration"

    def test_repr_skips_none_attributes(self) -> None:
        exc = ServerError("down")

        assert "bind_address" not in repr(exc)

    def test_stream_error_str(self) -> None:
        assert str(StreamError("reset", stream_id=8)) == "[0x5] reset (stream_id=8)"
        assert str(StreamError("reset")) == "[0x5] reset"

    def test_write_failed_to_dict_stringifies_cause(self) -> None:
        exc = WriteFailedError("rejected", cause=RuntimeError("stream closed"), stream_id=0)

        data = exc.to_dict()

        assert data["cause"] == "stream closed"
        assert data["stream_id"] == 0

    def test_write_failed_to_dict_without_cause(self) -> None:
        assert WriteFailedError("rejected").to_dict()["cause"] is None

    def test_shadowed_builtins_are_distinct(self) -> None:
        import builtins

        assert not issubclass(ConnectionError, builtins.ConnectionError)
        assert not issubclass(TimeoutError, builtins.TimeoutError)
