"""Unit tests for the pyquicperf._protocol.client_processor module."""

import asyncio
import logging
from typing import cast
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from pytest_mock import MockerFixture

from pyquicperf import ClientConfig
from pyquicperf._protocol.client_processor import ClientSessionProcessor
from pyquicperf._protocol.events import (
    TransportConnectionEnded,
    TransportConnectionErrored,
    TransportHandshakeCompleted,
    TransportStreamDataReceived,
    TransportStreamOpened,
    TransportStreamReset,
    TransportStreamWritable,
)
from pyquicperf.exceptions import TimeoutError, TransportError
from pyquicperf.report import ThroughputRecord
from pyquicperf.types import ReliabilityMode, RunState, TransportProtocol


@pytest.mark.asyncio
class TestClientSessionProcessor:

    @pytest.fixture
    def config(self) -> ClientConfig:
        return ClientConfig(request_bytes=100, latency_label="10ms", loss_label="0.5")

    @pytest_asyncio.fixture
    async def completion(self) -> asyncio.Future[ThroughputRecord]:
        return asyncio.get_running_loop().create_future()

    @pytest.fixture(autouse=True)
    def fixed_clock(self, mocker: MockerFixture) -> None:
        mocker.patch("pyquicperf._protocol.client_processor.get_timestamp", return_value=1.0)
        mocker.patch("pyquicperf._protocol.accumulator.get_timestamp", return_value=1.5)

    @pytest.fixture
    def mock_transport(self, mocker: MockerFixture) -> MagicMock:
        transport = mocker.Mock(spec=TransportProtocol)
        transport.open_stream.return_value = 0
        transport.write.return_value = b""
        return cast(MagicMock, transport)

    @pytest.fixture
    def processor(
        self, config: ClientConfig, mock_transport: MagicMock, completion: asyncio.Future[ThroughputRecord]
    ) -> ClientSessionProcessor:
        return ClientSessionProcessor(config=config, transport=mock_transport, completion=completion)

    def feed(self, processor: ClientSessionProcessor, *, sizes: list[int], end_stream: bool = False) -> None:
        for index, size in enumerate(sizes):
            is_last = index == len(sizes) - 1
            processor.handle_event(
                event=TransportStreamDataReceived(data=b"\x00" * size, end_stream=end_stream and is_last, stream_id=0)
            )

    async def test_connection_ended_before_completion_is_unmeasured(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))
        self.feed(processor, sizes=[400])

        processor.handle_event(event=TransportConnectionEnded(reason_phrase="peer closed"))

        record = completion.result()
        assert record.is_measured is False
        assert record.rate_mbps is None
        assert record.total_bytes == 400
        assert processor.run_state is RunState.COMPLETED
        assert processor.state.ended is True
        assert record.format_line() == (
            "latency: 10ms\tloss_percentage: 0.5\t start: -1\t stop: -1\t bytes: -1\t rate: -1"
        )

    async def test_connection_errored_fails_run(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        processor.handle_event(event=TransportConnectionErrored(error_code=0x1, reason_phrase="boom"))

        assert completion.result().is_measured is False
        assert processor.run_state is RunState.FAILED
        assert processor.state.failed is True

    async def test_events_after_finish_are_ignored(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))
        self.feed(processor, sizes=[1000])
        record = completion.result()

        self.feed(processor, sizes=[500], end_stream=True)
        processor.handle_event(event=TransportConnectionErrored(error_code=0x1, reason_phrase="late"))
        processor.fail(error=RuntimeError("late failure"))

        assert completion.result() is record
        assert processor.run_state is RunState.COMPLETED

    async def test_fail_resolves_unmeasured(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))
        self.feed(processor, sizes=[10])

        processor.fail(error=TimeoutError("Transfer did not complete within 1s", operation="transfer"))

        record = completion.result()
        assert record.is_measured is False
        assert record.total_bytes == 10
        assert "Transfer did not complete" in record.reason
        assert processor.run_state is RunState.FAILED

    async def test_handshake_sends_request(
        self, processor: ClientSessionProcessor, mock_transport: MagicMock
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        mock_transport.open_stream.assert_called_once_with()
        mock_transport.write.assert_called_once_with(stream_id=0, data=b"100", end_stream=True)
        assert processor.stream_id == 0
        assert processor.run_state is RunState.AWAITING_REPLY
        receive_state = processor.state.receive_states[0]
        assert receive_state.target_bytes == 1000
        assert receive_state.start_time == 1.0

    async def test_open_stream_failure_fails_run(
        self,
        processor: ClientSessionProcessor,
        mock_transport: MagicMock,
        completion: asyncio.Future[ThroughputRecord],
    ) -> None:
        mock_transport.open_stream.side_effect = TransportError("Handshake has not completed")

        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        assert processor.run_state is RunState.FAILED
        assert completion.result().is_measured is False
        mock_transport.write.assert_not_called()

    async def test_partial_reliability_is_logged(
        self, mock_transport: MagicMock, completion: asyncio.Future[ThroughputRecord], caplog: pytest.LogCaptureFixture
    ) -> None:
        config = ClientConfig(request_bytes=1, reliability_mode=ReliabilityMode.PARTIAL)
        processor = ClientSessionProcessor(config=config, transport=mock_transport, completion=completion)

        with caplog.at_level(logging.WARNING):
            processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        assert "Partial reliability is not supported" in caplog.text
        mock_transport.write.assert_called_once()

    async def test_reply_completes_run(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        self.feed(processor, sizes=[300, 300, 300])
        assert not completion.done()
        self.feed(processor, sizes=[100])

        record = completion.result()
        assert processor.run_state is RunState.COMPLETED
        assert record.is_measured is True
        assert record.total_bytes == 1000
        assert record.elapsed_ms == pytest.approx(500.0)
        assert record.rate_mbps == pytest.approx(0.016)
        assert record.latency_label == "10ms"
        assert record.loss_label == "0.5"

    async def test_reply_truncated_fails_run(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        self.feed(processor, sizes=[400], end_stream=True)

        record = completion.result()
        assert record.is_measured is False
        assert "400/1000" in record.reason
        assert processor.run_state is RunState.FAILED

    async def test_request_resumes_after_backpressure(
        self, processor: ClientSessionProcessor, mock_transport: MagicMock
    ) -> None:
        mock_transport.write.side_effect = [b"00", b""]

        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        assert processor.run_state is RunState.REQUESTING
        mock_transport.notify_pending_write.assert_called_once_with(stream_id=0)

        processor.handle_event(event=TransportStreamWritable(max_bytes=1024, stream_id=0))

        assert processor.run_state is RunState.AWAITING_REPLY
        assert mock_transport.write.call_args_list[-1].kwargs == {"stream_id": 0, "data": b"00", "end_stream": True}

    async def test_server_initiated_stream_ignored(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        processor.handle_event(event=TransportStreamOpened(stream_id=1))

        assert not completion.done()

    async def test_stream_reset_on_benchmark_stream_fails_run(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        processor.handle_event(event=TransportStreamReset(error_code=0x10, stream_id=0))

        assert processor.run_state is RunState.FAILED
        assert completion.result().is_measured is False

    async def test_stream_reset_on_other_stream_ignored(
        self, processor: ClientSessionProcessor, completion: asyncio.Future[ThroughputRecord]
    ) -> None:
        processor.handle_event(event=TransportHandshakeCompleted(alpn_protocol="perf"))

        processor.handle_event(event=TransportStreamReset(error_code=0x10, stream_id=4))

        assert not completion.done()
        assert processor.run_state is RunState.AWAITING_REPLY
