"""Chunked, backpressure-aware writer for exact byte budgets."""

from __future__ import annotations

from pyquicperf._protocol.events import Effect, WriteAborted, WriteCompleted
from pyquicperf._protocol.state import WriteJob
from pyquicperf._protocol.utils import validate_stream_id
from pyquicperf.exceptions import AlreadyActiveError, TransportError, WriteFailedError
from pyquicperf.types import StreamId, TransportProtocol
from pyquicperf.utils import get_logger

__all__: list[str] = []

logger = get_logger(name=__name__)


class ChunkedWriter:
    """Emit exactly total_bytes per stream in bounded writes, resuming after partial acceptance.

    At most one offer per stream is outstanding: once the transport returns an
    unaccepted suffix the job holds it in `pending` and makes no further offers
    until `on_writable` flushes it.
    """

    def __init__(self, *, transport: TransportProtocol, jobs: dict[StreamId, WriteJob]) -> None:
        """Initialize the writer over a job table owned by the session."""
        self._transport = transport
        self._jobs = jobs

    def abort(self, *, error: BaseException, stream_id: StreamId | None = None) -> list[Effect]:
        """Abort one outstanding job, or all of them when no stream is given."""
        if stream_id is None:
            targets = list(self._jobs.values())
        else:
            job = self._jobs.get(stream_id)
            targets = [job] if job else []

        effects: list[Effect] = []
        for job in targets:
            failure = WriteFailedError(
                f"Write aborted after {job.accepted_bytes}/{job.total_bytes} bytes: {error}",
                cause=error,
                stream_id=job.stream_id,
            )
            effects.extend(self._fail(job=job, error=failure))
        return effects

    def get_job(self, *, stream_id: StreamId) -> WriteJob | None:
        """Get the outstanding job for a stream."""
        return self._jobs.get(stream_id)

    def on_writable(self, *, stream_id: StreamId) -> list[Effect]:
        """Flush the pending suffix of a stalled job, then resume pumping."""
        job = self._jobs.get(stream_id)
        if job is None or not job.awaiting_writable:
            return []

        job.awaiting_writable = False
        if job.pending:
            data, job.pending = job.pending, b""
            is_final = job.sent_bytes == job.total_bytes
            try:
                if not self._offer(job=job, data=data, end_stream=is_final and job.end_stream):
                    return []
            except WriteFailedError as e:
                return self._fail(job=job, error=e)

        return self.pump(stream_id=stream_id)

    def pump(self, *, stream_id: StreamId) -> list[Effect]:
        """Offer chunks until the budget is exhausted or the transport pushes back."""
        job = self._jobs.get(stream_id)
        if job is None or job.awaiting_writable:
            return []

        try:
            if job.total_bytes == 0:
                if job.end_stream and not self._offer(job=job, data=b"", end_stream=True):
                    return []
                return self._finish(job=job)

            while job.sent_bytes < job.total_bytes:
                chunk = job.next_chunk()
                job.sent_bytes += len(chunk)
                is_final = job.sent_bytes == job.total_bytes
                if not self._offer(job=job, data=chunk, end_stream=is_final and job.end_stream):
                    return []
        except WriteFailedError as e:
            return self._fail(job=job, error=e)

        return self._finish(job=job)

    def start(
        self,
        *,
        stream_id: StreamId,
        total_bytes: int,
        chunk_size: int,
        payload: bytes | None = None,
        end_stream: bool = True,
    ) -> list[Effect]:
        """Create a write job for a stream and begin pumping it."""
        validate_stream_id(stream_id=stream_id)
        if stream_id in self._jobs:
            raise AlreadyActiveError("A write job is already active on this stream", stream_id=stream_id)
        if total_bytes < 0:
            raise ValueError(f"total_bytes must be non-negative, got {total_bytes}")
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if payload is not None and len(payload) != total_bytes:
            raise ValueError(f"payload length {len(payload)} does not match total_bytes {total_bytes}")

        self._jobs[stream_id] = WriteJob(
            stream_id=stream_id, total_bytes=total_bytes, chunk_size=chunk_size, payload=payload, end_stream=end_stream
        )
        logger.debug("Starting write of %d bytes on stream %d (chunk_size=%d)", total_bytes, stream_id, chunk_size)
        return self.pump(stream_id=stream_id)

    def _fail(self, *, job: WriteJob, error: WriteFailedError) -> list[Effect]:
        """Mark a job failed and remove it."""
        job.failed = True
        job.awaiting_writable = False
        job.pending = b""
        self._jobs.pop(job.stream_id, None)
        logger.error("Write on stream %d failed: %s", job.stream_id, error)
        return [WriteAborted(stream_id=job.stream_id, error=error)]

    def _finish(self, *, job: WriteJob) -> list[Effect]:
        """Mark a job finished and remove it."""
        job.finished = True
        self._jobs.pop(job.stream_id, None)
        logger.debug(
            "Finished write on stream %d: %d bytes in %d offers", job.stream_id, job.accepted_bytes, job.offers
        )
        return [WriteCompleted(stream_id=job.stream_id, total_bytes=job.total_bytes)]

    def _offer(self, *, job: WriteJob, data: bytes, end_stream: bool) -> bool:
        """Offer one buffer to the transport and return True if it was fully accepted."""
        job.offers += 1
        try:
            suffix = self._transport.write(stream_id=job.stream_id, data=data, end_stream=end_stream)
        except TransportError as e:
            raise WriteFailedError(f"Transport rejected write: {e}", cause=e, stream_id=job.stream_id) from e

        job.accepted_bytes += len(data) - len(suffix)
        if not suffix:
            return True

        job.pending = bytes(suffix)
        job.awaiting_writable = True
        logger.debug(
            "Stream %d did not accept all data, buffering len=%d (accepted %d/%d)",
            job.stream_id,
            len(suffix),
            job.accepted_bytes,
            job.total_bytes,
        )
        self._transport.notify_pending_write(stream_id=job.stream_id)
        return False
