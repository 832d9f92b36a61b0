"""
Fake streaming clients for scheduler tests.
"""

import asyncio
import time
import typing as t

from streamling.clients import ChunkCallback, CompletionRequest
from streamling.exceptions import ProviderError


class RecordingClient:
    """
    Echo the document in chunks while recording calls and concurrency.

    Parameters
    ----------
    chunk_size : int
        Characters per chunk.
    delay : float
        Pause after each chunk.
    """

    def __init__(self, chunk_size: int = 16, delay: float = 0.0):
        self.chunk_size = chunk_size
        self.delay = delay
        self.requests: list[CompletionRequest] = []
        self.started_at: list[float] = []
        self.active = 0
        self.max_active = 0

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def calls_for(self, name_fragment: str) -> int:
        return sum(1 for request in self.requests if name_fragment in request.content)

    def respond(self, request: CompletionRequest) -> str:
        return request.content

    async def stream_completion(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
        cancel_event: asyncio.Event,
    ) -> None:
        self.requests.append(request)
        self.started_at.append(time.monotonic())
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            text = self.respond(request)
            for start in range(0, len(text), self.chunk_size):
                on_chunk(text[start : start + self.chunk_size])
                await asyncio.sleep(delay=self.delay)
        finally:
            self.active -= 1


class FlakyClient(RecordingClient):
    """Fail the first ``failures`` calls, then echo."""

    def __init__(self, failures: int, error_factory: t.Callable[[], Exception] | None = None):
        super().__init__()
        self.failures = failures
        self.error_factory = error_factory or (lambda: ProviderError("503 Service Unavailable"))

    def respond(self, request: CompletionRequest) -> str:
        if self.call_count <= self.failures:
            raise self.error_factory()
        return request.content


class FailingClient(RecordingClient):
    """Always fail with the given error."""

    def __init__(self, error: Exception | None = None):
        super().__init__()
        self.error = error or ProviderError("connection reset")
        self.fail = True

    def respond(self, request: CompletionRequest) -> str:
        if self.fail:
            raise self.error
        return request.content


class EmptyClient(RecordingClient):
    """Complete the stream without any content."""

    def respond(self, request: CompletionRequest) -> str:
        return ""


class GarbageClient(RecordingClient):
    """Return unrelated text for the first ``bad_calls`` calls, then echo."""

    def __init__(self, bad_calls: int = 1_000):
        super().__init__()
        self.bad_calls = bad_calls

    def respond(self, request: CompletionRequest) -> str:
        if self.call_count <= self.bad_calls:
            return "lorem ipsum dolor sit amet consectetur adipiscing elit"
        return request.content


class BlockingClient(RecordingClient):
    """Send one chunk, then wait until the job is cancelled."""

    def __init__(self):
        super().__init__()
        self.cancelled = 0

    async def stream_completion(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
        cancel_event: asyncio.Event,
    ) -> None:
        self.requests.append(request)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            on_chunk("partial output")
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.active -= 1
