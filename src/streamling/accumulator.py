"""
Chunk accumulation strategies for streaming executors.

Single-job sessions show text as it streams through a throttled buffer; batch
sessions park chunks in the out-of-band ``ResponseStore`` and expose the full
text once, when the attempt ends.
"""

from __future__ import annotations

import asyncio
import time
import typing as t
from abc import ABC, abstractmethod

from streamling.response_store import ResponseStore

Sink = t.Callable[[str], None]


class ThrottledBuffer:
    """
    Coalesce text chunks and hand them to a sink at a bounded rate.

    A flush happens immediately when the buffer reaches ``max_chars`` or when
    ``interval_seconds`` elapsed since the previous flush; otherwise a timer
    flushes the remainder once the interval is over.

    Parameters
    ----------
    sink : Sink
        Receives the coalesced text of each flush.
    interval_seconds : float
        Minimum time between two flushes.
    max_chars : int
        Buffer size that forces a flush.
    clock : typing.Callable[[], float], optional
        Monotonic clock.
    """

    def __init__(
        self,
        sink: Sink,
        interval_seconds: float,
        max_chars: int,
        clock: t.Callable[[], float] = time.monotonic,
    ) -> None:
        self._sink = sink
        self._interval_seconds = interval_seconds
        self._max_chars = max_chars
        self._clock = clock
        self._chunks: list[str] = []
        self._size = 0
        self._last_flush: float | None = None
        self._timer: asyncio.TimerHandle | None = None
        self.flush_count = 0

    @property
    def pending(self) -> str:
        return "".join(self._chunks)

    def append(self, chunk: str) -> None:
        self._chunks.append(chunk)
        self._size += len(chunk)
        now = self._clock()
        if (
            self._size >= self._max_chars
            or self._last_flush is None
            or now - self._last_flush >= self._interval_seconds
        ):
            self.flush()
        elif self._timer is None:
            delay = self._interval_seconds - (now - self._last_flush)
            self._timer = asyncio.get_running_loop().call_later(delay, self.flush)

    def flush(self) -> None:
        self._cancel_timer()
        if not self._chunks:
            return
        text = "".join(self._chunks)
        self._chunks.clear()
        self._size = 0
        self._last_flush = self._clock()
        self.flush_count += 1
        self._sink(text)

    def discard(self) -> None:
        self._cancel_timer()
        self._chunks.clear()
        self._size = 0

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class ResponseAccumulator(ABC):
    """
    Strategy used by an executor to collect the chunks of one attempt.
    """

    @abstractmethod
    def append(self, chunk: str) -> None:
        """Record a chunk."""

    @abstractmethod
    def commit(self) -> None:
        """Make everything received so far observable."""

    @abstractmethod
    def discard(self) -> None:
        """Drop content not yet observable."""


class ThrottledAccumulator(ResponseAccumulator):
    """
    Single-job mode: text becomes observable while streaming.
    """

    def __init__(
        self,
        apply_text: Sink,
        flush_interval_seconds: float,
        flush_max_chars: int,
        clock: t.Callable[[], float] = time.monotonic,
    ) -> None:
        self._buffer = ThrottledBuffer(
            sink=apply_text,
            interval_seconds=flush_interval_seconds,
            max_chars=flush_max_chars,
            clock=clock,
        )

    @property
    def flush_count(self) -> int:
        return self._buffer.flush_count

    def append(self, chunk: str) -> None:
        self._buffer.append(chunk)

    def commit(self) -> None:
        self._buffer.flush()

    def discard(self) -> None:
        self._buffer.discard()


class StoreAccumulator(ResponseAccumulator):
    """
    Batch mode: chunks live in the response store until the attempt ends.
    """

    def __init__(self, key: str, store: ResponseStore, apply_text: Sink) -> None:
        self._key = key
        self._store = store
        self._apply_text = apply_text
        self._store.add(key)

    def append(self, chunk: str) -> None:
        self._store.append(self._key, chunk)

    def commit(self) -> None:
        text = self._store.get(self._key)
        self._store.delete(self._key)
        if text:
            self._apply_text(text)

    def discard(self) -> None:
        self._store.delete(self._key)
