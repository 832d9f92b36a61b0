import asyncio

import pytest

from streamling.accumulator import StoreAccumulator, ThrottledAccumulator, ThrottledBuffer
from streamling.response_store import ResponseStore


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_buffer_flushes_first_chunk_immediately():
    flushed: list[str] = []
    clock = FakeClock()
    buffer = ThrottledBuffer(sink=flushed.append, interval_seconds=0.1, max_chars=500, clock=clock)

    buffer.append("first")
    assert flushed == ["first"]

    buffer.append(" second")
    buffer.append(" third")
    assert flushed == ["first"]
    assert buffer.pending == " second third"

    clock.now = 0.1
    buffer.append(" fourth")
    assert flushed == ["first", " second third fourth"]
    assert buffer.flush_count == 2
    buffer.discard()


@pytest.mark.asyncio
async def test_buffer_flushes_on_size():
    flushed: list[str] = []
    buffer = ThrottledBuffer(sink=flushed.append, interval_seconds=10, max_chars=5, clock=FakeClock())

    buffer.append("a")
    buffer.append("bc")
    buffer.append("def")
    assert flushed == ["a", "bcdef"]
    buffer.discard()


@pytest.mark.asyncio
async def test_buffer_timer_flushes_remainder():
    flushed: list[str] = []
    buffer = ThrottledBuffer(sink=flushed.append, interval_seconds=0.02, max_chars=500)

    buffer.append("a")
    buffer.append("b")
    await asyncio.sleep(delay=0.1)
    assert flushed == ["a", "b"]


@pytest.mark.asyncio
async def test_buffer_discard_drops_pending_text():
    flushed: list[str] = []
    buffer = ThrottledBuffer(sink=flushed.append, interval_seconds=0.02, max_chars=500)

    buffer.append("kept")
    buffer.append("dropped")
    buffer.discard()
    await asyncio.sleep(delay=0.05)
    assert flushed == ["kept"]
    assert buffer.pending == ""


@pytest.mark.asyncio
async def test_throttled_accumulator_commit_flushes():
    text: list[str] = []
    accumulator = ThrottledAccumulator(
        apply_text=text.append, flush_interval_seconds=10, flush_max_chars=500, clock=FakeClock()
    )
    accumulator.append("one")
    accumulator.append("two")
    accumulator.commit()
    assert "".join(text) == "onetwo"
    assert accumulator.flush_count == 2


def test_store_accumulator_applies_text_once():
    store = ResponseStore()
    applied: list[str] = []
    accumulator = StoreAccumulator(key="doc", store=store, apply_text=applied.append)

    accumulator.append("partial ")
    accumulator.append("answer")
    assert applied == []
    assert store.get("doc") == "partial answer"

    accumulator.commit()
    assert applied == ["partial answer"]
    assert "doc" not in store


def test_store_accumulator_discard_and_empty_commit():
    store = ResponseStore()
    applied: list[str] = []
    accumulator = StoreAccumulator(key="doc", store=store, apply_text=applied.append)

    accumulator.append("thrown away")
    accumulator.discard()
    accumulator.commit()
    assert applied == []
    assert "doc" not in store
