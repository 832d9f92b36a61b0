"""
Tests for the sliding-window rate limiter and the concurrency gate.
"""

import pytest

from streamling.config import RateLimit
from streamling.rate_limit import ConcurrencyGate, RateLimiterRegistry, SlidingWindowRateLimiter


@pytest.fixture
def limiter() -> SlidingWindowRateLimiter:
    """
    Create a limiter allowing three dispatches per ten seconds.

    Returns
    -------
    SlidingWindowRateLimiter
        Empty limiter.
    """
    return SlidingWindowRateLimiter(limit=3, window_seconds=10.0)


def test_initial_burst_up_to_limit(limiter: SlidingWindowRateLimiter):
    for _ in range(3):
        assert limiter.can_dispatch(now=0.0)
        limiter.record_dispatch(now=0.0)
    assert not limiter.can_dispatch(now=0.0)
    assert limiter.available_slots(now=0.0) == 0


def test_slot_frees_when_oldest_timestamp_leaves_window(limiter: SlidingWindowRateLimiter):
    for now in (0.0, 2.0, 4.0):
        limiter.record_dispatch(now=now)

    assert limiter.next_available_in(now=5.0) == pytest.approx(5.0)
    assert not limiter.can_dispatch(now=9.999)
    assert limiter.can_dispatch(now=10.0)
    assert limiter.available_slots(now=10.0) == 1


def test_next_available_is_zero_with_free_capacity(limiter: SlidingWindowRateLimiter):
    limiter.record_dispatch(now=0.0)
    assert limiter.next_available_in(now=1.0) == 0.0


def test_purge_drops_expired_timestamps(limiter: SlidingWindowRateLimiter):
    for now in (0.0, 1.0, 8.0):
        limiter.record_dispatch(now=now)

    assert limiter.purge(now=11.0) == 2
    assert limiter.timestamps == (8.0,)
    assert limiter.in_window(now=11.0) == 1


def test_reset_clears_history(limiter: SlidingWindowRateLimiter):
    limiter.record_dispatch(now=0.0)
    limiter.reset()
    assert limiter.timestamps == ()


@pytest.mark.parametrize("limit, window", [(0, 1.0), (1, 0.0), (1, -1.0)])
def test_limiter_rejects_invalid_arguments(limit, window):
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter(limit=limit, window_seconds=window)


def test_gate_counts_in_flight_jobs():
    gate = ConcurrencyGate(max_concurrent=2)
    gate.acquire()
    gate.acquire()
    assert gate.available == 0
    with pytest.raises(RuntimeError):
        gate.acquire()

    gate.release()
    assert gate.active_count == 1
    gate.release()
    with pytest.raises(RuntimeError):
        gate.release()


def test_gate_limit_can_change():
    gate = ConcurrencyGate(max_concurrent=1)
    gate.max_concurrent = 4
    assert gate.available == 4
    with pytest.raises(ValueError):
        gate.max_concurrent = 0


def test_registry_creates_one_limiter_per_queue_key():
    registry = RateLimiterRegistry()
    rate_limit = RateLimit(limit=2, window_seconds=1.0)

    first = registry.get(queue_key=("gemini", "gemini-2.5-flash"), rate_limit=rate_limit)
    again = registry.get(queue_key=("gemini", "gemini-2.5-flash"), rate_limit=rate_limit)
    other = registry.get(queue_key=("groq", "gemma2-9b-it"), rate_limit=rate_limit)

    assert first is again
    assert first is not other
    assert len(registry.items()) == 2

    first.record_dispatch(now=0.0)
    registry.purge(now=5.0)
    assert first.timestamps == ()
