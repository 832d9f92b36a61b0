"""
Admission control for the scheduler loop: a sliding-window rate limiter per
``(provider, model)`` and a global in-flight cap.
"""

from __future__ import annotations

from collections import deque

import structlog

from streamling.config import RateLimit

log = structlog.get_logger(__name__)
QueueKey = tuple[str, str]


class SlidingWindowRateLimiter:
    """
    Count dispatch starts over a trailing window.

    Permits an initial burst of ``limit`` dispatches, then admits a new one
    each time the oldest recorded timestamp leaves the window.

    Parameters
    ----------
    limit : int
        Maximum dispatch starts within one window.
    window_seconds : float
        Length of the trailing window.
    """

    def __init__(self, limit: int, window_seconds: float) -> None:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._limit = limit
        self._window_seconds = window_seconds
        self._timestamps: deque[float] = deque()

    @classmethod
    def from_rate_limit(cls, rate_limit: RateLimit) -> SlidingWindowRateLimiter:
        return cls(limit=rate_limit.limit, window_seconds=rate_limit.window_seconds)

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def timestamps(self) -> tuple[float, ...]:
        return tuple(self._timestamps)

    def purge(self, now: float) -> int:
        """
        Drop timestamps that left the window.

        Parameters
        ----------
        now : float
            Current clock value.

        Returns
        -------
        int
            Number of timestamps removed.
        """
        removed = 0
        while self._timestamps and now - self._timestamps[0] >= self._window_seconds:
            self._timestamps.popleft()
            removed += 1
        return removed

    def in_window(self, now: float) -> int:
        return sum(1 for ts in self._timestamps if now - ts < self._window_seconds)

    def available_slots(self, now: float) -> int:
        return max(0, self._limit - self.in_window(now))

    def can_dispatch(self, now: float) -> bool:
        return self.in_window(now) < self._limit

    def record_dispatch(self, now: float) -> None:
        self._timestamps.append(now)

    def next_available_in(self, now: float) -> float:
        """
        Seconds until one more dispatch is admitted.

        Parameters
        ----------
        now : float
            Current clock value.

        Returns
        -------
        float
            ``0.0`` when a slot is free, otherwise the time until the oldest
            timestamp in the window expires.
        """
        if self.can_dispatch(now):
            return 0.0
        oldest = next(ts for ts in self._timestamps if now - ts < self._window_seconds)
        return max(0.0, oldest + self._window_seconds - now)

    def reset(self) -> None:
        self._timestamps.clear()


class ConcurrencyGate:
    """
    Bound the number of simultaneously running jobs.

    Parameters
    ----------
    max_concurrent : int
        Maximum number of in-flight jobs.
    """

    def __init__(self, max_concurrent: int) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = max_concurrent
        self._active_count = 0

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @max_concurrent.setter
    def max_concurrent(self, value: int) -> None:
        if value < 1:
            raise ValueError("max_concurrent must be at least 1")
        self._max_concurrent = value

    @property
    def active_count(self) -> int:
        return self._active_count

    @property
    def available(self) -> int:
        return max(0, self._max_concurrent - self._active_count)

    def acquire(self) -> None:
        if self._active_count >= self._max_concurrent:
            raise RuntimeError(
                f"Concurrency gate is full ({self._active_count}/{self._max_concurrent})"
            )
        self._active_count += 1

    def release(self) -> None:
        if self._active_count <= 0:
            raise RuntimeError("Concurrency gate released more times than acquired")
        self._active_count -= 1


class RateLimiterRegistry:
    """
    Lazily create one limiter per queue key.
    """

    def __init__(self) -> None:
        self._limiters: dict[QueueKey, SlidingWindowRateLimiter] = {}

    def get(self, *, queue_key: QueueKey, rate_limit: RateLimit) -> SlidingWindowRateLimiter:
        limiter = self._limiters.get(queue_key)
        if limiter is None:
            limiter = SlidingWindowRateLimiter.from_rate_limit(rate_limit)
            self._limiters[queue_key] = limiter
            provider, model = queue_key
            log.debug(
                event="Created rate limiter",
                provider=provider,
                model=model,
                limit=rate_limit.limit,
                window_seconds=rate_limit.window_seconds,
            )
        return limiter

    def purge(self, now: float) -> None:
        for limiter in self._limiters.values():
            limiter.purge(now)

    def items(self) -> list[tuple[QueueKey, SlidingWindowRateLimiter]]:
        return list(self._limiters.items())
