"""
Error-based and confidence-based retry decisions.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from streamling.exceptions import ProcessingError

MAX_ERROR_RETRIES = 3
MAX_CONFIDENCE_RETRIES = 3


@dataclass(frozen=True)
class ExponentialBackoff:
    """
    Delay of ``base_delay_seconds * 2 ** attempt``, capped.

    Attributes
    ----------
    base_delay_seconds : float
        Delay unit.
    max_delay_seconds : float
        Upper bound of any single delay.
    """

    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 30.0

    def __post_init__(self) -> None:
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be non-negative")
        if self.max_delay_seconds < 0:
            raise ValueError("max_delay_seconds must be non-negative")

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay_seconds * 2**attempt, self.max_delay_seconds)


NO_BACKOFF = ExponentialBackoff(base_delay_seconds=0.0, max_delay_seconds=0.0)


@dataclass(frozen=True)
class RetryPolicy:
    """
    Attempt caps and delays for automatic retries.

    Attributes
    ----------
    max_error_retries : int
        Automatic retries after failures.
    max_confidence_retries : int
        Automatic retries after low-confidence outputs.
    error_backoff : ExponentialBackoff
        Delay schedule for error retries.
    confidence_backoff : ExponentialBackoff
        Delay schedule for confidence retries, independent from the error
        schedule. No delay by default.
    requeue_front : bool
        Put retried jobs at the head of the queue instead of the back.
    """

    max_error_retries: int = MAX_ERROR_RETRIES
    max_confidence_retries: int = MAX_CONFIDENCE_RETRIES
    error_backoff: ExponentialBackoff = field(default_factory=ExponentialBackoff)
    confidence_backoff: ExponentialBackoff = NO_BACKOFF
    requeue_front: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.max_error_retries <= MAX_ERROR_RETRIES:
            raise ValueError(f"max_error_retries must be between 0 and {MAX_ERROR_RETRIES}")
        if not 0 <= self.max_confidence_retries <= MAX_CONFIDENCE_RETRIES:
            raise ValueError(
                f"max_confidence_retries must be between 0 and {MAX_CONFIDENCE_RETRIES}"
            )

    def should_retry_error(self, *, error: ProcessingError, attempt_count: int) -> bool:
        return error.retryable and attempt_count < self.max_error_retries

    def error_delay(self, *, attempt_count: int) -> float:
        """
        Delay before the retry numbered ``attempt_count`` (already incremented).
        """
        return self.error_backoff.delay_for(attempt_count)

    def confidence_delay(self, *, retry_count: int) -> float:
        return self.confidence_backoff.delay_for(retry_count)
