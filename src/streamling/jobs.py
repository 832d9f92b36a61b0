"""
Per-job state, lifecycle transitions and the FIFO dispatch queue.
"""

from __future__ import annotations

import asyncio
import typing as t
from collections import deque
from dataclasses import dataclass, field

import structlog

from streamling.exceptions import InvalidTransitionError
from streamling.models import Confidence, JobSnapshot
from streamling.sources import DocumentSource
from streamling.status import IN_FLIGHT_STATUSES, TERMINAL_STATUSES, JobStatus, RetryReason

log = structlog.get_logger(__name__)

VALID_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.DISPATCHED, JobStatus.ABORTED}),
    JobStatus.DISPATCHED: frozenset(
        {JobStatus.STREAMING, JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.ABORTED}
    ),
    JobStatus.STREAMING: frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.ABORTED}),
    # Automatic retries go through RETRY_SCHEDULED, manual retries requeue directly.
    JobStatus.FAILED: frozenset({JobStatus.RETRY_SCHEDULED, JobStatus.QUEUED}),
    JobStatus.SUCCEEDED: frozenset({JobStatus.RETRY_SCHEDULED, JobStatus.QUEUED}),
    JobStatus.RETRY_SCHEDULED: frozenset({JobStatus.QUEUED, JobStatus.ABORTED}),
    JobStatus.ABORTED: frozenset({JobStatus.QUEUED}),
}


@dataclass
class Job:
    """One document, one instruction, one target model."""

    id: str
    source: DocumentSource
    instruction: str
    provider: str
    model: str
    api_key: str
    status: JobStatus = JobStatus.QUEUED
    response_text: str = ""
    attempt_count: int = 0
    low_confidence_retry_count: int = 0
    last_error: str | None = None
    error_kind: str | None = None
    retry_reason: RetryReason | None = None
    confidence: Confidence | None = None
    previous_confidence: Confidence | None = None
    queued_at: float | None = None
    dispatched_at: float | None = None
    completed_at: float | None = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def queue_key(self) -> tuple[str, str]:
        return self.provider, self.model

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_in_flight(self) -> bool:
        return self.status in IN_FLIGHT_STATUSES

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            id=self.id,
            name=self.name,
            provider=self.provider,
            model=self.model,
            status=self.status,
            response_text=self.response_text,
            last_error=self.last_error,
            error_kind=self.error_kind,
            attempt_count=self.attempt_count,
            low_confidence_retry_count=self.low_confidence_retry_count,
            retry_reason=self.retry_reason,
            confidence=self.confidence,
            previous_confidence=self.previous_confidence,
            queued_at=self.queued_at,
            dispatched_at=self.dispatched_at,
            completed_at=self.completed_at,
        )


class JobTable:
    """
    Jobs of the current session, addressed by id, plus the dispatch queue.

    Notes
    -----
    The queue holds job ids in insertion order. Every status change goes
    through ``transition`` so invalid lifecycle moves fail loudly.
    """

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._queue: deque[str] = deque()

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> t.Iterator[Job]:
        return iter(list(self._jobs.values()))

    def add(self, job: Job) -> None:
        if job.id in self._jobs:
            raise ValueError(f"Job {job.id} already exists")
        self._jobs[job.id] = job

    def get(self, job_id: str) -> Job | None:
        return self._jobs.get(job_id)

    def clear(self) -> None:
        self._jobs.clear()
        self._queue.clear()

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def queued_ids(self) -> tuple[str, ...]:
        return tuple(self._queue)

    def enqueue(self, job: Job, *, front: bool = False) -> None:
        """
        Put a queued job on the dispatch queue.

        Parameters
        ----------
        job : Job
            Job already in ``queued`` status.
        front : bool, optional
            Insert at the head instead of the back.
        """
        if job.status != JobStatus.QUEUED:
            raise ValueError(f"Only queued jobs can be enqueued, job {job.id} is {job.status}")
        if front:
            self._queue.appendleft(job.id)
        else:
            self._queue.append(job.id)

    def peek(self) -> Job | None:
        if not self._queue:
            return None
        return self._jobs[self._queue[0]]

    def pop(self) -> Job:
        return self._jobs[self._queue.popleft()]

    def remove_from_queue(self, job: Job) -> bool:
        try:
            self._queue.remove(job.id)
        except ValueError:
            return False
        return True

    def transition(self, job: Job, to_status: JobStatus) -> None:
        """
        Move a job to a new status.

        Parameters
        ----------
        job : Job
            Target job.
        to_status : JobStatus
            Next status.

        Raises
        ------
        InvalidTransitionError
            If the lifecycle does not allow the move.
        """
        if to_status not in VALID_TRANSITIONS[job.status]:
            raise InvalidTransitionError(
                job_id=job.id,
                from_status=job.status.value,
                to_status=to_status.value,
            )
        log.debug(
            event="Job transition",
            job_id=job.id,
            from_status=job.status.value,
            to_status=to_status.value,
        )
        job.status = to_status

    def count(self, *statuses: JobStatus) -> int:
        return sum(1 for job in self._jobs.values() if job.status in statuses)

    def by_status(self, *statuses: JobStatus) -> list[Job]:
        return [job for job in self._jobs.values() if job.status in statuses]

    def snapshots(self) -> list[JobSnapshot]:
        return [job.snapshot() for job in self._jobs.values()]
