import typing as t

from pydantic import BaseModel, ConfigDict, Field

from streamling.status import ConfidenceLevel, JobStatus, RetryReason


class Confidence(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=1.0)
    level: ConfidenceLevel


class JobSnapshot(BaseModel):
    """
    Immutable view of a job, published to subscribers on every change.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    provider: str
    model: str
    status: JobStatus
    response_text: str = ""
    last_error: str | None = None
    error_kind: str | None = None
    attempt_count: int = 0
    low_confidence_retry_count: int = 0
    retry_reason: RetryReason | None = None
    confidence: Confidence | None = None
    previous_confidence: Confidence | None = None
    queued_at: float | None = None
    dispatched_at: float | None = None
    completed_at: float | None = None

    @property
    def is_retrying_due_to_low_confidence(self) -> bool:
        return (
            self.retry_reason == RetryReason.LOW_CONFIDENCE
            and self.status
            in (JobStatus.RETRY_SCHEDULED, JobStatus.QUEUED, JobStatus.DISPATCHED, JobStatus.STREAMING)
        )


class SessionState(BaseModel):
    """
    Aggregate flags of the current session.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str | None = None
    job_count: int = 0
    is_processing: bool = False
    is_paused: bool = False
    is_waiting_for_next_window: bool = False
    seconds_until_next_window: int = 0
    queued_count: int = 0
    active_count: int = 0
    succeeded_count: int = 0
    failed_count: int = 0
    aborted_count: int = 0


SchedulerUpdate = t.Union[JobSnapshot, SessionState]
