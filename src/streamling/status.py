from enum import Enum


class JobStatus(str, Enum):
    QUEUED = "queued"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    RETRY_SCHEDULED = "retry_scheduled"
    ABORTED = "aborted"


class RetryReason(str, Enum):
    ERROR = "error"
    LOW_CONFIDENCE = "low_confidence"
    MANUAL = "manual"


class ConfidenceLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


IN_FLIGHT_STATUSES = frozenset({JobStatus.DISPATCHED, JobStatus.STREAMING})
TERMINAL_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.ABORTED})
