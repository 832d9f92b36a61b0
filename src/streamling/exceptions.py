"""
Streamling-specific runtime exceptions.
"""

from __future__ import annotations


class StreamlingError(Exception):
    """
    Base class for every error raised by streamling.
    """


class ValidationError(StreamlingError):
    """
    Submission rejected before any job was created.

    Notes
    -----
    This is the only error family surfaced synchronously from
    ``Scheduler.submit``, together with ``ConfigurationError``.
    """


class ConfigurationError(StreamlingError):
    """
    Unknown provider or model, or missing credentials.
    """


class InvalidTransitionError(StreamlingError):
    """
    A job was asked to move to a status its current status cannot reach.
    """

    def __init__(self, *, job_id: str, from_status: str, to_status: str) -> None:
        super().__init__(f"Invalid transition for job {job_id}: {from_status} -> {to_status}")
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status


class ProcessingError(StreamlingError):
    """
    Error raised while executing a dispatched job.

    Parameters
    ----------
    message : str
        Human readable error message, stored on the job.
    retryable : bool
        Whether the retry policy may schedule another attempt.
    """

    kind: str = "processing"
    default_retryable: bool = True

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.retryable = self.default_retryable if retryable is None else retryable


class ProviderError(ProcessingError):
    """
    Transport, HTTP or stream failure reported by the streaming client.
    """

    kind = "provider"


class EmptyStreamError(ProcessingError):
    """
    The stream completed without producing any content.
    """

    kind = "empty_stream"


class DocumentReadError(ProcessingError):
    """
    The original document could not be read.
    """

    kind = "document_read"
    default_retryable = False


class ConfigurationFailure(ProcessingError):
    """
    The client rejected the job configuration (model, provider or credentials).
    """

    kind = "configuration"
    default_retryable = False


class JobCancelled(StreamlingError):
    """
    Raised inside an executor once the job's cancellation signal is observed.

    Notes
    -----
    This maps to the ``aborted`` status and is never treated as a failure.
    """


def classify_error(*, error: BaseException) -> ProcessingError:
    """
    Map any executor-level error onto the processing error taxonomy.

    Parameters
    ----------
    error : BaseException
        Error raised by a source read or by the streaming client.

    Returns
    -------
    ProcessingError
        The error itself when already classified, a ``ConfigurationFailure``
        for configuration problems, or a ``ProviderError``
        wrapping anything else.
    """
    if isinstance(error, ProcessingError):
        return error
    if isinstance(error, ConfigurationError):
        return ConfigurationFailure(str(error))
    message = str(error) or error.__class__.__name__
    return ProviderError(message)
