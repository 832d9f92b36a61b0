from .clients import CompletionRequest as CompletionRequest
from .clients import EchoStreamingClient as EchoStreamingClient
from .clients import StreamingClient as StreamingClient
from .config import DEFAULT_CATALOG as DEFAULT_CATALOG
from .config import ModelCatalog as ModelCatalog
from .config import SchedulerConfig as SchedulerConfig
from .core import JobSpec as JobSpec
from .core import Scheduler as Scheduler
from .core import SessionHandle as SessionHandle
from .models import Confidence as Confidence
from .models import JobSnapshot as JobSnapshot
from .models import SessionState as SessionState
from .retry import ExponentialBackoff as ExponentialBackoff
from .retry import RetryPolicy as RetryPolicy
from .sources import FileSource as FileSource
from .sources import TextSource as TextSource
from .status import JobStatus as JobStatus

__all__ = [
    "Scheduler",
    "JobSpec",
    "SessionHandle",
    "SchedulerConfig",
    "RetryPolicy",
    "ExponentialBackoff",
    "ModelCatalog",
    "DEFAULT_CATALOG",
    "StreamingClient",
    "CompletionRequest",
    "EchoStreamingClient",
    "FileSource",
    "TextSource",
    "JobSnapshot",
    "SessionState",
    "Confidence",
    "JobStatus",
]
