from .cache import JobCache
from .callback_tokens import CallbackTokenSigner
from .dispatcher import BackgroundDispatcher
from .job_store import JobStore
from .status_observer import ObservationResult, StatusObserver
from .storage import LocalStorage, S3Storage, StorageBackend, build_storage
from .submission import SubmissionResult, SubmissionService
from .workflow_client import WorkflowClient, is_async_accept_response

__all__ = [
    "JobCache",
    "CallbackTokenSigner",
    "BackgroundDispatcher",
    "JobStore",
    "ObservationResult",
    "StatusObserver",
    "LocalStorage",
    "S3Storage",
    "StorageBackend",
    "build_storage",
    "SubmissionResult",
    "SubmissionService",
    "WorkflowClient",
    "is_async_accept_response",
]
