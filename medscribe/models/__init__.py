from .transcription import (
    CallbackPayload,
    CallbackResponse,
    ReviewRequest,
    StoredAudioRequest,
    SubmissionResponse,
    TERMINAL_STATUSES,
    TranscriptionList,
    TranscriptionResult,
    TranscriptionStats,
    TranscriptionStatus,
    TranscriptionSummary,
)

__all__ = [
    "CallbackPayload",
    "CallbackResponse",
    "ReviewRequest",
    "StoredAudioRequest",
    "SubmissionResponse",
    "TERMINAL_STATUSES",
    "TranscriptionList",
    "TranscriptionResult",
    "TranscriptionStats",
    "TranscriptionStatus",
    "TranscriptionSummary",
]
