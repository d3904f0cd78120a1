from typing import Any, Dict, Optional

from ..database.models import Job
from ..models.transcription import CallbackPayload, TranscriptionStatus
from .job_store import utcnow

DEFAULT_WORKFLOW_ERROR = "Transcription failed in workflow"


def _text(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value


def target_status(payload: CallbackPayload) -> Optional[TranscriptionStatus]:
    """Texto implica 'completed', erro implica 'failed', senão vale o status explícito"""
    if _text(payload.transcription):
        return TranscriptionStatus.COMPLETED
    if _text(payload.error) or payload.success is False:
        return TranscriptionStatus.FAILED
    return TranscriptionStatus.parse(payload.status)


def reconcile(job: Job, payload: CallbackPayload) -> Dict[str, Any]:
    """Calcula os campos a gravar para um callback; dicionário vazio = nada a fazer.

    'completed' é terminal para o status: callbacks atrasados de 'processing'
    ou 'failed' são ignorados. Um job 'failed' (p.ex. por timeout do
    hand-off) ainda pode ser concluído se o workflow entregar o texto mais
    tarde. O final_text pertence à revisão humana e nunca é tocado aqui.
    """
    changes: Dict[str, Any] = {}
    current = job.status
    target = target_status(payload)

    def put(name: str, value: Any):
        if getattr(job, name) != value:
            changes[name] = value

    if target == TranscriptionStatus.COMPLETED:
        put("status", TranscriptionStatus.COMPLETED)
        if _text(payload.transcription):
            put("transcription_text", payload.transcription)
        if job.error is not None:
            changes["error"] = None
    elif target == TranscriptionStatus.FAILED:
        if current != TranscriptionStatus.COMPLETED:
            put("status", TranscriptionStatus.FAILED)
            put("error", _text(payload.error) or job.error or DEFAULT_WORKFLOW_ERROR)
    elif target == TranscriptionStatus.PROCESSING:
        if current == TranscriptionStatus.PENDING:
            put("status", TranscriptionStatus.PROCESSING)

    formatted = _text(payload.formattedText)
    if formatted and (changes.get("status", current) != TranscriptionStatus.FAILED):
        put("formatted_text", formatted)

    if payload.audioUrl and not job.audio_url:
        changes["audio_url"] = payload.audioUrl

    extra = {}
    if payload.cleaned is not None:
        extra["cleaned"] = payload.cleaned
    if payload.storageProvider:
        extra["storage_provider"] = payload.storageProvider
    metadata = job.job_metadata or {}
    if any(metadata.get(k) != v for k, v in extra.items()):
        changes["job_metadata"] = {**metadata, **extra}

    if changes.get("status") in (TranscriptionStatus.COMPLETED, TranscriptionStatus.FAILED):
        changes["processed_at"] = utcnow()

    return changes
