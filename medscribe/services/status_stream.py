import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from sqlalchemy.orm import sessionmaker

from ..errors import DatabaseError
from ..models.transcription import TERMINAL_STATUSES
from .job_store import JobStore

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # desliga o buffering do Nginx
}


def sse_frame(event: Dict[str, Any]) -> str:
    return f"data: {json.dumps(event, default=str, ensure_ascii=False)}\n\n"


def _snapshot(job) -> Dict[str, Any]:
    return {
        "id": job.id,
        "status": job.status.value,
        "transcription_text": job.transcription_text,
        "formatted_text": job.formatted_text,
        "final_text": job.final_text,
        "display_text": job.display_text,
        "audio_url": job.audio_url,
        "error": job.error,
    }


async def job_status_events(
        session_factory: sessionmaker,
        job_id: str,
        interval_seconds: float,
        max_attempts: int,
        is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[str]:
    """Eventos SSE com o status do job até estado terminal, erro ou fim do orçamento"""
    yield sse_frame({"type": "connected", "data": {"id": job_id}})

    attempts = 0
    last: Optional[Dict[str, Any]] = None

    while True:
        if is_disconnected is not None and await is_disconnected():
            logger.info(f"[{job_id}] Cliente desligou o stream de status")
            return

        db = session_factory()
        try:
            job = JobStore(db).get(job_id)
            snapshot = _snapshot(job) if job is not None else None
        except DatabaseError as e:
            yield sse_frame({"type": "error", "data": {"id": job_id, "error": e.message}})
            return
        finally:
            db.close()

        if snapshot is None:
            yield sse_frame({"type": "error", "data": {"id": job_id, "error": "Transcrição não encontrada"}})
            return

        if snapshot != last:
            yield sse_frame({"type": "status", "data": snapshot})
            last = snapshot

        if snapshot["status"] in {s.value for s in TERMINAL_STATUSES}:
            yield sse_frame({"type": "complete", "data": {"id": job_id, "status": snapshot["status"]}})
            return

        attempts += 1
        if attempts >= max_attempts:
            logger.info(f"[{job_id}] Stream de status expirou após {attempts} tentativas")
            yield sse_frame({
                "type": "timeout",
                "data": {
                    "id": job_id,
                    "status": snapshot["status"],
                    "error": "Transcription status check timed out",
                },
            })
            return

        await asyncio.sleep(interval_seconds)
