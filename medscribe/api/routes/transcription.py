from fastapi import APIRouter, HTTPException, Request, Depends, Query
from fastapi.responses import Response, StreamingResponse
from typing import Optional
from datetime import datetime, timezone
import logging
import json
from ...errors import MedscribeError, NotFoundError
from ...models.transcription import (
    ReviewRequest,
    TranscriptionList,
    TranscriptionResult,
    TranscriptionStats,
    TranscriptionStatus,
    TranscriptionSummary,
)
from ...services.job_store import JobStore
from ...services.status_stream import SSE_HEADERS, job_status_events
from ...utils.helpers import format_file_size
from ..dependencies import get_job_store, http_error
from ..middleware.auth import can_access, verify_token

router = APIRouter()
logger = logging.getLogger(__name__)


def _load_owned(store: JobStore, job_id: str, user: dict):
    job = store.get(job_id)
    if not job or not can_access(user, job.user_id):
        raise NotFoundError("Transcrição não encontrada", job_id=job_id)
    return job


@router.get("/transcriptions", response_model=TranscriptionList)
async def list_transcriptions(
    limit: int = Query(default=10, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    status: Optional[TranscriptionStatus] = Query(default=None),
    store: JobStore = Depends(get_job_store),
    user: dict = Depends(verify_token)
):
    """Lista transcrições do utilizador"""

    try:
        jobs, total = store.list_for_user(user.get("sub"), status=status, limit=limit, offset=offset)

        transcriptions = [
            TranscriptionSummary(
                id=job.id,
                status=job.status,
                file_name=job.file_name,
                file_size=job.file_size,
                file_size_label=format_file_size(job.file_size),
                doctor_name=job.doctor_name,
                patient_name=job.patient_name,
                document_type=job.document_type,
                has_text=bool(job.display_text),
                error=job.error,
                created_at=job.created_at,
            )
            for job in jobs
        ]
        return TranscriptionList(transcriptions=transcriptions, total=total, limit=limit, offset=offset)

    except MedscribeError as e:
        raise http_error(e)


@router.get("/transcriptions/stats", response_model=TranscriptionStats)
async def transcription_stats(
    store: JobStore = Depends(get_job_store),
    user: dict = Depends(verify_token)
):
    """Estatísticas do painel do utilizador"""

    # declarada antes de /transcriptions/{job_id}
    try:
        return store.stats_for_user(user.get("sub"))
    except MedscribeError as e:
        raise http_error(e)


@router.get("/transcriptions/{job_id}", response_model=TranscriptionResult)
async def get_transcription_status(
    job_id: str,
    request: Request,
    store: JobStore = Depends(get_job_store),
    user: dict = Depends(verify_token)
):
    """Consulta o status e resultado de uma transcrição"""

    cache = request.app.state.cache
    try:
        # Primeiro verificar Redis se disponível
        cached_result = await cache.get(job_id)
        if cached_result and can_access(user, cached_result.user_id):
            return cached_result

        # Consultar banco de dados (fonte da verdade)
        job = _load_owned(store, job_id, user)
        result = TranscriptionResult.from_job(job)

        # Só resultados finais vão para o cache
        if job.is_terminal:
            await cache.save(result)

        return result

    except HTTPException:
        raise
    except MedscribeError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"[{job_id}] Erro ao consultar transcrição: {str(e)}")
        raise HTTPException(status_code=500, detail="Erro interno do servidor")


@router.get("/transcriptions/{job_id}/events")
async def stream_transcription_status(
    job_id: str,
    request: Request,
    store: JobStore = Depends(get_job_store),
    user: dict = Depends(verify_token)
):
    """Stream SSE com as mudanças de status de uma transcrição"""

    try:
        _load_owned(store, job_id, user)
    except MedscribeError as e:
        raise http_error(e)

    settings = request.app.state.settings
    events = job_status_events(
        request.app.state.session_factory,
        job_id,
        interval_seconds=settings.status_poll_interval_seconds,
        max_attempts=settings.status_max_attempts,
        is_disconnected=request.is_disconnected,
    )
    return StreamingResponse(events, media_type="text/event-stream", headers=SSE_HEADERS)


@router.put("/transcriptions/{job_id}/review", response_model=TranscriptionResult)
async def review_transcription(
    job_id: str,
    body: ReviewRequest,
    request: Request,
    store: JobStore = Depends(get_job_store),
    user: dict = Depends(verify_token)
):
    """Revisão manual: grava o texto final aprovado"""

    try:
        job = _load_owned(store, job_id, user)

        # texto em branco limpa a revisão
        final_text = body.final_text if body.final_text.strip() else None
        fields = {"final_text": final_text, "reviewed_at": datetime.now(timezone.utc) if final_text else None}
        if final_text:
            fields["status"] = TranscriptionStatus.COMPLETED
            fields["error"] = None
        store.apply_update(job, fields, "review")
        logger.info(f"[{job_id}] Revisão gravada, status: {job.status.value}")

        await request.app.state.cache.invalidate(job_id)
        return TranscriptionResult.from_job(job)

    except HTTPException:
        raise
    except MedscribeError as e:
        raise http_error(e)


@router.delete("/transcriptions/{job_id}")
async def delete_transcription(
    job_id: str,
    request: Request,
    store: JobStore = Depends(get_job_store),
    user: dict = Depends(verify_token)
):
    """Remove a transcrição e o áudio associado"""

    try:
        job = _load_owned(store, job_id, user)

        if job.file_path:
            # a remoção do registo continua mesmo que o storage falhe
            removed = await request.app.state.storage.delete(job.file_path)
            if not removed:
                logger.warning(f"[{job_id}] Áudio não removido do storage: {job.file_path}")

        store.delete(job)
        await request.app.state.cache.invalidate(job_id)
        logger.info(f"[{job_id}] Transcrição removida")

        return {"success": True, "message": "Transcrição removida com sucesso", "transcriptionId": job_id}

    except HTTPException:
        raise
    except MedscribeError as e:
        raise http_error(e)


@router.get("/transcriptions/{job_id}/download")
async def download_transcription(
    job_id: str,
    store: JobStore = Depends(get_job_store),
    format: str = Query(default="txt", description="Formato do download: txt ou json"),
    user: dict = Depends(verify_token)
):
    """Download do texto da transcrição"""

    try:
        job = _load_owned(store, job_id, user)
    except MedscribeError as e:
        raise http_error(e)

    if job.status != TranscriptionStatus.COMPLETED:
        raise HTTPException(
            status_code=400,
            detail=f"Transcrição não concluída. Status atual: {job.status.value}"
        )

    text = job.display_text
    if not text:
        raise HTTPException(status_code=404, detail="Resultado da transcrição não disponível")

    if format == "txt":
        content = text
        media_type = "text/plain"
    elif format == "json":
        content = json.dumps({
            "id": job.id,
            "doctor_name": job.doctor_name,
            "patient_name": job.patient_name,
            "document_type": job.document_type,
            "text": text,
            "reviewed": bool(job.final_text),
            "created_at": job.created_at.isoformat() if job.created_at else None,
            "processed_at": job.processed_at.isoformat() if job.processed_at else None,
        }, indent=2, ensure_ascii=False)
        media_type = "application/json"
    else:
        raise HTTPException(status_code=400, detail="Formato não suportado. Use: txt, json")

    filename = f"transcription_{job_id}.{format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )
