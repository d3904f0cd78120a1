from fastapi import APIRouter, Request, HTTPException, Depends, Query
from typing import Optional
import logging
from ...errors import MedscribeError, NotFoundError
from ...models.transcription import CallbackPayload, CallbackResponse
from ...services.callbacks import reconcile
from ...services.job_store import JobStore
from ..dependencies import get_job_store, http_error

router = APIRouter()
logger = logging.getLogger(__name__)


def _callback_token(request: Request, token: Optional[str]) -> Optional[str]:
    if token:
        return token
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


async def _process_callback(
        request: Request,
        job_id: str,
        payload: CallbackPayload,
        token: Optional[str],
        store: JobStore
) -> CallbackResponse:
    # Autorização antes de qualquer leitura ou escrita
    request.app.state.callback_signer.verify(_callback_token(request, token), job_id)

    if payload.transcriptionId and payload.transcriptionId != job_id:
        raise HTTPException(status_code=400, detail="transcriptionId não corresponde ao job do callback")

    logger.info(f"[{job_id}] Callback recebido: status={payload.status}, "
                f"com texto={bool(payload.transcription)}, erro={bool(payload.error)}")

    job = store.get(job_id)
    if not job:
        raise NotFoundError("Transcrição não encontrada: callback para job inexistente", job_id=job_id)

    changes = reconcile(job, payload)
    if not changes:
        logger.info(f"[{job_id}] Callback sem alterações (status {job.status.value})")
        return CallbackResponse(
            success=True,
            message="Nada a atualizar",
            transcriptionId=job_id,
            status=job.status
        )

    store.apply_update(job, changes, "callback")
    await request.app.state.cache.invalidate(job_id)
    logger.info(f"[{job_id}] Callback aplicado, status: {job.status.value}")

    return CallbackResponse(
        success=True,
        message="Transcrição atualizada com sucesso",
        transcriptionId=job_id,
        status=job.status
    )


@router.api_route("/transcription/{job_id}", methods=["POST", "PUT"], response_model=CallbackResponse)
async def transcription_callback(
        job_id: str,
        payload: CallbackPayload,
        request: Request,
        token: Optional[str] = Query(default=None),
        store: JobStore = Depends(get_job_store)
):
    """Recebe o resultado do workflow externo para um job"""

    try:
        return await _process_callback(request, job_id, payload, token, store)
    except HTTPException:
        raise
    except MedscribeError as e:
        if e.status_code == 401:
            logger.warning(f"[{job_id}] Callback rejeitado: {e.message}")
        else:
            logger.error(f"[{job_id}] Erro no callback: {e.message}")
        raise http_error(e)
    except Exception as e:
        logger.error(f"[{job_id}] Erro no callback: {str(e)}")
        raise HTTPException(status_code=500, detail="Erro interno")


@router.api_route("/transcription", methods=["POST", "PUT"], response_model=CallbackResponse)
async def transcription_callback_by_body(
        payload: CallbackPayload,
        request: Request,
        token: Optional[str] = Query(default=None),
        store: JobStore = Depends(get_job_store)
):
    """Variante em que o job vem no corpo (transcriptionId ou uploadId)"""

    if not payload.transcriptionId:
        raise HTTPException(status_code=400, detail="transcriptionId é obrigatório")
    return await transcription_callback(payload.transcriptionId, payload, request, token, store)
