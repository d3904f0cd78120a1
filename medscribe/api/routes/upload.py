from fastapi import APIRouter, UploadFile, File, Form, HTTPException, Request, Depends
from fastapi.responses import JSONResponse
from typing import Optional
import logging
from ...errors import MedscribeError
from ...models.transcription import StoredAudioRequest, SubmissionResponse
from ...services.submission import SubmissionResult, SubmissionService
from ..dependencies import get_submission_service, http_error
from ..middleware.auth import verify_token

router = APIRouter()
logger = logging.getLogger(__name__)


def _response(result: SubmissionResult) -> JSONResponse:
    body = SubmissionResponse(
        success=True,
        transcriptionId=result.job_id,
        status=result.status,
        message=result.message
    )
    return JSONResponse(status_code=result.http_status, content=body.model_dump(mode="json"))


@router.post("/transcribe", response_model=SubmissionResponse)
async def upload_audio(
        request: Request,
        audio: Optional[UploadFile] = File(default=None),
        doctorName: Optional[str] = Form(default=None),
        patientName: Optional[str] = Form(default=None),
        documentType: Optional[str] = Form(default=None),
        additionalNotes: Optional[str] = Form(default=None),
        user: dict = Depends(verify_token),
        service: SubmissionService = Depends(get_submission_service)
):
    """Upload de áudio médico para transcrição"""

    data = None
    filename = None
    content_type = None
    if audio is not None and audio.filename:
        # lê no máximo um byte acima do limite: chega para rejeitar arquivos grandes
        data = await audio.read(request.app.state.settings.max_upload_bytes + 1)
        filename = audio.filename
        content_type = audio.content_type
        logger.info(f"Recebido upload: {filename}, tamanho: {len(data)}")

    try:
        result = await service.submit_upload(
            audio=data,
            filename=filename,
            content_type=content_type,
            doctor_name=doctorName,
            patient_name=patientName,
            document_type=documentType,
            additional_notes=additionalNotes,
            user_id=user.get("sub")
        )
        return _response(result)

    except MedscribeError as e:
        if e.status_code >= 500:
            logger.error(f"[{e.job_id}] Erro no upload: {e.message}")
        else:
            logger.warning(f"Upload rejeitado: {e.message}")
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Erro inesperado no upload: {str(e)}")
        raise HTTPException(status_code=500, detail="Erro interno do servidor")


@router.post("/transcribe/stored", response_model=SubmissionResponse)
async def submit_stored_audio(
        body: StoredAudioRequest,
        user: dict = Depends(verify_token),
        service: SubmissionService = Depends(get_submission_service)
):
    """Transcrição de áudio já enviado diretamente para o storage"""

    try:
        result = await service.submit_stored(body, user_id=user.get("sub"))
        return _response(result)

    except MedscribeError as e:
        if e.status_code >= 500:
            logger.error(f"[{e.job_id}] Erro ao processar áudio pré-carregado: {e.message}")
        else:
            logger.warning(f"Pedido rejeitado: {e.message}")
        raise http_error(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Erro inesperado ao processar áudio pré-carregado: {str(e)}")
        raise HTTPException(status_code=500, detail="Erro interno do servidor")
