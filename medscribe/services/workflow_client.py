import asyncio
import base64
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from ..errors import WorkflowError, WorkflowTimeoutError
from ..utils.helpers import get_file_extension

logger = logging.getLogger(__name__)

# O workflow responde com erro HTTP e esta frase quando aceitou o job em
# background mas não tem nada para devolver de imediato.
ASYNC_ACCEPT_MARKER = "No item to return"


def is_async_accept_response(body: Optional[str]) -> bool:
    """Indica se uma resposta não-2xx do workflow significa 'aceite em background'"""
    return bool(body) and ASYNC_ACCEPT_MARKER in body


@dataclass
class WorkflowOutcome:
    status_code: int
    body: str
    data: Optional[Any] = None
    async_accepted: bool = False


def build_payload(
        job_id: str,
        audio_url: str,
        callback_url: str,
        file_name: str,
        file_size: int,
        file_type: Optional[str],
        doctor_name: str,
        patient_name: str,
        document_type: str,
        additional_notes: Optional[str] = None,
        user_id: Optional[str] = None,
        inline_audio: Optional[bytes] = None,
        inline_max_bytes: int = 0,
        large_file_bytes: int = 5 * 1024 * 1024,
) -> Dict[str, Any]:
    """Monta o payload enviado ao workflow externo"""
    payload: Dict[str, Any] = {
        "uploadId": job_id,
        "audioUrl": audio_url,
        "fileName": file_name,
        "fileType": file_type or "audio/mpeg",
        "fileSize": file_size,
        "fileSizeMB": round(file_size / (1024 * 1024), 2),
        "isLargeFile": file_size > large_file_bytes,
        "doctorName": doctor_name,
        "patientName": patient_name,
        "documentType": document_type,
        "additionalNotes": additional_notes or "",
        "userId": user_id,
        "callbackUrl": callback_url,
        "audioSource": "url",
        "format": get_file_extension(file_name).lstrip(".") or "webm",
        "uploadTime": datetime.now(timezone.utc).isoformat(),
        "source": "medscribe",
    }

    # Só arquivos pequenos seguem inline; os grandes vão apenas por referência
    if inline_audio is not None and 0 < len(inline_audio) <= inline_max_bytes:
        payload["fileContent"] = base64.b64encode(inline_audio).decode("ascii")
        payload["audioSource"] = "url+inline"

    return payload


class WorkflowClient:
    def __init__(self, url: str, timeout_seconds: float = 45.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        if not url:
            raise ValueError("WORKFLOW_URL não está definida")

        self.url = url
        self.timeout_seconds = timeout_seconds

        self.client = httpx.AsyncClient(
            headers={
                "Content-Type": "application/json",
                "User-Agent": "Medscribe/1.0"
            },
            timeout=timeout_seconds,
            transport=transport
        )

    async def trigger(self, payload: Dict[str, Any]) -> WorkflowOutcome:
        """Dispara o workflow de transcrição para um job"""
        job_id = payload.get("uploadId")
        headers = {"X-Request-ID": str(job_id), "X-Source": "medscribe"}

        logger.info(f"[{job_id}] Enviando para o workflow. URL: {self.url}, "
                    f"tamanho do payload: {len(json.dumps(payload))} bytes")

        try:
            response = await asyncio.wait_for(
                self.client.post(self.url, json=payload, headers=headers),
                timeout=self.timeout_seconds
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.error(f"[{job_id}] Timeout do workflow após {self.timeout_seconds:g}s")
            raise WorkflowTimeoutError(
                f"Workflow request timeout após {self.timeout_seconds:g}s - "
                f"o arquivo pode ser grande demais ou o serviço está indisponível",
                job_id=job_id
            )
        except httpx.HTTPError as e:
            logger.error(f"[{job_id}] Erro de conexão com o workflow: {e}")
            raise WorkflowError(f"Falha ao conectar ao serviço de transcrição: {e}", job_id=job_id)

        body = response.text or ""

        if response.is_success:
            data = None
            if body:
                try:
                    data = json.loads(body)
                except ValueError:
                    logger.debug(f"[{job_id}] Resposta do workflow não é JSON: {body[:100]}")
            logger.info(f"[{job_id}] Workflow aceitou o job (status {response.status_code})")
            return WorkflowOutcome(status_code=response.status_code, body=body, data=data)

        if is_async_accept_response(body):
            logger.info(f"[{job_id}] Workflow aceitou o job para processamento assíncrono "
                        f"(status {response.status_code})")
            return WorkflowOutcome(status_code=response.status_code, body=body, async_accepted=True)

        logger.error(f"[{job_id}] Workflow falhou | Status: {response.status_code} | "
                     f"Detalhes: {body[:200] or 'sem resposta'}")
        raise WorkflowError(f"Workflow webhook failed with status {response.status_code}", job_id=job_id)

    async def close(self):
        """Fecha o cliente HTTP"""
        await self.client.aclose()
