import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple
from urllib.parse import urlparse

from sqlalchemy.orm import sessionmaker

from ..config import Settings
from ..errors import DatabaseError, StorageError, ValidationError, WorkflowError
from ..models.transcription import StoredAudioRequest, TranscriptionStatus
from ..utils.helpers import generate_job_id, is_owned_storage_key, storage_key_for
from ..utils.validators import is_allowed_audio, validate_audio, validate_audio_url, validate_metadata
from .callback_tokens import CallbackTokenSigner
from .dispatcher import BackgroundDispatcher
from .job_store import JobStore
from .storage import StorageBackend
from .workflow_client import WorkflowClient, build_payload

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    job_id: str
    status: TranscriptionStatus
    message: str
    http_status: int = 200


class SubmissionService:
    """Valida, persiste, guarda o áudio e entrega o job ao workflow externo"""

    def __init__(
            self,
            settings: Settings,
            store: JobStore,
            storage: StorageBackend,
            workflow: WorkflowClient,
            dispatcher: BackgroundDispatcher,
            session_factory: sessionmaker,
            signer: CallbackTokenSigner,
    ):
        self.settings = settings
        self.store = store
        self.storage = storage
        self.workflow = workflow
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.signer = signer

    def _check_metadata(self, doctor_name, patient_name, document_type):
        result = validate_metadata(doctor_name, patient_name, document_type)
        if not result["valid"]:
            raise ValidationError(result["message"])

    async def submit_upload(
            self,
            audio: Optional[bytes],
            filename: Optional[str],
            content_type: Optional[str],
            doctor_name: Optional[str],
            patient_name: Optional[str],
            document_type: Optional[str],
            additional_notes: Optional[str] = None,
            user_id: Optional[str] = None,
    ) -> SubmissionResult:
        """Upload multipart: o áudio passa por este serviço até ao storage"""

        # Validação sem efeitos colaterais
        if audio is None:
            raise ValidationError("Arquivo de áudio é obrigatório")
        self._check_metadata(doctor_name, patient_name, document_type)
        check = validate_audio(len(audio), content_type, filename, audio[:2048], self.settings.max_upload_bytes)
        if not check["valid"]:
            raise ValidationError(check["message"])

        job_id = generate_job_id()
        file_name = filename or "audio"
        mime_type = check["mime_type"]
        key = storage_key_for(job_id, file_name, user_id)

        logger.info(f"[{job_id}] Processando upload: {file_name} ({len(audio)} bytes)")

        job = self.store.create_pending(
            job_id=job_id,
            file_name=file_name,
            file_size=len(audio),
            mime_type=mime_type,
            doctor_name=doctor_name,
            patient_name=patient_name,
            document_type=document_type,
            additional_notes=additional_notes,
            user_id=user_id,
            metadata={
                "uploadedAt": datetime.now(timezone.utc).isoformat(),
                "mimeType": mime_type,
                "workflow": "medical-upload",
            },
        )

        try:
            stored = await self.storage.save(key, audio, mime_type)
        except StorageError as e:
            logger.error(f"[{job_id}] Erro no upload do áudio: {e.message}")
            await self._cleanup(job_id, key)
            self._fail_quietly(job_id, f"Falha no upload do áudio: {e.message}")
            e.job_id = job_id
            raise

        try:
            self.store.set_audio_reference(job, stored.key, stored.url)
        except DatabaseError:
            await self._cleanup(job_id, stored.key)
            self._fail_quietly(job_id, "Falha ao gravar a referência do áudio")
            raise
        logger.info(f"[{job_id}] Áudio guardado em: {stored.key}")

        payload = build_payload(
            job_id=job_id,
            audio_url=stored.url,
            callback_url=self.signer.callback_url(self.settings.callback_base, job_id),
            file_name=file_name,
            file_size=len(audio),
            file_type=mime_type,
            doctor_name=job.doctor_name,
            patient_name=job.patient_name,
            document_type=job.document_type,
            additional_notes=additional_notes,
            user_id=user_id,
            inline_audio=audio,
            inline_max_bytes=self.settings.inline_audio_max_bytes,
            large_file_bytes=self.settings.large_file_bytes,
        )
        return await self._dispatch(job_id, payload)

    async def submit_stored(self, request: StoredAudioRequest, user_id: Optional[str] = None) -> SubmissionResult:
        """Variante storage-first: o browser já enviou o áudio, aqui só chega a URL"""

        if not request.audioUrl:
            raise ValidationError("URL do áudio é obrigatória")
        if not validate_audio_url(request.audioUrl):
            raise ValidationError("URL do áudio inválida")
        self._check_metadata(request.doctorName, request.patientName, request.documentType)

        file_name = request.fileName or urlparse(request.audioUrl).path.rsplit("/", 1)[-1] or "audio"
        file_size = request.fileSize or 0
        if file_size > self.settings.max_upload_bytes:
            raise ValidationError("Arquivo excede o tamanho máximo permitido")
        if not is_allowed_audio(request.fileType, file_name):
            raise ValidationError("Formato de áudio inválido. Envie MP3, WAV, M4A, OGG ou WebM")
        if request.audioPath and not is_owned_storage_key(request.audioPath, user_id):
            raise ValidationError("Caminho do áudio fora da pasta do utilizador")

        job_id = generate_job_id()
        logger.info(f"[{job_id}] Recebido áudio pré-carregado: {file_name} ({file_size} bytes)")

        job = self.store.create_pending(
            job_id=job_id,
            file_name=file_name,
            file_size=file_size,
            mime_type=request.fileType,
            doctor_name=request.doctorName,
            patient_name=request.patientName,
            document_type=request.documentType,
            additional_notes=request.additionalNotes,
            user_id=user_id,
            audio_url=request.audioUrl,
            file_path=request.audioPath,
            metadata={
                "uploadedAt": datetime.now(timezone.utc).isoformat(),
                "mimeType": request.fileType,
                "workflow": "medical-storage-first",
            },
        )

        payload = build_payload(
            job_id=job_id,
            audio_url=request.audioUrl,
            callback_url=self.signer.callback_url(self.settings.callback_base, job_id),
            file_name=file_name,
            file_size=file_size,
            file_type=request.fileType,
            doctor_name=job.doctor_name,
            patient_name=job.patient_name,
            document_type=job.document_type,
            additional_notes=request.additionalNotes,
            user_id=user_id,
            large_file_bytes=self.settings.large_file_bytes,
        )
        return await self._dispatch(job_id, payload)

    async def _dispatch(self, job_id: str, payload: dict) -> SubmissionResult:
        task = self.dispatcher.spawn(self.hand_off(job_id, payload), name=f"hand-off:{job_id}")
        finished = await self.dispatcher.wait_briefly(task, self.settings.response_grace_seconds)

        if not finished:
            logger.info(f"[{job_id}] Hand-off continua em background após a resposta")
            return SubmissionResult(
                job_id=job_id,
                status=TranscriptionStatus.PENDING,
                message="Áudio recebido. O envio ao serviço de transcrição continua em background.",
                http_status=202,
            )

        status, error = task.result()
        if status == TranscriptionStatus.FAILED:
            return SubmissionResult(
                job_id=job_id,
                status=status,
                message=f"Áudio recebido, mas o serviço de transcrição está indisponível: {error}",
                http_status=202,
            )
        return SubmissionResult(
            job_id=job_id,
            status=status,
            message="Áudio enviado com sucesso. Transcrição em andamento.",
        )

    async def hand_off(self, job_id: str, payload: dict) -> Tuple[TranscriptionStatus, Optional[str]]:
        """Chama o workflow e grava o resultado com uma sessão própria.

        Corre como task em background: pode terminar depois de a resposta
        HTTP já ter sido enviada.
        """
        db = self.session_factory()
        store = JobStore(db)
        try:
            try:
                outcome = await self.workflow.trigger(payload)
            except WorkflowError as e:
                job = store.get(job_id)
                if job is not None and not job.is_terminal:
                    store.mark_failed(job, e.message)
                    logger.error(f"[{job_id}] Job marcado como failed: {e.message}")
                return TranscriptionStatus.FAILED, e.message

            job = store.get(job_id)
            if job is None:
                logger.warning(f"[{job_id}] Job removido antes do fim do hand-off")
                return TranscriptionStatus.PROCESSING, None

            if job.status == TranscriptionStatus.PENDING:
                if outcome.async_accepted:
                    metadata = {"note": "workflow async processing"}
                else:
                    metadata = {"workflow_response": outcome.data} if outcome.data is not None else None
                store.mark_processing(job, metadata)
                logger.info(f"[{job_id}] Status atualizado para: processing")
            return job.status, None
        finally:
            db.close()

    async def _cleanup(self, job_id: str, key: str):
        try:
            if await self.storage.delete(key):
                logger.info(f"[{job_id}] Áudio removido após erro: {key}")
        except Exception as e:
            logger.warning(f"[{job_id}] Erro ao limpar áudio: {e}")

    def _fail_quietly(self, job_id: str, error: str):
        try:
            job = self.store.get(job_id)
            if job is not None:
                self.store.mark_failed(job, error)
        except DatabaseError as e:
            logger.warning(f"[{job_id}] Não foi possível marcar o job como failed: {e.message}")
