import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database.models import Job
from ..errors import DatabaseError
from ..models.transcription import TranscriptionStats, TranscriptionStatus

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStore:
    """Acesso à tabela de transcrições; cada escrita é um update de uma linha"""

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, job_id: str, step: str):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"[{job_id}] Erro no banco de dados ({step}): {e}")
            raise DatabaseError(f"Falha ao gravar job ({step})", job_id=job_id)

    def create_pending(
            self,
            job_id: str,
            file_name: str,
            file_size: int,
            mime_type: Optional[str],
            doctor_name: str,
            patient_name: str,
            document_type: str,
            additional_notes: Optional[str] = None,
            user_id: Optional[str] = None,
            audio_url: Optional[str] = None,
            file_path: Optional[str] = None,
            metadata: Optional[Dict[str, Any]] = None,
    ) -> Job:
        job = Job(
            id=job_id,
            user_id=user_id,
            status=TranscriptionStatus.PENDING,
            file_name=file_name,
            file_size=file_size,
            mime_type=mime_type,
            file_path=file_path,
            audio_url=audio_url,
            doctor_name=doctor_name.strip(),
            patient_name=patient_name.strip(),
            document_type=document_type.strip(),
            additional_notes=additional_notes,
            job_metadata=metadata or {},
        )
        self.db.add(job)
        self._commit(job_id, "create")
        self.db.refresh(job)
        logger.info(f"[{job_id}] Job criado no banco de dados")
        return job

    def get(self, job_id: str) -> Optional[Job]:
        try:
            return self.db.query(Job).filter(Job.id == job_id).first()
        except SQLAlchemyError as e:
            logger.error(f"[{job_id}] Erro ao consultar job: {e}")
            raise DatabaseError("Falha ao consultar job", job_id=job_id)

    def list_for_user(
            self,
            user_id: Optional[str],
            status: Optional[TranscriptionStatus] = None,
            limit: int = 10,
            offset: int = 0,
    ) -> Tuple[List[Job], int]:
        try:
            query = self.db.query(Job)
            if user_id:
                query = query.filter(Job.user_id == user_id)
            if status:
                query = query.filter(Job.status == status)

            total = query.count()
            jobs = query.order_by(Job.created_at.desc()).offset(offset).limit(limit).all()
            return jobs, total
        except SQLAlchemyError as e:
            logger.error(f"Erro ao listar transcrições: {e}")
            raise DatabaseError("Falha ao listar transcrições")

    def stats_for_user(self, user_id: Optional[str], now: Optional[datetime] = None) -> TranscriptionStats:
        """Contagens do painel; semanas são janelas de 7 dias a partir de agora"""
        now = now or utcnow()
        try:
            query = self.db.query(Job)
            if user_id:
                query = query.filter(Job.user_id == user_id)

            by_status = dict(
                query.with_entities(Job.status, func.count(Job.id)).group_by(Job.status).all()
            )
            by_type = dict(
                query.with_entities(Job.document_type, func.count(Job.id)).group_by(Job.document_type).all()
            )
            created = [row[0] for row in query.with_entities(Job.created_at).all()]
        except SQLAlchemyError as e:
            logger.error(f"Erro ao calcular estatísticas: {e}")
            raise DatabaseError("Falha ao calcular estatísticas")

        # o SQLite devolve datas sem fuso; são gravadas em UTC
        created = [ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc) for ts in created if ts]
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_start = now - timedelta(days=7)
        previous_start = week_start - timedelta(days=7)

        this_week = sum(1 for ts in created if ts >= week_start)
        last_week = sum(1 for ts in created if previous_start <= ts < week_start)
        completed = by_status.get(TranscriptionStatus.COMPLETED, 0)
        failed = by_status.get(TranscriptionStatus.FAILED, 0)
        finished = completed + failed

        return TranscriptionStats(
            total=sum(by_status.values()),
            pending=by_status.get(TranscriptionStatus.PENDING, 0),
            processing=by_status.get(TranscriptionStatus.PROCESSING, 0),
            completed=completed,
            failed=failed,
            today=sum(1 for ts in created if ts >= midnight),
            this_week=this_week,
            last_week=last_week,
            weekly_growth=round((this_week - last_week) / last_week * 100, 1) if last_week else 0.0,
            success_rate=round(completed / finished * 100, 1) if finished else 100.0,
            document_types=by_type,
        )

    def apply_update(self, job: Job, fields: Dict[str, Any], step: str = "update") -> Job:
        for name, value in fields.items():
            setattr(job, name, value)
        job.updated_at = utcnow()
        self._commit(job.id, step)
        return job

    def set_audio_reference(self, job: Job, file_path: Optional[str], audio_url: str) -> Job:
        if job.audio_url and job.audio_url != audio_url:
            raise DatabaseError("Referência de áudio já definida", job_id=job.id)
        return self.apply_update(job, {"file_path": file_path, "audio_url": audio_url}, "audio_reference")

    def mark_processing(self, job: Job, metadata: Optional[Dict[str, Any]] = None) -> Job:
        fields: Dict[str, Any] = {"status": TranscriptionStatus.PROCESSING}
        if metadata:
            fields["job_metadata"] = {**(job.job_metadata or {}), **metadata}
        return self.apply_update(job, fields, "processing")

    def mark_failed(self, job: Job, error: str) -> Job:
        return self.apply_update(job, {"status": TranscriptionStatus.FAILED, "error": error}, "failed")

    def delete(self, job: Job):
        job_id = job.id
        self.db.delete(job)
        self._commit(job_id, "delete")
