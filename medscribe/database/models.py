from sqlalchemy import Column, String, DateTime, Text, JSON, Integer, Enum as SQLEnum
from sqlalchemy.sql import func
from .connection import Base
from ..models.transcription import TranscriptionStatus
import uuid


class Job(Base):
    __tablename__ = "transcriptions"

    # Identificadores
    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, nullable=True, index=True)

    # Status e timestamps
    status = Column(SQLEnum(TranscriptionStatus), nullable=False, default=TranscriptionStatus.PENDING)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    # Arquivo de áudio
    file_name = Column(String, nullable=False)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String, nullable=True)
    file_path = Column(String, nullable=True)  # chave no storage
    audio_url = Column(String, nullable=True)

    # Metadados clínicos
    doctor_name = Column(String, nullable=False)
    patient_name = Column(String, nullable=False)
    document_type = Column(String, nullable=False)
    additional_notes = Column(Text, nullable=True)

    # Texto: bruto (workflow), formatado (IA), final (revisão humana)
    transcription_text = Column(Text, nullable=True)
    formatted_text = Column(Text, nullable=True)
    final_text = Column(Text, nullable=True)

    error = Column(Text, nullable=True)
    # "metadata" é reservado pelo declarative, daí o nome do atributo
    job_metadata = Column("metadata", JSON, nullable=True, default=dict)

    @property
    def display_text(self):
        return self.final_text or self.formatted_text or self.transcription_text

    @property
    def is_terminal(self) -> bool:
        return self.status in (TranscriptionStatus.COMPLETED, TranscriptionStatus.FAILED)

    def to_dict(self):
        """Converte o modelo SQLAlchemy para dicionário"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "processed_at": self.processed_at,
            "reviewed_at": self.reviewed_at,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "file_path": self.file_path,
            "audio_url": self.audio_url,
            "doctor_name": self.doctor_name,
            "patient_name": self.patient_name,
            "document_type": self.document_type,
            "additional_notes": self.additional_notes,
            "transcription_text": self.transcription_text,
            "formatted_text": self.formatted_text,
            "final_text": self.final_text,
            "error": self.error,
            "metadata": self.job_metadata or {}
        }
