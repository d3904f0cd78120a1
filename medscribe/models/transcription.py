from pydantic import BaseModel, Field, AliasChoices, ConfigDict
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class TranscriptionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["TranscriptionStatus"]:
        """Aceita os valores do workflow externo, incluindo o alias 'in_progress'"""
        if value is None:
            return None
        normalized = str(value).strip().lower()
        if normalized == "in_progress":
            return cls.PROCESSING
        try:
            return cls(normalized)
        except ValueError:
            return None


TERMINAL_STATUSES = frozenset({TranscriptionStatus.COMPLETED, TranscriptionStatus.FAILED})


class StoredAudioRequest(BaseModel):
    """Variante storage-first: o áudio já está no storage, só chegam metadados"""
    audioUrl: Optional[str] = None
    audioPath: Optional[str] = None
    fileName: Optional[str] = None
    fileSize: Optional[int] = Field(default=None, ge=0)
    fileType: Optional[str] = "audio/mpeg"
    doctorName: Optional[str] = None
    patientName: Optional[str] = None
    documentType: Optional[str] = None
    additionalNotes: Optional[str] = None


class SubmissionResponse(BaseModel):
    success: bool
    transcriptionId: str
    status: TranscriptionStatus
    message: str


class CallbackPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transcriptionId: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("transcriptionId", "uploadId")
    )
    transcription: Optional[str] = None
    formattedText: Optional[str] = None
    status: Optional[str] = None
    success: Optional[bool] = None
    audioUrl: Optional[str] = None
    error: Optional[str] = None
    cleaned: Optional[bool] = None
    storageProvider: Optional[str] = None


class CallbackResponse(BaseModel):
    success: bool
    message: str
    transcriptionId: str
    status: TranscriptionStatus


class ReviewRequest(BaseModel):
    final_text: str


class TranscriptionResult(BaseModel):
    id: str
    user_id: Optional[str] = None
    status: TranscriptionStatus
    file_name: str
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    audio_url: Optional[str] = None
    doctor_name: str
    patient_name: str
    document_type: str
    additional_notes: Optional[str] = None
    transcription_text: Optional[str] = None
    formatted_text: Optional[str] = None
    final_text: Optional[str] = None
    display_text: Optional[str] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job) -> "TranscriptionResult":
        data = job.to_dict()
        data["display_text"] = job.display_text
        return cls(**data)


class TranscriptionSummary(BaseModel):
    id: str
    status: TranscriptionStatus
    file_name: str
    file_size: Optional[int] = None
    file_size_label: str
    doctor_name: str
    patient_name: str
    document_type: str
    has_text: bool
    error: Optional[str] = None
    created_at: Optional[datetime] = None


class TranscriptionList(BaseModel):
    transcriptions: List[TranscriptionSummary]
    total: int
    limit: int
    offset: int


class TranscriptionStats(BaseModel):
    """Resumo do painel: contagens por status e evolução semanal"""
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    today: int = 0
    this_week: int = 0
    last_week: int = 0
    weekly_growth: float = 0.0
    success_rate: float = 100.0
    document_types: Dict[str, int] = {}
