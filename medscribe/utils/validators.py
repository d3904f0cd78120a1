import logging
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import magic

from .helpers import get_file_extension, format_file_size

logger = logging.getLogger(__name__)

# Formatos de áudio suportados
SUPPORTED_AUDIO_FORMATS = {
    'audio/mpeg', 'audio/mp3', 'audio/wav', 'audio/x-wav', 'audio/wave',
    'audio/webm', 'audio/ogg', 'audio/mp4', 'audio/m4a', 'audio/x-m4a'
}

SUPPORTED_EXTENSIONS = {'.mp3', '.wav', '.m4a', '.ogg', '.webm', '.mp4'}

DOCUMENT_TYPES = (
    'consultation',
    'surgery_report',
    'discharge_summary',
    'progress_note',
    'radiology_report',
    'pathology_report',
    'emergency_note',
    'procedure_note',
)


def _result(valid: bool, message: str, **extra: Any) -> Dict[str, Any]:
    return {"valid": valid, "message": message, **extra}


def check_file_size(size: int, max_size: int) -> Dict[str, Any]:
    """Valida tamanho do arquivo"""
    if size <= 0:
        return _result(False, "Arquivo de áudio vazio")
    if size > max_size:
        return _result(False, f"Arquivo excede o limite de {format_file_size(max_size)}")
    return _result(True, "Tamanho válido", size=size)


def is_allowed_audio(mime_type: Optional[str], filename: Optional[str], sniffed: Optional[str] = None) -> bool:
    """Aceita pelo MIME declarado, pelo MIME detectado ou pela extensão"""
    declared = (mime_type or "").split(";")[0].strip().lower()
    if declared in SUPPORTED_AUDIO_FORMATS:
        return True
    if sniffed and sniffed.lower() in SUPPORTED_AUDIO_FORMATS:
        return True
    return get_file_extension(filename or "") in SUPPORTED_EXTENSIONS


def sniff_mime_type(head: bytes) -> Optional[str]:
    """Detecta o MIME pelos primeiros bytes com libmagic"""
    if not head:
        return None
    return magic.from_buffer(head[:2048], mime=True)


def validate_audio(size: int, mime_type: Optional[str], filename: Optional[str], head: bytes, max_size: int) -> Dict[str, Any]:
    """Valida o áudio recebido: presença, tamanho e formato"""
    if not filename and not size:
        return _result(False, "Arquivo de áudio é obrigatório")

    size_check = check_file_size(size, max_size)
    if not size_check["valid"]:
        return size_check

    try:
        sniffed = sniff_mime_type(head)
    except magic.MagicException as e:
        logger.warning(f"Falha ao detectar o tipo do arquivo: {e}")
        return _result(False, f"Erro ao validar arquivo: {e}")

    if not is_allowed_audio(mime_type, filename, sniffed):
        return _result(False, "Formato de áudio inválido. Envie MP3, WAV, M4A, OGG ou WebM")

    declared = (mime_type or "").split(";")[0].strip().lower()
    resolved = declared if declared in SUPPORTED_AUDIO_FORMATS else (sniffed or declared or "application/octet-stream")
    return _result(True, "Arquivo válido", size=size, mime_type=resolved)


def validate_metadata(doctor_name: Optional[str], patient_name: Optional[str], document_type: Optional[str]) -> Dict[str, Any]:
    """Os três campos clínicos são obrigatórios"""
    missing = [
        name for name, value in (
            ("doctorName", doctor_name),
            ("patientName", patient_name),
            ("documentType", document_type),
        )
        if not value or not str(value).strip()
    ]
    if missing:
        return _result(False, f"Campos obrigatórios em falta: {', '.join(missing)}")
    return _result(True, "Metadados válidos")


def validate_audio_url(url: Optional[str]) -> bool:
    """Valida se a URL do áudio é http(s) com host"""
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
