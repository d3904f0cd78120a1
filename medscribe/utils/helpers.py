import os
import re
import uuid
from typing import Optional


def generate_job_id() -> str:
    """Gera ID único para job"""
    return str(uuid.uuid4())


def get_file_extension(filename: str) -> str:
    """Extrai extensão do arquivo"""
    return os.path.splitext(filename or "")[1].lower()


def format_duration(seconds: float) -> str:
    """Formata duração em formato legível (m:ss ou h:mm:ss)"""
    total = max(0, int(seconds))
    hours = total // 3600
    minutes = (total % 3600) // 60
    secs = total % 60

    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def sanitize_filename(filename: str) -> str:
    """Remove caracteres problemáticos do nome do arquivo"""
    filename = os.path.basename(filename or "")
    # Remove caracteres especiais
    filename = re.sub(r'[^\w\s.-]', '', filename)
    # Substitui espaços por underscores
    filename = re.sub(r'[-\s]+', '_', filename)
    filename = filename.strip("._")
    return filename or "audio"


def format_file_size(size_bytes: Optional[int]) -> str:
    """Formata tamanho do arquivo em formato legível"""
    if not size_bytes:
        return "-"
    size = float(size_bytes)
    for unit in ['Bytes', 'KB', 'MB']:
        if size < 1024.0:
            return f"{round(size, 2):g} {unit}"
        size /= 1024.0
    return f"{round(size, 2):g} GB"


def storage_prefix_for(user_id: Optional[str] = None) -> str:
    return f"medical/{user_id or 'anonymous'}/"


def storage_key_for(job_id: str, filename: str, user_id: Optional[str] = None) -> str:
    """Caminho do áudio no storage, derivado do utilizador e do job"""
    return f"{storage_prefix_for(user_id)}{job_id}_{sanitize_filename(filename)}"


def is_owned_storage_key(key: Optional[str], user_id: Optional[str] = None) -> bool:
    """O caminho fica dentro da pasta do utilizador, sem segmentos vazios ou relativos"""
    if not key or "\\" in key:
        return False
    if any(part in ("", ".", "..") for part in key.split("/")):
        return False
    return key.startswith(storage_prefix_for(user_id))
