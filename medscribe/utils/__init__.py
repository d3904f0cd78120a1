from .validators import (
    DOCUMENT_TYPES,
    check_file_size,
    is_allowed_audio,
    validate_audio,
    validate_audio_url,
    validate_metadata,
)
from .helpers import (
    format_duration,
    format_file_size,
    generate_job_id,
    is_owned_storage_key,
    sanitize_filename,
    storage_key_for,
)

__all__ = [
    "DOCUMENT_TYPES",
    "check_file_size",
    "is_allowed_audio",
    "validate_audio",
    "validate_audio_url",
    "validate_metadata",
    "format_duration",
    "format_file_size",
    "generate_job_id",
    "is_owned_storage_key",
    "sanitize_filename",
    "storage_key_for",
]
