import re

import magic
import pytest

from medscribe.utils import validators
from medscribe.utils import (
    DOCUMENT_TYPES,
    check_file_size,
    format_duration,
    format_file_size,
    generate_job_id,
    is_allowed_audio,
    is_owned_storage_key,
    sanitize_filename,
    storage_key_for,
    validate_audio,
    validate_audio_url,
    validate_metadata,
)

MB = 1024 * 1024


def test_check_file_size_limits():
    assert check_file_size(0, 100 * MB)["valid"] is False
    assert check_file_size(100 * MB, 100 * MB)["valid"] is True
    result = check_file_size(100 * MB + 1, 100 * MB)
    assert result["valid"] is False
    assert "100 MB" in result["message"]


@pytest.mark.parametrize("mime_type, filename", [
    ("audio/webm;codecs=opus", "recording"),
    ("audio/x-m4a", None),
    ("application/octet-stream", "consulta.MP3"),
    (None, "consulta.ogg"),
])
def test_allowed_audio(mime_type, filename):
    assert is_allowed_audio(mime_type, filename) is True


def test_rejects_non_audio():
    assert is_allowed_audio("text/plain", "notes.txt") is False
    assert is_allowed_audio("video/quicktime", "clip.mov") is False


def test_sniffed_audio_type_is_enough():
    assert is_allowed_audio("application/octet-stream", "blob", sniffed="audio/mpeg") is True


def test_validate_audio_resolves_declared_mime():
    result = validate_audio(4096, "audio/wav", "consulta.wav", b"RIFF", 100 * MB)

    assert result["valid"] is True
    assert result["mime_type"] == "audio/wav"
    assert result["size"] == 4096


def test_validate_audio_rejects_when_detection_fails(monkeypatch):
    def broken(buffer, mime=False):
        raise magic.MagicException("libmagic indisponível")

    monkeypatch.setattr(validators.magic, "from_buffer", broken)

    result = validate_audio(4096, "audio/wav", "consulta.wav", b"RIFF", 100 * MB)

    assert result["valid"] is False
    assert "libmagic indisponível" in result["message"]


def test_validate_audio_requires_file():
    result = validate_audio(0, None, None, b"", 100 * MB)

    assert result["valid"] is False
    assert result["message"] == "Arquivo de áudio é obrigatório"


def test_validate_metadata_lists_missing_fields():
    assert validate_metadata("Dr. Smith", "Jane Doe", "consultation")["valid"] is True

    result = validate_metadata("Dr. Smith", " ", None)
    assert result["valid"] is False
    assert "patientName" in result["message"]
    assert "documentType" in result["message"]
    assert "doctorName" not in result["message"]


def test_validate_audio_url():
    assert validate_audio_url("https://storage.example/a.webm") is True
    assert validate_audio_url("http://localhost:8000/uploads/a.wav") is True
    assert validate_audio_url("ftp://storage.example/a.webm") is False
    assert validate_audio_url("/uploads/a.wav") is False
    assert validate_audio_url(None) is False


@pytest.mark.parametrize("size, label", [
    (None, "-"),
    (0, "-"),
    (512, "512 Bytes"),
    (1536, "1.5 KB"),
    (2 * MB, "2 MB"),
    (int(1.25 * 1024 * MB), "1.25 GB"),
])
def test_format_file_size(size, label):
    assert format_file_size(size) == label


@pytest.mark.parametrize("seconds, label", [
    (0, "0:00"),
    (65, "1:05"),
    (3599.9, "59:59"),
    (3661, "1:01:01"),
])
def test_format_duration(seconds, label):
    assert format_duration(seconds) == label


def test_sanitize_filename():
    assert sanitize_filename("../../etc/passwd") == "passwd"
    assert sanitize_filename("Consulta Dr. Smith (1).wav") == "Consulta_Dr._Smith_1.wav"
    assert sanitize_filename("???") == "audio"


def test_storage_key_is_derived_from_user_and_job():
    job_id = generate_job_id()

    assert re.fullmatch(r"[0-9a-f-]{36}", job_id)
    assert storage_key_for(job_id, "a b.wav") == f"medical/anonymous/{job_id}_a_b.wav"
    assert storage_key_for(job_id, "a.wav", "user-1") == f"medical/user-1/{job_id}_a.wav"


def test_document_types():
    assert "consultation" in DOCUMENT_TYPES
    assert len(DOCUMENT_TYPES) == 8


@pytest.mark.parametrize("key, user_id, owned", [
    ("medical/alice/job-1_a.wav", "alice", True),
    ("medical/anonymous/job-1_a.wav", None, True),
    ("medical/bob/job-1_a.wav", "alice", False),
    ("medical/alice/../bob/job-1_a.wav", "alice", False),
    ("medical/alice//job-1_a.wav", "alice", False),
    ("medical/alice/", "alice", False),
    ("medical/alicex/job-1_a.wav", "alice", False),
    (None, "alice", False),
])
def test_storage_key_ownership(key, user_id, owned):
    assert is_owned_storage_key(key, user_id) is owned
