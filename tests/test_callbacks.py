import time

import pytest

from medscribe.database.models import Job
from medscribe.errors import CallbackAuthorizationError
from medscribe.models import CallbackPayload, TranscriptionStatus
from medscribe.services.callback_tokens import CallbackTokenSigner
from medscribe.services.callbacks import DEFAULT_WORKFLOW_ERROR, reconcile, target_status


def _job(**fields):
    values = dict(
        id="job-1",
        status=TranscriptionStatus.PROCESSING,
        file_name="a.wav",
        doctor_name="Dr. Smith",
        patient_name="Jane Doe",
        document_type="consultation",
        audio_url="http://testserver/uploads/a.wav",
        job_metadata={},
    )
    values.update(fields)
    return Job(**values)


@pytest.mark.parametrize("payload, expected", [
    ({"transcription": "texto", "status": "failed"}, TranscriptionStatus.COMPLETED),
    ({"error": "boom"}, TranscriptionStatus.FAILED),
    ({"success": False}, TranscriptionStatus.FAILED),
    ({"status": "in_progress"}, TranscriptionStatus.PROCESSING),
    ({"status": "weird"}, None),
    ({"transcription": "   "}, None),
])
def test_target_status(payload, expected):
    assert target_status(CallbackPayload(**payload)) == expected


def test_transcript_completes_job():
    changes = reconcile(_job(), CallbackPayload(transcription="Patient presents with..."))

    assert changes["status"] == TranscriptionStatus.COMPLETED
    assert changes["transcription_text"] == "Patient presents with..."
    assert "processed_at" in changes
    assert "final_text" not in changes


def test_identical_replay_changes_nothing():
    job = _job(status=TranscriptionStatus.COMPLETED, transcription_text="texto", formatted_text="formatado")

    assert reconcile(job, CallbackPayload(transcription="texto", formattedText="formatado")) == {}


def test_completed_is_terminal_for_status():
    job = _job(status=TranscriptionStatus.COMPLETED, transcription_text="texto")

    assert reconcile(job, CallbackPayload(status="failed", error="late")) == {}
    assert reconcile(job, CallbackPayload(status="processing")) == {}


def test_status_only_completion_keeps_text():
    job = _job(status=TranscriptionStatus.PROCESSING, transcription_text="texto parcial")

    changes = reconcile(job, CallbackPayload(status="completed"))

    assert changes["status"] == TranscriptionStatus.COMPLETED
    assert "transcription_text" not in changes


def test_failed_job_can_still_complete():
    job = _job(status=TranscriptionStatus.FAILED, error="Workflow request timeout após 45s")

    changes = reconcile(job, CallbackPayload(transcription="texto"))

    assert changes["status"] == TranscriptionStatus.COMPLETED
    assert changes["error"] is None


def test_failure_without_message_uses_default():
    changes = reconcile(_job(), CallbackPayload(success=False))

    assert changes["status"] == TranscriptionStatus.FAILED
    assert changes["error"] == DEFAULT_WORKFLOW_ERROR


def test_failure_does_not_store_formatted_text():
    changes = reconcile(_job(), CallbackPayload(error="boom", formattedText="meio feito"))

    assert changes["error"] == "boom"
    assert "formatted_text" not in changes


def test_processing_only_moves_forward_from_pending():
    assert reconcile(_job(status=TranscriptionStatus.PENDING), CallbackPayload(status="in_progress")) == {
        "status": TranscriptionStatus.PROCESSING
    }
    assert reconcile(_job(status=TranscriptionStatus.FAILED), CallbackPayload(status="processing")) == {}


def test_audio_url_is_only_filled_when_empty():
    payload = CallbackPayload(audioUrl="https://other.example/a.wav")

    assert reconcile(_job(), payload) == {}
    assert reconcile(_job(audio_url=None), payload) == {"audio_url": "https://other.example/a.wav"}


def test_cleanup_flags_go_to_metadata():
    job = _job(job_metadata={"mimeType": "audio/wav"})

    changes = reconcile(job, CallbackPayload(cleaned=True, storageProvider="s3"))

    assert changes["job_metadata"] == {"mimeType": "audio/wav", "cleaned": True, "storage_provider": "s3"}


def test_upload_id_alias():
    assert CallbackPayload(uploadId="job-9").transcriptionId == "job-9"
    assert CallbackPayload(transcriptionId="job-9").transcriptionId == "job-9"


def test_signed_token_is_bound_to_job():
    signer = CallbackTokenSigner("secret")
    token = signer.sign("job-1")

    assert signer.verify(token, "job-1")["scope"] == "transcription-callback"
    with pytest.raises(CallbackAuthorizationError):
        signer.verify(token, "job-2")
    with pytest.raises(CallbackAuthorizationError):
        CallbackTokenSigner("other-secret").verify(token, "job-1")
    with pytest.raises(CallbackAuthorizationError):
        signer.verify(None, "job-1")


def test_expired_token_is_rejected():
    signer = CallbackTokenSigner("secret", ttl_seconds=60)
    token = signer.sign("job-1", now=time.time() - 3600)

    with pytest.raises(CallbackAuthorizationError) as exc_info:
        signer.verify(token, "job-1")

    assert exc_info.value.message == "Token de callback expirado"
    assert exc_info.value.status_code == 401


def test_callback_url():
    signer = CallbackTokenSigner("secret")

    url = signer.callback_url("https://app.example/", "job-1")

    assert url.startswith("https://app.example/webhooks/transcription/job-1?token=")
    signer.verify(url.split("token=", 1)[1], "job-1")
