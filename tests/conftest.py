import asyncio
import json
import time
from contextlib import contextmanager

import httpx
import pytest
from fastapi.testclient import TestClient

from app import create_app
from medscribe.config import Settings
from medscribe.database.models import Job

WORKFLOW_URL = "http://workflow.test/hook"

METADATA = {
    "doctorName": "Dr. Smith",
    "patientName": "Jane Doe",
    "documentType": "consultation",
}


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        workflow_url=WORKFLOW_URL,
        app_url="http://testserver",
        callback_secret="test-callback-secret",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        upload_dir=str(tmp_path / "uploads"),
        workflow_timeout_seconds=2.0,
        response_grace_seconds=1.0,
        shutdown_drain_seconds=2.0,
        status_poll_interval_seconds=0.01,
        status_max_attempts=5,
    )
    values.update(overrides)
    return Settings(**values)


def wav_bytes(size: int) -> bytes:
    header = b"RIFF" + (size - 8).to_bytes(4, "little") + b"WAVEfmt "
    return header + b"\x00" * (size - len(header))


class WorkflowStub:
    """Workflow externo falso: regista os payloads e responde como configurado"""

    def __init__(self):
        self.requests = []
        self.status_code = 200
        self.body = {"executionId": "exec-1"}
        self.delay = 0.0

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.body, str):
            return httpx.Response(self.status_code, text=self.body)
        return httpx.Response(self.status_code, json=self.body)


@pytest.fixture
def workflow():
    return WorkflowStub()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def make_client(workflow):
    @contextmanager
    def factory(settings: Settings):
        app = create_app(settings, workflow_transport=httpx.MockTransport(workflow))
        with TestClient(app) as test_client:
            yield test_client
    return factory


@pytest.fixture
def client(make_client, settings):
    with make_client(settings) as test_client:
        yield test_client


def count_jobs(client) -> int:
    db = client.app.state.session_factory()
    try:
        return db.query(Job).count()
    finally:
        db.close()


def submit(client, audio=None, filename="consulta.wav", content_type="audio/wav", headers=None, **fields):
    data = {**METADATA, **fields}
    files = None
    if audio is not None:
        files = {"audio": (filename, audio, content_type)}
    return client.post("/api/v1/transcribe", data=data, files=files, headers=headers)


def wait_for_status(client, job_id, expected, timeout=3.0, headers=None):
    deadline = time.monotonic() + timeout
    while True:
        job = client.get(f"/api/v1/transcriptions/{job_id}", headers=headers).json()
        if job["status"] == expected or time.monotonic() > deadline:
            return job
        time.sleep(0.02)
