import asyncio
import json

import httpx
import pytest

from medscribe.database.connection import create_db_and_tables, create_engine_for, create_session_factory
from medscribe.models import TranscriptionStatus
from medscribe.services.job_store import JobStore
from medscribe.services.status_observer import StatusObserver
from medscribe.services.status_stream import job_status_events


@pytest.fixture
def session_factory():
    engine = create_engine_for("sqlite:///:memory:")
    create_db_and_tables(engine)
    yield create_session_factory(engine)
    engine.dispose()


def _create(session_factory, job_id="job-1", status=TranscriptionStatus.PENDING):
    db = session_factory()
    try:
        store = JobStore(db)
        job = store.create_pending(
            job_id=job_id,
            file_name="a.wav",
            file_size=10,
            mime_type="audio/wav",
            doctor_name="Dr. Smith",
            patient_name="Jane Doe",
            document_type="consultation",
        )
        if status != TranscriptionStatus.PENDING:
            store.apply_update(job, {"status": status, "transcription_text": "texto"})
    finally:
        db.close()


def _frames(session_factory, job_id, max_attempts=3, is_disconnected=None):
    async def collect():
        events = job_status_events(session_factory, job_id, 0, max_attempts, is_disconnected)
        return [json.loads(frame[len("data: "):]) async for frame in events]
    return asyncio.run(collect())


def test_stream_completes_on_terminal_status(session_factory):
    _create(session_factory, status=TranscriptionStatus.COMPLETED)

    frames = _frames(session_factory, "job-1")

    assert [f["type"] for f in frames] == ["connected", "status", "complete"]
    assert frames[1]["data"]["display_text"] == "texto"


def test_stream_emits_only_changes_then_times_out(session_factory):
    _create(session_factory)

    frames = _frames(session_factory, "job-1", max_attempts=4)

    assert [f["type"] for f in frames] == ["connected", "status", "timeout"]
    assert frames[-1]["data"]["status"] == "pending"


def test_stream_reports_unknown_job(session_factory):
    frames = _frames(session_factory, "missing")

    assert [f["type"] for f in frames] == ["connected", "error"]


def test_stream_stops_when_client_disconnects(session_factory):
    _create(session_factory)

    async def disconnected():
        return True

    frames = _frames(session_factory, "job-1", is_disconnected=disconnected)

    assert [f["type"] for f in frames] == ["connected"]


def _job_responses(*statuses):
    calls = {"count": 0}

    def handler(request):
        index = min(calls["count"], len(statuses) - 1)
        calls["count"] += 1
        status = statuses[index]
        if status is None:
            return httpx.Response(404, json={"detail": "Transcrição não encontrada"})
        return httpx.Response(200, json={"id": "job-1", "status": status})

    return handler, calls


def test_observer_stops_on_terminal_status():
    handler, calls = _job_responses("pending", "processing", "completed")
    updates = []

    async def run():
        observer = StatusObserver("http://testserver", interval_seconds=0.01, max_attempts=10,
                                  transport=httpx.MockTransport(handler))
        async with observer:
            return await observer.observe("job-1", on_update=lambda job: updates.append(job["status"]))

    result = asyncio.run(run())

    assert result.finished is True
    assert result.status == "completed"
    assert result.timed_out is False
    assert updates == ["pending", "processing", "completed"]
    assert calls["count"] == 3


def test_observer_times_out_within_budget():
    handler, calls = _job_responses("processing")

    async def run():
        observer = StatusObserver("http://testserver", interval_seconds=0.01, max_attempts=3,
                                  transport=httpx.MockTransport(handler))
        async with observer:
            return await observer.observe("job-1")

    result = asyncio.run(run())

    assert result.timed_out is True
    assert result.finished is False
    assert result.status == "processing"
    assert calls["count"] == 3


def test_observer_tolerates_missing_job():
    handler, _ = _job_responses(None)

    async def run():
        observer = StatusObserver("http://testserver", interval_seconds=0.01, max_attempts=2,
                                  transport=httpx.MockTransport(handler))
        async with observer:
            return await observer.observe("job-1")

    result = asyncio.run(run())

    assert result.timed_out is True
    assert result.status is None


def test_observer_can_be_cancelled():
    handler, _ = _job_responses("processing")

    async def run():
        observer = StatusObserver("http://testserver", interval_seconds=5, max_attempts=100,
                                  transport=httpx.MockTransport(handler))
        task = asyncio.create_task(observer.observe("job-1"))
        await asyncio.sleep(0.05)
        observer.cancel()
        result = await asyncio.wait_for(task, timeout=1)
        return result, observer._client.is_closed

    result, client_closed = asyncio.run(run())

    assert result.cancelled is True
    assert result.status == "processing"
    assert client_closed is True


def test_observer_task_cancellation_closes_client():
    handler, _ = _job_responses("processing")

    async def run():
        observer = StatusObserver("http://testserver", interval_seconds=5, max_attempts=100,
                                  transport=httpx.MockTransport(handler))
        task = asyncio.create_task(observer.observe("job-1"))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        return observer._client.is_closed

    assert asyncio.run(run()) is True
