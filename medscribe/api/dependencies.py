from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ..database.connection import get_db
from ..errors import MedscribeError
from ..services.job_store import JobStore
from ..services.submission import SubmissionService


def get_job_store(db: Session = Depends(get_db)) -> JobStore:
    return JobStore(db)


def get_submission_service(request: Request, store: JobStore = Depends(get_job_store)) -> SubmissionService:
    state = request.app.state
    return SubmissionService(
        settings=state.settings,
        store=store,
        storage=state.storage,
        workflow=state.workflow_client,
        dispatcher=state.dispatcher,
        session_factory=state.session_factory,
        signer=state.callback_signer,
    )


def http_error(e: MedscribeError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)
