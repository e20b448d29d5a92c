from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from lecture_copilot.db.session import get_db
from lecture_copilot.services.jobs import get_job, get_job_payload

router = APIRouter(prefix="/jobs", tags=["jobs"])


class JobStatusResponse(BaseModel):
    ok: bool
    job_id: int
    job_type: str
    status: str  # queued|running|done|failed
    error: str | None
    # progress/summary merged in by the worker task
    payload: dict[str, Any]


@router.get("/{job_id}", response_model=JobStatusResponse)
def get_job_status(job_id: int, db: Session = Depends(get_db)) -> JobStatusResponse:
    job = get_job(db, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail={"code": "job_not_found", "message": f"Job {job_id} not found"})
    return JobStatusResponse(
        ok=True,
        job_id=job.id,
        job_type=job.job_type,
        status=job.status,
        error=job.error,
        payload=get_job_payload(db, job.id),
    )
