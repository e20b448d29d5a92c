from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from lecture_copilot.api.errors import to_http
from lecture_copilot.core.errors import StudyCoreError, VideoNotFound, VideoNotReady
from lecture_copilot.db.session import get_db
from lecture_copilot.services.jobs import create_job
from lecture_copilot.services.metadata_store import SqlMetadataStore
from lecture_copilot.services.records import VideoStatus
from lecture_copilot.services.synthesis import GenerationOptions, StudyMaterialSynthesizer
from lecture_copilot.services.wiring import get_store, get_synthesizer
from lecture_copilot.worker.generate_tasks import generate_study_bundle

router = APIRouter(prefix="/videos", tags=["study"])


class GenerateStudyRequest(BaseModel):
    query: str | None = None
    max_hits: int = Field(default=12, ge=1, le=50)
    max_context_chars: int = Field(default=3500, ge=200, le=20000)
    summary_length: Literal["short", "medium", "long"] = "medium"
    summary_tone: str = Field(default="neutral", max_length=40)
    topics_count: int = Field(default=4, ge=1, le=12)
    flashcards_per_topic: int = Field(default=8, ge=0, le=20)
    quiz_per_topic: int = Field(default=8, ge=0, le=20)


class StudyBundleResponse(BaseModel):
    ok: bool
    video_id: str
    bundle: dict


class GenerateStudyJobResponse(BaseModel):
    ok: bool
    video_id: str
    job_id: int
    task_id: str


@router.post("/{video_id}/study", response_model=StudyBundleResponse)
def generate_study(
    video_id: str,
    req: GenerateStudyRequest,
    synthesizer: StudyMaterialSynthesizer = Depends(get_synthesizer),
) -> StudyBundleResponse:
    try:
        bundle = synthesizer.generate_all(video_id, GenerationOptions(**req.model_dump()))
    except StudyCoreError as e:
        raise to_http(e)
    return StudyBundleResponse(ok=True, video_id=video_id, bundle=bundle.to_dict())


@router.post("/{video_id}/study/jobs", response_model=GenerateStudyJobResponse, status_code=202)
def generate_study_job(
    video_id: str,
    req: GenerateStudyRequest,
    store: SqlMetadataStore = Depends(get_store),
    db: Session = Depends(get_db),
) -> GenerateStudyJobResponse:
    record = store.get(video_id)
    if record is None:
        raise to_http(VideoNotFound(video_id))
    if record.status is not VideoStatus.READY:
        raise to_http(VideoNotReady(video_id, record.status.value))

    options = req.model_dump()
    job = create_job(db, "generate_study_bundle", {"video_id": video_id, "options": options})
    async_result = generate_study_bundle.delay(job.id, video_id, options)

    return GenerateStudyJobResponse(ok=True, video_id=video_id, job_id=job.id, task_id=async_result.id)


@router.get("/{video_id}/study", response_model=StudyBundleResponse)
def get_study(video_id: str, store: SqlMetadataStore = Depends(get_store)) -> StudyBundleResponse:
    if store.get(video_id) is None:
        raise to_http(VideoNotFound(video_id))
    bundle = store.get_study_bundle(video_id)
    if bundle is None:
        raise HTTPException(
            status_code=404,
            detail={"code": "study_bundle_not_found", "message": "No study bundle generated yet"},
        )
    return StudyBundleResponse(ok=True, video_id=video_id, bundle=bundle.to_dict())
