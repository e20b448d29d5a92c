from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from lecture_copilot.api.errors import to_http
from lecture_copilot.core.errors import StudyCoreError, VideoNotFound
from lecture_copilot.db.session import get_db
from lecture_copilot.services.jobs import create_job
from lecture_copilot.services.lifecycle import VideoLifecycleController
from lecture_copilot.services.metadata_store import SqlMetadataStore
from lecture_copilot.services.retrieval import SegmentRetriever
from lecture_copilot.services.wiring import get_controller, get_retriever, get_store
from lecture_copilot.worker import index_tasks

router = APIRouter(prefix="/videos", tags=["videos"])


class VideoCreateRequest(BaseModel):
    storage_uri: str = Field(min_length=1)
    title: str | None = None
    id: str | None = Field(default=None, max_length=64)


class VideoResponse(BaseModel):
    ok: bool
    video: dict


class ReconcileJobResponse(BaseModel):
    ok: bool
    video_id: str
    job_id: int
    task_id: str


class SegmentsResponse(BaseModel):
    ok: bool
    video_id: str
    segments: list[dict]


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=12, ge=1, le=50)


# -----------------------
# Lifecycle
# -----------------------
@router.post("", response_model=VideoResponse, status_code=201)
def register_video(
    req: VideoCreateRequest,
    controller: VideoLifecycleController = Depends(get_controller),
) -> VideoResponse:
    try:
        record = controller.register(req.storage_uri.strip(), title=req.title, video_id=req.id)
    except StudyCoreError as e:
        raise to_http(e)
    return VideoResponse(ok=True, video=record.to_dict())


@router.get("/{video_id}", response_model=VideoResponse)
def get_video(video_id: str, controller: VideoLifecycleController = Depends(get_controller)) -> VideoResponse:
    try:
        record = controller.get_status(video_id)
    except StudyCoreError as e:
        raise to_http(e)
    return VideoResponse(ok=True, video=record.to_dict())


@router.post("/{video_id}/submit", response_model=VideoResponse)
def submit_video(video_id: str, controller: VideoLifecycleController = Depends(get_controller)) -> VideoResponse:
    try:
        record = controller.submit(video_id)
    except StudyCoreError as e:
        raise to_http(e)
    return VideoResponse(ok=True, video=record.to_dict())


@router.post("/{video_id}/reconcile", response_model=VideoResponse)
def reconcile_video(video_id: str, controller: VideoLifecycleController = Depends(get_controller)) -> VideoResponse:
    try:
        record = controller.reconcile(video_id)
    except StudyCoreError as e:
        raise to_http(e)
    return VideoResponse(ok=True, video=record.to_dict())


@router.post("/{video_id}/reconcile/jobs", response_model=ReconcileJobResponse, status_code=202)
def reconcile_video_job(
    video_id: str,
    store: SqlMetadataStore = Depends(get_store),
    db: Session = Depends(get_db),
) -> ReconcileJobResponse:
    if store.get(video_id) is None:
        raise to_http(VideoNotFound(video_id))

    job = create_job(db, "reconcile_video", {"video_id": video_id})
    async_result = index_tasks.reconcile_video.delay(job.id, video_id)

    return ReconcileJobResponse(ok=True, video_id=video_id, job_id=job.id, task_id=async_result.id)


# -----------------------
# Segments
# -----------------------
@router.get("/{video_id}/segments", response_model=SegmentsResponse)
def list_segments(video_id: str, store: SqlMetadataStore = Depends(get_store)) -> SegmentsResponse:
    if store.get(video_id) is None:
        raise HTTPException(status_code=404, detail={"code": "video_not_found", "message": "Video not found"})
    segments = store.get_segments(video_id)
    return SegmentsResponse(ok=True, video_id=video_id, segments=[s.to_dict() for s in segments])


@router.post("/{video_id}/search", response_model=SegmentsResponse)
def search_segments(
    video_id: str,
    req: SearchRequest,
    retriever: SegmentRetriever = Depends(get_retriever),
) -> SegmentsResponse:
    try:
        segments = retriever.retrieve(video_id, req.query.strip(), req.limit)
    except StudyCoreError as e:
        raise to_http(e)
    return SegmentsResponse(ok=True, video_id=video_id, segments=[s.to_dict() for s in segments])
